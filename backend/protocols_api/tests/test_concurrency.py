"""
Unit tests for optimistic concurrency on protocol documents.

Tests:
- retry_on_conflict attempt ceiling and backoff
- Non-conflict errors abort immediately
- Versioned protocol writes detect stale documents
- Service mutations retry from a fresh read
- Visit reordering under repeated conflicts

Run with: python -m pytest protocols_api/tests/test_concurrency.py -v
"""

from unittest.mock import MagicMock, patch

import pytest

from protocols_api.errors import ContentionError, NotFoundError, WriteConflictError
from protocols_api.models.protocol import VisitInput, VisitOrderItem
from protocols_api.models.rules import ClinicalRuleInput
from protocols_api.repositories import ProtocolRepository
from protocols_api.services.concurrency import retry_on_conflict


class TestRetryOnConflict:
    """Tests for retry_on_conflict."""

    def test_success_first_attempt(self):
        operation = MagicMock(return_value="ok")
        sleep = MagicMock()

        assert retry_on_conflict(operation, sleep=sleep) == "ok"
        assert operation.call_count == 1
        sleep.assert_not_called()

    def test_success_after_two_conflicts(self):
        """Test the third attempt wins after linear backoff."""
        operation = MagicMock(side_effect=[
            WriteConflictError("stale"),
            WriteConflictError("stale"),
            "ok",
        ])
        sleep = MagicMock()

        result = retry_on_conflict(operation, max_attempts=3, base_delay=0.1, sleep=sleep)

        assert result == "ok"
        assert operation.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == pytest.approx([0.1, 0.2])

    def test_contention_after_all_attempts(self):
        """Test three conflicts end in ContentionError without a fourth attempt."""
        operation = MagicMock(side_effect=WriteConflictError("stale"))
        sleep = MagicMock()

        with pytest.raises(ContentionError) as exc_info:
            retry_on_conflict(operation, max_attempts=3, base_delay=0.1, sleep=sleep)

        assert operation.call_count == 3
        assert sleep.call_count == 2
        assert exc_info.value.status_code == 409
        assert isinstance(exc_info.value.__cause__, WriteConflictError)

    def test_other_errors_propagate(self):
        operation = MagicMock(side_effect=NotFoundError("Protocolo no encontrado"))
        sleep = MagicMock()

        with pytest.raises(NotFoundError):
            retry_on_conflict(operation, sleep=sleep)

        assert operation.call_count == 1
        sleep.assert_not_called()

    def test_defaults_from_settings(self):
        operation = MagicMock(side_effect=WriteConflictError("stale"))
        sleep = MagicMock()

        with patch("protocols_api.services.concurrency.settings") as mock_settings:
            mock_settings.max_conflict_retries = 2
            mock_settings.conflict_retry_base_delay = 0.5
            with pytest.raises(ContentionError):
                retry_on_conflict(operation, sleep=sleep)

        assert operation.call_count == 2
        sleep.assert_called_once_with(0.5)


class TestVersionedSave:
    """Tests for ProtocolRepository.save version checks."""

    def test_save_bumps_version(self, db, protocol):
        repo = ProtocolRepository(db)
        protocol.name = "Nuevo nombre"

        saved = repo.save(protocol)

        assert saved.version == 1
        assert repo.get(protocol.id).version == 1
        assert repo.get(protocol.id).name == "Nuevo nombre"

    def test_stale_write_rejected(self, db, protocol):
        """Test the second writer holding the same version loses."""
        repo = ProtocolRepository(db)
        first = repo.get(protocol.id)
        second = repo.get(protocol.id)

        first.description = "Primer cambio"
        repo.save(first)
        second.description = "Segundo cambio"

        with pytest.raises(WriteConflictError):
            repo.save(second)
        assert repo.get(protocol.id).description == "Primer cambio"

    def test_save_deleted_protocol(self, db, protocol):
        repo = ProtocolRepository(db)
        stale = repo.get(protocol.id)
        repo.delete(protocol.id)

        with pytest.raises(NotFoundError):
            repo.save(stale)


class TestServiceRetries:
    """Tests for retries inside ProtocolService mutations."""

    def test_concurrent_writer_is_retried(self, db, protocol, protocol_service):
        """Test a write that lost the race is replayed on a fresh read."""
        real_save = protocol_service.protocols.save
        calls = {"count": 0}

        def racing_save(document):
            calls["count"] += 1
            if calls["count"] == 1:
                # Another writer saves between our read and our write
                intruder = ProtocolRepository(db).get(document.id)
                intruder.sponsor = "Otro sponsor"
                real_save(intruder)
            return real_save(document)

        rule = ClinicalRuleInput(
            name="Presión", parameter="sistolica", condition="max", max_value=140,
            error_message="Presión elevada",
        )
        with patch.object(protocol_service.protocols, "save", side_effect=racing_save), \
                patch("protocols_api.services.concurrency.time.sleep"):
            stored, _ = protocol_service.add_rule(protocol.id, rule)

        assert calls["count"] == 2  # lost write, retried write
        assert stored.sponsor == "Otro sponsor"
        assert [r.name for r in stored.clinical_rules] == ["Presión"]
        assert stored.version == 2

    def test_persistent_contention(self, protocol, protocol_service):
        with patch.object(
            protocol_service.protocols, "save", side_effect=WriteConflictError("stale")
        ) as mock_save, patch("protocols_api.services.concurrency.time.sleep"):
            with pytest.raises(ContentionError):
                protocol_service.add_visit(
                    protocol.id, VisitInput(name="Visita 1", type="presencial", order=1)
                )

        assert mock_save.call_count == 3

    def test_reorder_succeeds_on_third_attempt(self, protocol, protocol_service):
        """Test two conflicts are retried and the whole order set is applied."""
        _, first = protocol_service.add_visit(
            protocol.id, VisitInput(name="Visita 1", type="presencial", order=1)
        )
        _, second = protocol_service.add_visit(
            protocol.id, VisitInput(name="Visita 2", type="presencial", order=2)
        )
        real_save = protocol_service.protocols.save
        outcomes = [WriteConflictError("stale"), WriteConflictError("stale")]

        def flaky_save(document):
            if outcomes:
                raise outcomes.pop(0)
            return real_save(document)

        with patch.object(
            protocol_service.protocols, "save", side_effect=flaky_save
        ) as mock_save, patch("protocols_api.services.concurrency.time.sleep"):
            stored = protocol_service.reorder_visits(protocol.id, [
                VisitOrderItem(visit_id=first.id, order=5),
                VisitOrderItem(visit_id=second.id, order=3),
            ])

        assert mock_save.call_count == 3
        assert [(v.id, v.order) for v in stored.visits] == [(second.id, 3), (first.id, 5)]
        reloaded = protocol_service.get_protocol(protocol.id)
        assert [(v.id, v.order) for v in reloaded.visits] == [(second.id, 3), (first.id, 5)]

    def test_reorder_contention_after_three_conflicts(self, protocol, protocol_service):
        _, visit = protocol_service.add_visit(
            protocol.id, VisitInput(name="Visita 1", type="presencial", order=1)
        )

        with patch.object(
            protocol_service.protocols, "save", side_effect=WriteConflictError("stale")
        ) as mock_save, patch("protocols_api.services.concurrency.time.sleep"):
            with pytest.raises(ContentionError) as exc_info:
                protocol_service.reorder_visits(
                    protocol.id, [VisitOrderItem(visit_id=visit.id, order=2)]
                )

        assert not isinstance(exc_info.value, NotFoundError)
        assert mock_save.call_count == 3
        assert protocol_service.get_protocol(protocol.id).find_visit(visit.id).order == 1
