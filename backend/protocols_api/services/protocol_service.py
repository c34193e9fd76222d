"""
Protocol aggregate service.

Every mutation of a protocol (metadata, visits, activities, clinical rules)
runs as one read-modify-write cycle against the stored version and is retried
on version conflicts through ``retry_on_conflict``. Mutators report whether
they changed anything; unchanged documents are not written.
"""

import logging
from typing import Any, Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from protocols_api.errors import DomainValidationError, NotFoundError
from protocols_api.models.fields import FieldDefinitionBase, fold_name
from protocols_api.models.protocol import (
    OrderItem,
    Protocol,
    ProtocolCreate,
    ProtocolUpdate,
    Visit,
    VisitInput,
    VisitOrderItem,
    VisitUpdate,
)
from protocols_api.models.rules import ClinicalRule, ClinicalRuleInput
from protocols_api.models.common import new_object_id
from protocols_api.repositories import ActivityTemplateRepository, ProtocolRepository, TemplateRepository
from protocols_api.services.basic_template import BasicTemplateRegistry, basic_templates
from protocols_api.services.concurrency import retry_on_conflict
from protocols_api.services.template_merge import MergeResult, merge_into_visit

logger = logging.getLogger(__name__)

# A mutator receives the freshly read protocol and returns (changed, value)
Mutator = Callable[[Protocol], Tuple[bool, Any]]


def _find_activity_index(visit: Visit, activity_id: str) -> int:
    for index, activity in enumerate(visit.activities):
        if activity.id == activity_id:
            return index
    raise NotFoundError("Actividad no encontrada")


def require_visit(protocol: Protocol, visit_id: str) -> Visit:
    visit = protocol.find_visit(visit_id)
    if visit is None:
        raise NotFoundError("Visita no encontrada")
    return visit


def _require_rule(protocol: Protocol, rule_id: str) -> ClinicalRule:
    rule = protocol.find_rule(rule_id)
    if rule is None:
        raise NotFoundError("Regla clínica no encontrada")
    return rule


def _check_unique_name(visit: Visit, name: str, ignore_id: Optional[str] = None) -> None:
    key = fold_name(name)
    for activity in visit.activities:
        if activity.id != ignore_id and fold_name(activity.name) == key:
            raise DomainValidationError(f'Ya existe una actividad llamada "{name}" en esta visita')


def import_message(template_name: str, result: MergeResult) -> str:
    count = len(result.added)
    if not count:
        return f'Todas las actividades de la plantilla "{template_name}" ya existen en la visita'
    return f'Plantilla "{template_name}" importada exitosamente. Se agregaron {count} actividades.'


class ProtocolService:
    """Operations on protocols and everything nested in them."""

    def __init__(self, db: Session, registry: BasicTemplateRegistry = basic_templates):
        self.db = db
        self.protocols = ProtocolRepository(db)
        self.templates = TemplateRepository(db)
        self.activity_templates = ActivityTemplateRepository(db)
        self.registry = registry

    def _mutate(self, protocol_id: str, mutator: Mutator, description: str) -> Tuple[Protocol, Any]:
        """
        Apply ``mutator`` to a fresh copy of the protocol and persist it.

        Returns:
            (protocol as stored afterwards, value returned by the mutator)
        """
        def cycle():
            protocol = self.protocols.get(protocol_id)
            changed, value = mutator(protocol)
            if changed:
                protocol = self.protocols.save(protocol)
            return protocol, value

        return retry_on_conflict(cycle, description=f"{description} ({protocol_id})")

    # -------------------------------------------------------------------------
    # Protocols
    # -------------------------------------------------------------------------

    def list_protocols(
        self,
        page: int = 1,
        page_size: int = 10,
        status: Optional[str] = None,
    ) -> Tuple[List[Protocol], int]:
        return self.protocols.list(page=page, page_size=page_size, status=status)

    def get_protocol(self, protocol_id: str) -> Protocol:
        return self.protocols.get(protocol_id)

    def create_protocol(self, payload: ProtocolCreate) -> Protocol:
        protocol = self.protocols.create(Protocol(**payload.model_dump()))
        logger.info(f"Protocol {protocol.code} created")
        return protocol

    def update_protocol(self, protocol_id: str, payload: ProtocolUpdate) -> Protocol:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        def apply(protocol: Protocol):
            for key, value in changes.items():
                setattr(protocol, key, value)
            return bool(changes), None

        protocol, _ = self._mutate(protocol_id, apply, "update protocol")
        return protocol

    def delete_protocol(self, protocol_id: str) -> None:
        self.protocols.delete(protocol_id)

    # -------------------------------------------------------------------------
    # Visits
    # -------------------------------------------------------------------------

    def add_visit(self, protocol_id: str, payload: VisitInput) -> Tuple[Protocol, Visit]:
        """
        Append a visit and import the basic visit template into it.

        The visit and its imported fields are persisted in a single write.
        """
        # Fail on an unknown protocol before the basic template gets created
        self.protocols.get(protocol_id)
        basic = self.registry.get_or_create(self.templates)

        def apply(protocol: Protocol):
            visit = Visit(**payload.model_dump())
            result = merge_into_visit(visit, basic.activities)
            protocol.visits.append(visit)
            return True, (visit, result)

        protocol, (visit, result) = self._mutate(protocol_id, apply, "add visit")
        logger.info(
            f'Visit "{visit.name}" added to protocol {protocol_id} '
            f"with {len(result.added)} basic fields"
        )
        return protocol, visit

    def update_visit(self, protocol_id: str, visit_id: str, payload: VisitUpdate) -> Protocol:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)

        def apply(protocol: Protocol):
            visit = require_visit(protocol, visit_id)
            for key, value in changes.items():
                setattr(visit, key, value)
            return True, None

        protocol, _ = self._mutate(protocol_id, apply, "update visit")
        return protocol

    def delete_visit(self, protocol_id: str, visit_id: str) -> Protocol:
        def apply(protocol: Protocol):
            protocol.visits.remove(require_visit(protocol, visit_id))
            return True, None

        protocol, _ = self._mutate(protocol_id, apply, "delete visit")
        return protocol

    def reorder_visits(self, protocol_id: str, items: List[VisitOrderItem]) -> Protocol:
        """Set the order of each listed visit; unknown visit ids are skipped."""
        def apply(protocol: Protocol):
            for item in items:
                visit = protocol.find_visit(item.visit_id)
                if visit is not None:
                    visit.order = item.order
            protocol.visits.sort(key=lambda v: v.order)
            return True, None

        protocol, _ = self._mutate(protocol_id, apply, "reorder visits")
        return protocol

    # -------------------------------------------------------------------------
    # Activities
    # -------------------------------------------------------------------------

    def add_activity(
        self, protocol_id: str, visit_id: str, activity: FieldDefinitionBase
    ) -> Tuple[Protocol, FieldDefinitionBase]:
        def apply(protocol: Protocol):
            visit = require_visit(protocol, visit_id)
            _check_unique_name(visit, activity.name)
            if "order" in activity.model_fields_set:
                order = activity.order
            else:
                order = visit.max_activity_order() + 1
            created = activity.model_copy(deep=True, update={"id": new_object_id(), "order": order})
            visit.activities.append(created)
            return True, created

        return self._mutate(protocol_id, apply, "add activity")

    def update_activity(
        self, protocol_id: str, visit_id: str, activity_id: str, activity: FieldDefinitionBase
    ) -> Tuple[Protocol, FieldDefinitionBase]:
        """Replace an activity definition, keeping its id."""
        def apply(protocol: Protocol):
            visit = require_visit(protocol, visit_id)
            index = _find_activity_index(visit, activity_id)
            _check_unique_name(visit, activity.name, ignore_id=activity_id)
            replacement = activity.model_copy(deep=True, update={"id": activity_id})
            visit.activities[index] = replacement
            return True, replacement

        return self._mutate(protocol_id, apply, "update activity")

    def delete_activity(self, protocol_id: str, visit_id: str, activity_id: str) -> Protocol:
        def apply(protocol: Protocol):
            visit = require_visit(protocol, visit_id)
            del visit.activities[_find_activity_index(visit, activity_id)]
            return True, None

        protocol, _ = self._mutate(protocol_id, apply, "delete activity")
        return protocol

    def reorder_activities(self, protocol_id: str, visit_id: str, items: List[OrderItem]) -> Protocol:
        """Set the order of each listed activity; unknown activity ids are skipped."""
        def apply(protocol: Protocol):
            visit = require_visit(protocol, visit_id)
            for item in items:
                activity = visit.find_activity(item.id)
                if activity is not None:
                    activity.order = item.order
            visit.activities.sort(key=lambda a: a.order)
            return True, None

        protocol, _ = self._mutate(protocol_id, apply, "reorder activities")
        return protocol

    # -------------------------------------------------------------------------
    # Template import
    # -------------------------------------------------------------------------

    def _merge_into(self, protocol_id: str, visit_id: str, prototypes, description: str):
        def apply(protocol: Protocol):
            visit = require_visit(protocol, visit_id)
            result = merge_into_visit(visit, prototypes)
            return result.changed, result

        return self._mutate(protocol_id, apply, description)

    def import_template(
        self, protocol_id: str, visit_id: str, template_id: str
    ) -> Tuple[Protocol, MergeResult, str]:
        """
        Copy the activities of a template into a visit.

        Activities whose name already exists in the visit are skipped. Nothing
        is written when every name is already present.

        Returns:
            (protocol, merge result, template name)
        """
        template = self.templates.get(template_id)
        protocol, result = self._merge_into(protocol_id, visit_id, template.activities, "import template")
        logger.info(
            f'Template "{template.name}" imported into visit {visit_id}: '
            f"{len(result.added)} added, {len(result.skipped)} skipped"
        )
        return protocol, result, template.name

    def apply_activity_template(
        self, protocol_id: str, visit_id: str, template_id: str
    ) -> Tuple[Protocol, MergeResult, str]:
        """Same merge as ``import_template`` with an activity template as source."""
        template = self.activity_templates.get(template_id)
        protocol, result = self._merge_into(
            protocol_id, visit_id, template.activities, "apply activity template"
        )
        logger.info(
            f'Activity template "{template.name}" applied to visit {visit_id}: '
            f"{len(result.added)} added, {len(result.skipped)} skipped"
        )
        return protocol, result, template.name

    # -------------------------------------------------------------------------
    # Clinical rules
    # -------------------------------------------------------------------------

    def add_rule(self, protocol_id: str, payload: ClinicalRuleInput) -> Tuple[Protocol, ClinicalRule]:
        def apply(protocol: Protocol):
            order = max((r.order for r in protocol.clinical_rules), default=0) + 1
            rule = ClinicalRule(**payload.model_dump(), order=order)
            protocol.clinical_rules.append(rule)
            return True, rule

        return self._mutate(protocol_id, apply, "add clinical rule")

    def update_rule(
        self, protocol_id: str, rule_id: str, payload: ClinicalRuleInput
    ) -> Tuple[Protocol, ClinicalRule]:
        def apply(protocol: Protocol):
            current = _require_rule(protocol, rule_id)
            rule = ClinicalRule(**payload.model_dump(), id=rule_id, order=current.order)
            index = protocol.clinical_rules.index(current)
            protocol.clinical_rules[index] = rule
            return True, rule

        return self._mutate(protocol_id, apply, "update clinical rule")

    def delete_rule(self, protocol_id: str, rule_id: str) -> Protocol:
        def apply(protocol: Protocol):
            protocol.clinical_rules.remove(_require_rule(protocol, rule_id))
            return True, None

        protocol, _ = self._mutate(protocol_id, apply, "delete clinical rule")
        return protocol

    def reorder_rules(self, protocol_id: str, items: List[OrderItem]) -> Protocol:
        def apply(protocol: Protocol):
            for item in items:
                rule = protocol.find_rule(item.id)
                if rule is not None:
                    rule.order = item.order
            protocol.clinical_rules.sort(key=lambda r: r.order)
            return True, None

        protocol, _ = self._mutate(protocol_id, apply, "reorder clinical rules")
        return protocol
