"""
Template merge engine.

Copies field prototypes (from a Template or an ActivityTemplate) into a visit:

1. Names already present in the visit are collected case-insensitively
   (a missing name counts as the empty name).
2. Prototypes are taken in their template order; those whose name is
   already present, or was already taken earlier in the same batch, are skipped.
3. Each retained prototype is cloned with a fresh id and appended after the
   visit's current highest order: max(existing order) + position + 1.

The same rule is used when a new visit receives the basic visit template,
when a template is imported into a visit and when an activity template is
applied, so repeated imports are idempotent by name and existing order values
are never reused or compacted.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from protocols_api.models.common import new_object_id
from protocols_api.models.fields import FieldDefinitionBase, fold_name
from protocols_api.models.protocol import Visit

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Outcome of merging prototypes into a visit."""

    added: List[FieldDefinitionBase] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # names already present

    @property
    def changed(self) -> bool:
        return bool(self.added)

    def to_dict(self) -> dict:
        return {
            "importedCount": len(self.added),
            "importedNames": [a.name for a in self.added],
            "skippedNames": self.skipped,
        }


def clone_field_definition(prototype: FieldDefinitionBase, order: int) -> FieldDefinitionBase:
    """
    Independent copy of a field prototype.

    Options, compound sub-fields, validation rules and every other nested
    configuration object are copied, so the copy and the prototype can be
    edited separately. The copy gets a new id and the given order.
    """
    return prototype.model_copy(deep=True, update={"id": new_object_id(), "order": order})


def merge_field_definitions(
    existing: Sequence[FieldDefinitionBase],
    prototypes: Iterable[FieldDefinitionBase],
) -> MergeResult:
    """
    Compute the copies to append to a visit.

    Args:
        existing: Activities already in the visit (not modified)
        prototypes: Template activities to merge

    Returns:
        MergeResult with the new activities in append order
    """
    result = MergeResult()
    taken = {fold_name(activity.name) for activity in existing}
    next_order = max((activity.order for activity in existing), default=0)

    # sorted() is stable: equal orders keep their template position
    for prototype in sorted(prototypes, key=lambda p: p.order):
        key = fold_name(prototype.name)
        if key in taken:
            result.skipped.append(prototype.name)
            continue
        taken.add(key)
        next_order += 1
        result.added.append(clone_field_definition(prototype, next_order))

    return result


def merge_into_visit(visit: Visit, prototypes: Iterable[FieldDefinitionBase]) -> MergeResult:
    """Merge prototypes and append the copies to ``visit.activities`` in one batch."""
    result = merge_field_definitions(visit.activities, prototypes)
    if result.changed:
        visit.activities.extend(result.added)
    logger.debug(
        f"Merged into visit {visit.id}: {len(result.added)} added, {len(result.skipped)} skipped"
    )
    return result
