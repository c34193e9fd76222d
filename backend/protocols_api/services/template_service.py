"""
Template catalogue: CRUD for templates and their activity prototypes.

Templates are not version-guarded; concurrent edits are last-write-wins.
The basic visit template cannot be deleted.
"""

import logging
from typing import List, Tuple

from sqlalchemy.orm import Session

from protocols_api.errors import NotFoundError, ProtectedResourceError
from protocols_api.models.common import new_object_id
from protocols_api.models.fields import FieldDefinitionBase
from protocols_api.models.template import Template, TemplateInput, TemplateUpdate
from protocols_api.repositories import TemplateRepository
from protocols_api.services.basic_template import BasicTemplateRegistry, basic_templates

logger = logging.getLogger(__name__)


def _with_ids(activities: List[FieldDefinitionBase]) -> List[FieldDefinitionBase]:
    return [
        activity if activity.id else activity.model_copy(update={"id": new_object_id()})
        for activity in activities
    ]


def _activity_index(template: Template, activity_id: str) -> int:
    for index, activity in enumerate(template.activities):
        if activity.id == activity_id:
            return index
    raise NotFoundError("Actividad no encontrada")


class TemplateService:

    def __init__(self, db: Session, registry: BasicTemplateRegistry = basic_templates):
        self.templates = TemplateRepository(db)
        self.registry = registry

    def list_templates(self, page: int = 1, page_size: int = 10) -> Tuple[List[Template], int]:
        return self.templates.list(page=page, page_size=page_size)

    def get_template(self, template_id: str) -> Template:
        return self.templates.get(template_id)

    def create_template(self, payload: TemplateInput) -> Template:
        template = Template(
            name=payload.name,
            description=payload.description,
            activities=_with_ids(payload.activities),
        )
        created = self.templates.create(template)
        logger.info(f'Template "{created.name}" created ({created.id})')
        return created

    def update_template(self, template_id: str, payload: TemplateUpdate) -> Template:
        template = self.templates.get(template_id)
        if payload.name is not None:
            template.name = payload.name
        if payload.description is not None:
            template.description = payload.description
        if payload.activities is not None:
            template.activities = _with_ids(payload.activities)
        return self.templates.save(template)

    def delete_template(self, template_id: str) -> None:
        template = self.templates.get(template_id)
        if self.registry.is_basic_template(template):
            logger.warning(f"Refused to delete basic visit template {template_id}")
            raise ProtectedResourceError(
                f'No se puede eliminar la plantilla "{self.registry.name}" '
                "porque se incluye automáticamente en todas las visitas nuevas"
            )
        self.templates.delete(template_id)
        logger.info(f'Template "{template.name}" deleted ({template_id})')

    # Activities inside a template

    def add_activity(self, template_id: str, activity: FieldDefinitionBase) -> FieldDefinitionBase:
        template = self.templates.get(template_id)
        if "order" in activity.model_fields_set:
            order = activity.order
        else:
            order = max((a.order for a in template.activities), default=0) + 1
        created = activity.model_copy(deep=True, update={"id": new_object_id(), "order": order})
        template.activities.append(created)
        self.templates.save(template)
        return created

    def update_activity(
        self, template_id: str, activity_id: str, activity: FieldDefinitionBase
    ) -> FieldDefinitionBase:
        template = self.templates.get(template_id)
        index = _activity_index(template, activity_id)
        replacement = activity.model_copy(deep=True, update={"id": activity_id})
        template.activities[index] = replacement
        self.templates.save(template)
        return replacement

    def delete_activity(self, template_id: str, activity_id: str) -> None:
        template = self.templates.get(template_id)
        del template.activities[_activity_index(template, activity_id)]
        self.templates.save(template)
