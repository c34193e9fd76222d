"""
Activity templates: named activity bundles applied to visits in one step.
"""

import logging
from typing import List

from sqlalchemy.orm import Session

from protocols_api.models.template import ActivityTemplate, ActivityTemplateInput, ActivityTemplateUpdate
from protocols_api.repositories import ActivityTemplateRepository

logger = logging.getLogger(__name__)


class ActivityTemplateService:

    def __init__(self, db: Session):
        self.templates = ActivityTemplateRepository(db)

    def list_templates(self) -> List[ActivityTemplate]:
        return self.templates.list_all()

    def get_template(self, template_id: str) -> ActivityTemplate:
        return self.templates.get(template_id)

    def create_template(self, payload: ActivityTemplateInput) -> ActivityTemplate:
        template = ActivityTemplate(
            name=payload.name,
            description=payload.description,
            activities=payload.activities,
        )
        created = self.templates.create(template)
        logger.info(f'Activity template "{created.name}" created with {len(created.activities)} activities')
        return created

    def update_template(self, template_id: str, payload: ActivityTemplateUpdate) -> ActivityTemplate:
        template = self.templates.get(template_id)
        if payload.name is not None:
            template.name = payload.name
        if payload.description is not None:
            template.description = payload.description
        if payload.activities:
            template.activities = payload.activities
        return self.templates.save(template)

    def delete_template(self, template_id: str) -> None:
        self.templates.delete(template_id)
        logger.info(f"Activity template {template_id} deleted")
