"""
Templates: reusable, protocol-independent ordered sets of field prototypes.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from protocols_api.models.common import CamelModel, new_object_id
from protocols_api.models.fields import FieldDefinition


class TemplateInput(CamelModel):
    name: str = Field(min_length=1)
    description: str = ""
    activities: List[FieldDefinition] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value):
        return value or ""


class TemplateUpdate(CamelModel):
    """Partial update; omitted fields keep their value."""

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    activities: Optional[List[FieldDefinition]] = None


class Template(TemplateInput):
    id: str = Field(default_factory=new_object_id)
    system_key: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def find_activity(self, activity_id: str):
        return next((a for a in self.activities if a.id == activity_id), None)

    def to_document(self) -> dict:
        return self.model_dump(
            mode="json", by_alias=True, exclude_none=True, exclude={"system_key"}
        )


class ActivityTemplateInput(CamelModel):
    name: str = Field(min_length=1)
    description: str = ""
    activities: List[FieldDefinition] = Field(min_length=1)

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, value):
        return value or ""

    @field_validator("activities")
    @classmethod
    def _strip_prototype_ids(cls, activities):
        # Activity template prototypes have no identity of their own
        for activity in activities:
            activity.id = None
        return activities


class ActivityTemplateUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    activities: Optional[List[FieldDefinition]] = None

    @field_validator("activities")
    @classmethod
    def _strip_prototype_ids(cls, activities):
        for activity in activities or []:
            activity.id = None
        return activities


class ActivityTemplate(ActivityTemplateInput):
    id: str = Field(default_factory=new_object_id)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
