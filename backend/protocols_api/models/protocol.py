"""
Protocol aggregate: protocol metadata, ordered visits and legacy clinical rules.

A protocol and everything nested in it is stored as one versioned document.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from protocols_api.models.common import CamelModel, new_object_id
from protocols_api.models.fields import FieldDefinition
from protocols_api.models.rules import ClinicalRule


class ProtocolStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


class VisitType(str, Enum):
    PRESENCIAL = "presencial"
    TELEFONICA = "telefonica"
    NO_PROGRAMADA = "no_programada"


def normalize_code(code: str) -> str:
    return code.strip().upper()


class VisitInput(CamelModel):
    """Visit fields accepted on create."""

    name: str = Field(min_length=1)
    type: VisitType
    order: int = Field(ge=1)


class VisitUpdate(CamelModel):
    """Partial visit update; omitted fields keep their value."""

    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[VisitType] = None
    order: Optional[int] = Field(default=None, ge=1)


class Visit(VisitInput):
    id: str = Field(default_factory=new_object_id)
    activities: List[FieldDefinition] = Field(default_factory=list)

    def find_activity(self, activity_id: str):
        return next((a for a in self.activities if a.id == activity_id), None)

    def max_activity_order(self) -> int:
        return max((a.order for a in self.activities), default=0)

    def to_document(self, protocol_id: Optional[str] = None) -> dict:
        document = super().to_document()
        if protocol_id:
            document["protocolId"] = protocol_id
            for activity in document.get("activities", []):
                activity["visitId"] = self.id
        return document


class ProtocolCreate(CamelModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    sponsor: str = Field(min_length=1)
    description: str = Field(min_length=1)
    status: ProtocolStatus = ProtocolStatus.DRAFT

    @field_validator("code")
    @classmethod
    def _upper_code(cls, value: str) -> str:
        return normalize_code(value)


class ProtocolUpdate(CamelModel):
    """Partial update; omitted fields keep their value."""

    name: Optional[str] = Field(default=None, min_length=1)
    code: Optional[str] = Field(default=None, min_length=1)
    sponsor: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = Field(default=None, min_length=1)
    status: Optional[ProtocolStatus] = None

    @field_validator("code")
    @classmethod
    def _upper_code(cls, value: Optional[str]) -> Optional[str]:
        return normalize_code(value) if value is not None else value


class Protocol(ProtocolCreate):
    id: str = Field(default_factory=new_object_id)
    visits: List[Visit] = Field(default_factory=list)
    clinical_rules: List[ClinicalRule] = Field(default_factory=list)
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def find_visit(self, visit_id: str) -> Optional[Visit]:
        return next((v for v in self.visits if v.id == visit_id), None)

    def find_rule(self, rule_id: str) -> Optional[ClinicalRule]:
        return next((r for r in self.clinical_rules if r.id == rule_id), None)

    def to_document(self) -> dict:
        document = super().to_document()
        document["visits"] = [visit.to_document(self.id) for visit in self.visits]
        for rule in document.get("clinicalRules", []):
            rule["protocolId"] = self.id
        return document


class OrderItem(CamelModel):
    """One (itemId, newOrder) pair of a batch reorder request."""

    id: str = Field(min_length=1)
    order: int = Field(ge=0)


class VisitOrderItem(CamelModel):
    visit_id: str = Field(min_length=1)
    order: int = Field(ge=1)


class VisitsOrderRequest(CamelModel):
    visits_order: List[VisitOrderItem]


class ActivitiesOrderRequest(CamelModel):
    activities_order: List[OrderItem]


class RulesOrderRequest(CamelModel):
    rules_order: List[OrderItem]


class ImportTemplateRequest(CamelModel):
    template_id: str = Field(min_length=1)
