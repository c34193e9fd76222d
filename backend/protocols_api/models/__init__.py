"""Pydantic models for protocols, visits, activities, templates and users."""

from protocols_api.models.common import ApiResponse, CamelModel, Page, is_object_id, new_object_id
from protocols_api.models.fields import (
    FIELD_MODELS,
    FieldDefinition,
    FieldDefinitionBase,
    FieldType,
    fold_name,
    parse_field_definition,
)
from protocols_api.models.protocol import (
    Protocol,
    ProtocolCreate,
    ProtocolStatus,
    ProtocolUpdate,
    Visit,
    VisitInput,
    VisitUpdate,
    VisitType,
)
from protocols_api.models.rules import ClinicalRule, ClinicalRuleInput, RuleSeverity, ValidationRule
from protocols_api.models.template import ActivityTemplate, Template
from protocols_api.models.user import Principal, User, UserRole

__all__ = [
    "ActivityTemplate",
    "ApiResponse",
    "CamelModel",
    "ClinicalRule",
    "ClinicalRuleInput",
    "FIELD_MODELS",
    "FieldDefinition",
    "FieldDefinitionBase",
    "FieldType",
    "Page",
    "Principal",
    "Protocol",
    "ProtocolCreate",
    "ProtocolStatus",
    "ProtocolUpdate",
    "RuleSeverity",
    "Template",
    "User",
    "UserRole",
    "ValidationRule",
    "Visit",
    "VisitInput",
    "VisitUpdate",
    "VisitType",
    "fold_name",
    "is_object_id",
    "new_object_id",
    "parse_field_definition",
]
