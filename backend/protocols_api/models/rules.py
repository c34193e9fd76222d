"""
Validation rules attached to activities, and legacy protocol-level clinical rules.

Both share the same condition vocabulary; only activity rules support
formulas and severities.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import Field, model_validator

from protocols_api.models.common import CamelModel, new_object_id


class RuleCondition(str, Enum):
    RANGE = "range"
    MIN = "min"
    MAX = "max"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    FORMULA = "formula"


class FormulaOperator(str, Enum):
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    EQ = "=="
    NE = "!="


class RuleSeverity(str, Enum):
    WARNING = "warning"  # alert, data can still be saved
    ERROR = "error"  # blocking


def check_condition_operands(
    condition: str,
    min_value: Optional[float],
    max_value: Optional[float],
    value: Optional[Union[float, str]],
) -> None:
    """Raise ValueError when a condition lacks the operands it compares against."""
    if condition == RuleCondition.RANGE.value:
        if min_value is None or max_value is None:
            raise ValueError("La condición 'range' requiere minValue y maxValue")
        if min_value > max_value:
            raise ValueError("minValue no puede ser mayor que maxValue")
    elif condition == RuleCondition.MIN.value and min_value is None:
        raise ValueError("La condición 'min' requiere minValue")
    elif condition == RuleCondition.MAX.value and max_value is None:
        raise ValueError("La condición 'max' requiere maxValue")
    elif condition in (RuleCondition.EQUALS.value, RuleCondition.NOT_EQUALS.value) and value is None:
        raise ValueError(f"La condición '{condition}' requiere value")


class ValidationRule(CamelModel):
    """A condition evaluated against an activity value."""

    name: str = Field(min_length=1)
    condition: RuleCondition
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    value: Optional[Union[float, str]] = None
    formula: Optional[str] = None  # e.g. "peso * 10 + altura"
    formula_operator: Optional[FormulaOperator] = None
    severity: RuleSeverity = RuleSeverity.WARNING
    message: str = Field(min_length=1)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_operands(self) -> "ValidationRule":
        if self.condition == RuleCondition.FORMULA.value:
            if not self.formula:
                raise ValueError("La condición 'formula' requiere formula")
            if self.formula_operator is None:
                raise ValueError("La condición 'formula' requiere formulaOperator")
        else:
            check_condition_operands(self.condition, self.min_value, self.max_value, self.value)
        return self


class ClinicalRuleCondition(str, Enum):
    RANGE = "range"
    MIN = "min"
    MAX = "max"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"


class ClinicalRuleInput(CamelModel):
    """Clinical rule fields accepted from the operator."""

    name: str = Field(min_length=1)
    parameter: str = Field(min_length=1)
    condition: ClinicalRuleCondition
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    value: Optional[Union[float, str]] = None
    error_message: str = Field(min_length=1)
    is_active: bool = True

    @model_validator(mode="after")
    def _check_operands(self) -> "ClinicalRuleInput":
        check_condition_operands(self.condition, self.min_value, self.max_value, self.value)
        return self


class ClinicalRule(ClinicalRuleInput):
    """Protocol-level rule (legacy, predates per-activity validation rules)."""

    id: str = Field(default_factory=new_object_id)
    order: int = Field(default=0, ge=0)
