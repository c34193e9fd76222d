"""
Field definitions (activities): the typed units of data collection inside a
visit or template.

Each ``fieldType`` tag maps to its own model, and only the configuration
payload meaningful for that tag is accepted:

    text_short, text_long          plain text
    number_simple                  unit, expected range, decimals
    number_compound                group of numeric sub-fields
    select_single, select_multiple options
    boolean, file                  no payload
    date, time, datetime           date/time capture settings
    table                          columns and row limits
    conditional                    shown when another field has a value
    calculated                     derived from a formula
    medication_tracking            adherence tracking configuration

Use ``parse_field_definition`` to validate a raw payload into the right model.
"""

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import ConfigDict, Discriminator, Field, Tag, TypeAdapter, model_validator

from protocols_api.models.common import CamelModel, new_object_id
from protocols_api.models.rules import ValidationRule


class FieldType(str, Enum):
    TEXT_SHORT = "text_short"
    TEXT_LONG = "text_long"
    NUMBER_SIMPLE = "number_simple"
    NUMBER_COMPOUND = "number_compound"
    SELECT_SINGLE = "select_single"
    SELECT_MULTIPLE = "select_multiple"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    DATETIME = "datetime"
    FILE = "file"
    TABLE = "table"
    CONDITIONAL = "conditional"
    CALCULATED = "calculated"
    MEDICATION_TRACKING = "medication_tracking"


# Keys added on serialization that clients may echo back
_READ_ONLY_KEYS = ("visitId", "visit_id", "_id")


# =============================================================================
# Configuration payloads
# =============================================================================

class SelectOption(CamelModel):
    value: str = Field(min_length=1)
    label: str = Field(min_length=1)
    required: bool = False  # must be selected
    exclusive: bool = False  # selecting it disqualifies the patient


class CompoundSubField(CamelModel):
    name: str = Field(min_length=1)
    label: str = Field(min_length=1)
    unit: Optional[str] = None


class CompoundConfig(CamelModel):
    fields: List[CompoundSubField] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_sub_fields(self) -> "CompoundConfig":
        names = [f.name.casefold() for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError("Los subcampos de un campo compuesto deben tener nombres únicos")
        return self


class ConditionalConfig(CamelModel):
    depends_on: str = Field(min_length=1)
    show_when: Union[bool, float, str]


class TableColumn(CamelModel):
    name: str = Field(min_length=1)
    label: str = Field(min_length=1)
    type: Optional[str] = None
    unit: Optional[str] = None


class TableConfig(CamelModel):
    columns: List[TableColumn] = Field(min_length=1)
    min_rows: Optional[int] = Field(default=None, ge=0)
    max_rows: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _row_limits(self) -> "TableConfig":
        if self.min_rows is not None and self.max_rows is not None and self.min_rows > self.max_rows:
            raise ValueError("minRows no puede ser mayor que maxRows")
        return self


class FrequencyType(str, Enum):
    ONCE_DAILY = "once_daily"
    TWICE_DAILY = "twice_daily"
    THREE_DAILY = "three_daily"
    EVERY_X_HOURS = "every_x_hours"
    ONCE_WEEKLY = "once_weekly"


class MedicationTrackingConfig(CamelModel):
    medication_name: str = Field(min_length=1)
    dosage_unit: Optional[str] = None  # comprimidos, ml, gotas...
    quantity_per_dose: Optional[float] = Field(default=None, gt=0)
    frequency_type: FrequencyType = FrequencyType.ONCE_DAILY
    custom_hours_interval: Optional[int] = Field(default=None, ge=1, le=168)
    expected_daily_dose: Optional[float] = Field(default=None, gt=0)
    should_consume_on_delivery_day: bool = False
    should_take_on_visit_day: bool = False

    @model_validator(mode="after")
    def _hours_interval(self) -> "MedicationTrackingConfig":
        if self.frequency_type == FrequencyType.EVERY_X_HOURS.value and not self.custom_hours_interval:
            raise ValueError("La frecuencia 'every_x_hours' requiere customHoursInterval")
        return self


# =============================================================================
# Field models
# =============================================================================

class FieldDefinitionBase(CamelModel):
    """Attributes shared by every field type."""

    # Assignments would re-run _drop_empty_keys on the whole instance dict
    model_config = ConfigDict(extra="forbid", validate_assignment=False)

    id: Optional[str] = Field(default_factory=new_object_id)
    name: str = Field(min_length=1)
    description: str = ""
    required: bool = False
    order: int = Field(default=0, ge=0)
    help_text: Optional[str] = None
    allow_multiple: Optional[bool] = None
    repeat_count: Optional[int] = Field(default=None, ge=1, le=10)
    is_visit_date: Optional[bool] = None
    require_date: bool = False
    require_time: bool = False
    require_date_per_measurement: bool = True
    require_time_per_measurement: bool = True
    validation_rules: List[ValidationRule] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _drop_empty_keys(cls, data: Any) -> Any:
        # Clients send every optional key, null when unused
        if isinstance(data, dict):
            return {
                key: value
                for key, value in data.items()
                if value is not None and key not in _READ_ONLY_KEYS
            }
        return data


class _MeasurementMixin(CamelModel):
    measurement_unit: Optional[str] = None
    expected_min: Optional[float] = None
    expected_max: Optional[float] = None
    decimal_places: Optional[int] = Field(default=None, ge=0, le=10)

    @model_validator(mode="after")
    def _expected_range(self):
        if (
            self.expected_min is not None
            and self.expected_max is not None
            and self.expected_min > self.expected_max
        ):
            raise ValueError("expectedMin no puede ser mayor que expectedMax")
        return self


class _SelectMixin(CamelModel):
    options: List[SelectOption] = Field(default_factory=list)
    allow_custom_options: bool = False

    @model_validator(mode="after")
    def _unique_option_values(self):
        values = [option.value for option in self.options]
        if len(values) != len(set(values)):
            raise ValueError("Las opciones deben tener valores únicos")
        return self


class TextShortField(FieldDefinitionBase):
    field_type: Literal["text_short"] = "text_short"


class TextLongField(FieldDefinitionBase):
    field_type: Literal["text_long"] = "text_long"


class NumberSimpleField(_MeasurementMixin, FieldDefinitionBase):
    field_type: Literal["number_simple"] = "number_simple"


class NumberCompoundField(FieldDefinitionBase):
    field_type: Literal["number_compound"] = "number_compound"
    compound_config: CompoundConfig
    decimal_places: Optional[int] = Field(default=None, ge=0, le=10)


class SelectSingleField(_SelectMixin, FieldDefinitionBase):
    field_type: Literal["select_single"] = "select_single"
    select_multiple: bool = False


class SelectMultipleField(_SelectMixin, FieldDefinitionBase):
    field_type: Literal["select_multiple"] = "select_multiple"
    select_multiple: Literal[True] = True


class BooleanField(FieldDefinitionBase):
    field_type: Literal["boolean"] = "boolean"


class DateField(FieldDefinitionBase):
    field_type: Literal["date"] = "date"


class TimeField(FieldDefinitionBase):
    field_type: Literal["time"] = "time"
    time_interval_minutes: Optional[int] = Field(default=None, ge=1)


class DatetimeField(FieldDefinitionBase):
    field_type: Literal["datetime"] = "datetime"
    datetime_include_date: bool = True
    datetime_include_time: bool = False
    time_interval_minutes: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _captures_something(self) -> "DatetimeField":
        if not (self.datetime_include_date or self.datetime_include_time):
            raise ValueError("Un campo datetime debe incluir fecha u hora")
        return self


class FileField(FieldDefinitionBase):
    field_type: Literal["file"] = "file"


class TableField(FieldDefinitionBase):
    field_type: Literal["table"] = "table"
    table_config: TableConfig


class ConditionalField(FieldDefinitionBase):
    field_type: Literal["conditional"] = "conditional"
    conditional_config: ConditionalConfig


class CalculatedField(FieldDefinitionBase):
    field_type: Literal["calculated"] = "calculated"
    calculation_formula: str = Field(min_length=1)
    measurement_unit: Optional[str] = None
    decimal_places: Optional[int] = Field(default=None, ge=0, le=10)


class MedicationTrackingField(FieldDefinitionBase):
    field_type: Literal["medication_tracking"] = "medication_tracking"
    medication_tracking_config: MedicationTrackingConfig


FIELD_MODELS = {
    FieldType.TEXT_SHORT.value: TextShortField,
    FieldType.TEXT_LONG.value: TextLongField,
    FieldType.NUMBER_SIMPLE.value: NumberSimpleField,
    FieldType.NUMBER_COMPOUND.value: NumberCompoundField,
    FieldType.SELECT_SINGLE.value: SelectSingleField,
    FieldType.SELECT_MULTIPLE.value: SelectMultipleField,
    FieldType.BOOLEAN.value: BooleanField,
    FieldType.DATE.value: DateField,
    FieldType.TIME.value: TimeField,
    FieldType.DATETIME.value: DatetimeField,
    FieldType.FILE.value: FileField,
    FieldType.TABLE.value: TableField,
    FieldType.CONDITIONAL.value: ConditionalField,
    FieldType.CALCULATED.value: CalculatedField,
    FieldType.MEDICATION_TRACKING.value: MedicationTrackingField,
}


def _field_type_tag(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        tag = value.get("fieldType", value.get("field_type"))
        return tag.value if isinstance(tag, FieldType) else tag
    return getattr(value, "field_type", None)


FieldDefinition = Annotated[
    Union[
        Annotated[TextShortField, Tag("text_short")],
        Annotated[TextLongField, Tag("text_long")],
        Annotated[NumberSimpleField, Tag("number_simple")],
        Annotated[NumberCompoundField, Tag("number_compound")],
        Annotated[SelectSingleField, Tag("select_single")],
        Annotated[SelectMultipleField, Tag("select_multiple")],
        Annotated[BooleanField, Tag("boolean")],
        Annotated[DateField, Tag("date")],
        Annotated[TimeField, Tag("time")],
        Annotated[DatetimeField, Tag("datetime")],
        Annotated[FileField, Tag("file")],
        Annotated[TableField, Tag("table")],
        Annotated[ConditionalField, Tag("conditional")],
        Annotated[CalculatedField, Tag("calculated")],
        Annotated[MedicationTrackingField, Tag("medication_tracking")],
    ],
    Discriminator(
        _field_type_tag,
        custom_error_type="invalid_field_type",
        custom_error_message="Tipo de campo inválido",
    ),
]

_field_adapter = TypeAdapter(FieldDefinition)


def parse_field_definition(data: Any) -> FieldDefinitionBase:
    """Validate a raw activity payload into its field-type model.

    Raises:
        pydantic.ValidationError: unknown fieldType or invalid payload
    """
    return _field_adapter.validate_python(data)


def fold_name(name: Optional[str]) -> str:
    """Case-insensitive key for activity names; a missing name folds to ''."""
    return (name or "").strip().casefold()
