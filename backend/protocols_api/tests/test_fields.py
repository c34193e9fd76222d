"""
Unit tests for activity field definitions.

Tests:
- fieldType discrimination into the right model
- Type-specific configuration checks
- Validation rule operand checks
- camelCase serialization

Run with: python -m pytest protocols_api/tests/test_fields.py -v
"""

import pytest
from pydantic import ValidationError

from protocols_api.models.fields import (
    CalculatedField,
    DatetimeField,
    MedicationTrackingField,
    NumberCompoundField,
    NumberSimpleField,
    SelectMultipleField,
    SelectSingleField,
    TableField,
    TextShortField,
    fold_name,
    parse_field_definition,
)
from protocols_api.models.rules import ClinicalRuleInput, ValidationRule


class TestFieldDiscrimination:
    """Tests for parse_field_definition."""

    def test_text_short(self):
        """Test a minimal payload resolves to its field model."""
        field = parse_field_definition({"name": "dni", "fieldType": "text_short"})

        assert isinstance(field, TextShortField)
        assert field.name == "dni"
        assert field.required is False
        assert field.id  # generated

    def test_number_simple_with_measurement(self):
        field = parse_field_definition({
            "name": "peso",
            "fieldType": "number_simple",
            "measurementUnit": "kg",
            "expectedMin": 30,
            "expectedMax": 200,
            "decimalPlaces": 1,
        })

        assert isinstance(field, NumberSimpleField)
        assert field.measurement_unit == "kg"
        assert field.expected_max == 200

    def test_unknown_field_type(self):
        """Test an unknown tag is rejected."""
        with pytest.raises(ValidationError):
            parse_field_definition({"name": "x", "fieldType": "signature"})

    def test_missing_field_type(self):
        with pytest.raises(ValidationError):
            parse_field_definition({"name": "x"})

    def test_payload_of_another_type_rejected(self):
        """Test configuration that belongs to a different type is refused."""
        with pytest.raises(ValidationError):
            parse_field_definition({
                "name": "comentario",
                "fieldType": "text_long",
                "options": [{"value": "a", "label": "A"}],
            })

    def test_null_keys_ignored(self):
        """Test null optional keys and echoed read-only keys are dropped."""
        field = parse_field_definition({
            "name": "alergias",
            "fieldType": "boolean",
            "helpText": None,
            "visitId": "5f0c9a7e2b1d4c3a8e6f0123",
        })

        assert field.help_text is None

    def test_select_single_and_multiple(self):
        options = [{"value": "si", "label": "Sí"}, {"value": "no", "label": "No"}]
        single = parse_field_definition({"name": "fuma", "fieldType": "select_single", "options": options})
        multiple = parse_field_definition({"name": "sintomas", "fieldType": "select_multiple", "options": options})

        assert isinstance(single, SelectSingleField)
        assert single.select_multiple is False
        assert isinstance(multiple, SelectMultipleField)
        assert multiple.select_multiple is True

    def test_duplicate_option_values(self):
        with pytest.raises(ValidationError):
            parse_field_definition({
                "name": "fuma",
                "fieldType": "select_single",
                "options": [{"value": "si", "label": "Sí"}, {"value": "si", "label": "Si"}],
            })

    def test_compound_requires_sub_fields(self):
        with pytest.raises(ValidationError):
            parse_field_definition({"name": "presion", "fieldType": "number_compound"})

        field = parse_field_definition({
            "name": "presion",
            "fieldType": "number_compound",
            "compoundConfig": {
                "fields": [
                    {"name": "sistolica", "label": "Sistólica", "unit": "mmHg"},
                    {"name": "diastolica", "label": "Diastólica", "unit": "mmHg"},
                ]
            },
        })
        assert isinstance(field, NumberCompoundField)
        assert len(field.compound_config.fields) == 2

    def test_datetime_must_capture_something(self):
        with pytest.raises(ValidationError):
            parse_field_definition({
                "name": "fecha",
                "fieldType": "datetime",
                "datetimeIncludeDate": False,
                "datetimeIncludeTime": False,
            })

        field = parse_field_definition({"name": "fecha", "fieldType": "datetime"})
        assert isinstance(field, DatetimeField)
        assert field.datetime_include_date is True

    def test_table_row_limits(self):
        columns = [{"name": "dosis", "label": "Dosis"}]
        with pytest.raises(ValidationError):
            parse_field_definition({
                "name": "dosis",
                "fieldType": "table",
                "tableConfig": {"columns": columns, "minRows": 5, "maxRows": 2},
            })

        field = parse_field_definition({
            "name": "dosis",
            "fieldType": "table",
            "tableConfig": {"columns": columns, "minRows": 1, "maxRows": 3},
        })
        assert isinstance(field, TableField)

    def test_calculated_requires_formula(self):
        with pytest.raises(ValidationError):
            parse_field_definition({"name": "imc", "fieldType": "calculated"})

        field = parse_field_definition({
            "name": "imc",
            "fieldType": "calculated",
            "calculationFormula": "peso / (altura * altura)",
        })
        assert isinstance(field, CalculatedField)

    def test_medication_tracking_hours_interval(self):
        with pytest.raises(ValidationError):
            parse_field_definition({
                "name": "adherencia",
                "fieldType": "medication_tracking",
                "medicationTrackingConfig": {
                    "medicationName": "Enalapril",
                    "frequencyType": "every_x_hours",
                },
            })

        field = parse_field_definition({
            "name": "adherencia",
            "fieldType": "medication_tracking",
            "medicationTrackingConfig": {
                "medicationName": "Enalapril",
                "frequencyType": "every_x_hours",
                "customHoursInterval": 8,
            },
        })
        assert isinstance(field, MedicationTrackingField)
        assert field.medication_tracking_config.custom_hours_interval == 8

    def test_expected_range_order(self):
        with pytest.raises(ValidationError):
            NumberSimpleField(name="peso", expected_min=10, expected_max=5)


class TestValidationRules:
    """Tests for activity validation rules and clinical rules."""

    def test_range_requires_bounds(self):
        with pytest.raises(ValidationError):
            ValidationRule(name="rango", condition="range", min_value=1, message="Fuera de rango")

    def test_range_bounds_order(self):
        with pytest.raises(ValidationError):
            ValidationRule(name="rango", condition="range", min_value=5, max_value=1, message="m")

    def test_formula_requires_operator(self):
        with pytest.raises(ValidationError):
            ValidationRule(name="imc", condition="formula", formula="peso / altura", message="m")

        rule = ValidationRule(
            name="imc",
            condition="formula",
            formula="peso / altura",
            formula_operator=">",
            value=30,
            severity="error",
            message="IMC elevado",
        )
        assert rule.severity == "error"

    def test_equals_requires_value(self):
        with pytest.raises(ValidationError):
            ClinicalRuleInput(name="sexo", parameter="sexo", condition="equals", error_message="m")

    def test_clinical_rule_rejects_formula(self):
        with pytest.raises(ValidationError):
            ClinicalRuleInput(
                name="r", parameter="p", condition="formula", value=1, error_message="m"
            )


class TestSerialization:
    """Tests for camelCase documents."""

    def test_to_document_uses_camel_case(self):
        field = parse_field_definition({
            "name": "peso",
            "fieldType": "number_simple",
            "measurementUnit": "kg",
            "helpText": "En ayunas",
        })
        document = field.to_document()

        assert document["fieldType"] == "number_simple"
        assert document["measurementUnit"] == "kg"
        assert document["helpText"] == "En ayunas"
        assert "expectedMin" not in document  # unset values omitted

    def test_document_parses_back(self):
        field = parse_field_definition({"name": "dni", "fieldType": "text_short", "required": True})
        again = parse_field_definition(field.to_document())

        assert again == field

    def test_fold_name(self):
        assert fold_name("  Presión Arterial ") == "presión arterial"
        assert fold_name(None) == ""
