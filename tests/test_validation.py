"""Tests for JSON schema validation of templates and exported resources."""

from clinical_forms.schemas.fhir import FHIR_OBSERVATION_SCHEMA, FORM_TEMPLATE_SCHEMA
from clinical_forms.services.validation import validate_against_schema


def _make_template(**overrides):
    template = {
        "name": "vitals",
        "title": "Vital Signs",
        "form_schema": {
            "sections": [
                {
                    "id": "vitals",
                    "fields": [
                        {"id": "temperature", "type": "number_field", "min_value": 35, "max_value": 42},
                    ],
                }
            ]
        },
        "fhir_mapping": {
            "field_mappings": {
                "temperature": {"observation_concept_id": 3020891, "value_field": "value_number"},
            }
        },
    }
    template.update(overrides)
    return template


def test_valid_template():
    assert validate_against_schema(_make_template(), FORM_TEMPLATE_SCHEMA) == []


def test_missing_required_sections():
    errors = validate_against_schema({"name": "x"}, FORM_TEMPLATE_SCHEMA)
    assert any("form_schema" in e for e in errors)
    assert any("fhir_mapping" in e for e in errors)


def test_field_without_type_reports_path():
    template = _make_template(
        form_schema={"sections": [{"id": "s", "fields": [{"id": "temperature"}]}]}
    )
    errors = validate_against_schema(template, FORM_TEMPLATE_SCHEMA)
    assert errors == ["form_schema.sections.0.fields.0: 'type' is a required property"]


def test_mapping_without_concept_id():
    template = _make_template(
        fhir_mapping={"field_mappings": {"temperature": {"value_field": "value_number"}}}
    )
    errors = validate_against_schema(template, FORM_TEMPLATE_SCHEMA)
    assert len(errors) == 1
    assert errors[0].startswith("fhir_mapping.field_mappings.temperature:")


def test_valid_observation_resource():
    resource = {
        "resourceType": "Observation",
        "status": "final",
        "code": {"coding": [{"system": "http://loinc.org", "code": "8310-5"}]},
        "valueQuantity": {"value": 37.5, "unit": "Cel"},
    }
    assert validate_against_schema(resource, FHIR_OBSERVATION_SCHEMA) == []


def test_invalid_observation_status():
    resource = {
        "resourceType": "Observation",
        "status": "done",
        "code": {"coding": [{"system": "local", "code": "temperature"}]},
    }
    errors = validate_against_schema(resource, FHIR_OBSERVATION_SCHEMA)
    assert len(errors) == 1
    assert errors[0].startswith("status:")
