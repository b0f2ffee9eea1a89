"""Tests for parsing stored form templates into typed models."""

import pytest

from clinical_forms.engine.errors import (
    DuplicateFieldId,
    TemplateError,
    UnknownCalculation,
    UnknownFieldType,
)
from clinical_forms.engine.field_types import FieldType
from clinical_forms.engine.models import ValueSlot
from clinical_forms.schemas.templates import parse_template


def _make_template(fields=None, fhir_mapping=None):
    return {
        "name": "general_assessment",
        "title": "General Assessment",
        "category": "nursing",
        "form_schema": {
            "version": "1.0",
            "sections": [
                {
                    "id": "vitals",
                    "title": "Vital Signs",
                    "fields": fields if fields is not None else [
                        {"id": "temperature", "type": "number_field", "label": "Temperature",
                         "min_value": 35, "max_value": 42, "unit": "Cel", "required": True},
                        {"id": "pain_score", "type": "clinical_scale", "min_scale": 0, "max_scale": 10},
                        {"id": "consciousness", "type": "select_field",
                         "options": [{"value": "alert", "label": "Alert"}, {"value": "voice", "label": "Voice"}]},
                    ],
                }
            ],
        },
        "fhir_mapping": fhir_mapping if fhir_mapping is not None else {
            "field_mappings": {
                "temperature": {"observation_concept_id": 3020891, "value_field": "value_number", "unit": "Cel"},
                "pain_score": {"concept_id": "pain", "value_slot": "number"},
            },
            "grouped_observations": {
                "vitals_panel": {"observation_concept_id": 9000, "fields": ["temperature", "temperature"]},
            },
            "calculated_observations": {
                "bmi": {"observation_concept_id": 3038553, "calculation": "bmi"},
            },
            "default_values": {"status": "preliminary", "ignored_key": True},
        },
    }


def test_parse_stored_template():
    template = parse_template(_make_template())

    temperature, pain, consciousness = template.form_schema.iter_fields()
    assert temperature.type is FieldType.NUMBER
    assert temperature.required
    assert temperature.constraints.min_value == 35
    assert pain.constraints.max_scale == 10
    assert consciousness.type is FieldType.SELECT
    assert consciousness.constraints.options == ["alert", "voice"]
    assert template.form_schema.field_ids == ["temperature", "pain_score", "consciousness"]

    mapping = template.fhir_mapping
    assert mapping.field_mappings["temperature"].value_slot is ValueSlot.NUMBER
    assert mapping.field_mappings["temperature"].concept_id == 3020891
    assert mapping.field_mappings["pain_score"].concept_id == "pain"
    assert mapping.grouped_observations[0].name == "vitals_panel"
    assert mapping.grouped_observations[0].field_ids == ["temperature"]
    assert mapping.calculated_observations[0].inputs == {"height": "height", "weight": "weight"}
    assert mapping.default_values.status == "preliminary"


def test_field_label_falls_back_to_id():
    template = parse_template(_make_template(fields=[{"id": "spo2", "type": "number"}]))
    [field_def] = template.form_schema.iter_fields()
    assert field_def.display_label == "spo2"


def test_duplicate_field_ids_rejected():
    fields = [{"id": "temperature", "type": "number"}, {"id": "temperature", "type": "text"}]
    with pytest.raises(DuplicateFieldId) as excinfo:
        parse_template(_make_template(fields=fields))
    assert excinfo.value.field_id == "temperature"


def test_unknown_field_type_rejected():
    with pytest.raises(UnknownFieldType, match="signature_pad"):
        parse_template(_make_template(fields=[{"id": "sig", "type": "signature_pad"}]))


def test_unknown_calculation_rejected():
    mapping = {
        "field_mappings": {},
        "calculated_observations": [{"name": "bsa", "concept_id": 1, "calculation": "body_surface_area"}],
    }
    with pytest.raises(UnknownCalculation) as excinfo:
        parse_template(_make_template(fhir_mapping=mapping))
    assert excinfo.value.calculation == "body_surface_area"


def test_structural_problems_become_template_errors():
    mapping = {"field_mappings": {"temperature": {"value_field": "value_number"}}}
    with pytest.raises(TemplateError, match="concept_id"):
        parse_template(_make_template(fhir_mapping=mapping))


def test_unknown_value_slot_rejected():
    mapping = {"field_mappings": {"temperature": {"concept_id": 1, "value_field": "value_blob"}}}
    with pytest.raises(TemplateError):
        parse_template(_make_template(fhir_mapping=mapping))
