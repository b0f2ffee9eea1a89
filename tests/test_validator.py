"""Tests for form data validation against a template schema."""

from datetime import date

from clinical_forms.engine.errors import ErrorKind
from clinical_forms.engine.validator import validate
from clinical_forms.schemas.templates import FormSchema


def _make_schema(*fields):
    return FormSchema.model_validate(
        {"sections": [{"id": "main", "title": "Main", "fields": list(fields)}]}
    )


TEMPERATURE = {
    "id": "temperature",
    "type": "number",
    "label": "Body Temperature",
    "constraints": {"min_value": 35.0, "max_value": 42.0},
}


def test_valid_submission():
    schema = _make_schema(
        TEMPERATURE,
        {"id": "visit_date", "type": "date", "required": True},
        {"id": "notes", "type": "text"},
    )
    outcome = validate(schema, {"temperature": "37.5", "visit_date": "2024-05-01", "notes": "ok"})

    assert outcome.is_valid
    assert outcome.validated_data == {
        "temperature": 37.5,
        "visit_date": date(2024, 5, 1),
        "notes": "ok",
    }


def test_out_of_range_value_is_rejected():
    outcome = validate(_make_schema(TEMPERATURE), {"temperature": 50.0})

    assert not outcome.is_valid
    assert outcome.validated_data == {}
    assert [e.kind for e in outcome.errors["temperature"]] == [ErrorKind.FIELD_OUT_OF_RANGE]
    assert outcome.messages() == {
        "temperature": ["The Body Temperature must not exceed 42.0."]
    }


def test_every_invalid_field_is_reported():
    schema = _make_schema(
        {"id": "chief_complaint", "type": "text", "required": True, "label": "Chief Complaint"},
        TEMPERATURE,
        {"id": "pain", "type": "clinical_scale"},
        {"id": "heart_rate", "type": "number"},
    )
    outcome = validate(schema, {"temperature": 99, "pain": 15, "heart_rate": 72})

    assert set(outcome.errors) == {"chief_complaint", "temperature", "pain"}
    assert outcome.errors["chief_complaint"][0].kind == ErrorKind.REQUIRED_FIELD_MISSING
    assert outcome.messages()["chief_complaint"] == ["The Chief Complaint field is required."]
    assert outcome.validated_data == {"heart_rate": 72}


def test_empty_optional_values_are_skipped():
    schema = _make_schema(
        TEMPERATURE,
        {"id": "notes", "type": "text", "constraints": {"max_length": 3}},
        {"id": "symptoms", "type": "multi_select", "constraints": {"options": ["a", "b"]}},
    )
    outcome = validate(schema, {"temperature": None, "notes": "", "symptoms": []})

    assert outcome.is_valid
    assert outcome.validated_data == {}
    assert outcome.field_count == 0


def test_zero_and_false_are_submitted_values():
    schema = _make_schema(
        {"id": "pain", "type": "clinical_scale", "required": True},
        {"id": "smoker", "type": "checkbox", "required": True},
    )
    outcome = validate(schema, {"pain": 0, "smoker": False})

    assert outcome.is_valid
    assert outcome.validated_data == {"pain": 0, "smoker": False}


def test_undeclared_keys_are_ignored_but_counted():
    schema = _make_schema(TEMPERATURE, {"id": "notes", "type": "text"})
    outcome = validate(schema, {"temperature": 37.0, "notes": "fine", "unexpected": "x", "blank": ""})

    assert "unexpected" not in outcome.validated_data
    assert outcome.field_count == 3
    # plain optional text has no rule to check
    assert outcome.validated_field_count == 1


def test_validation_is_idempotent():
    schema = _make_schema(TEMPERATURE, {"id": "email", "type": "email_field"})
    raw = {"temperature": "41", "email": "bad@"}
    assert validate(schema, raw) == validate(schema, raw)


def test_conditional_requirement():
    schema = _make_schema(
        {"id": "pregnant", "type": "checkbox"},
        {
            "id": "gestation_weeks",
            "type": "number",
            "required": True,
            "depends_on": {"field": "pregnant", "value": True},
        },
    )

    assert validate(schema, {"pregnant": False}).is_valid
    assert validate(schema, {}).is_valid

    outcome = validate(schema, {"pregnant": True})
    assert outcome.errors["gestation_weeks"][0].kind == ErrorKind.REQUIRED_FIELD_MISSING


def test_stored_field_layout():
    """Legacy ``*_field`` types with constraints on the field itself."""
    schema = _make_schema(
        {"id": "weight", "type": "number_field", "min_value": 0.5, "max_value": 500, "label": "Weight"},
        {"id": "consciousness", "type": "select_field", "options": {"alert": "Alert", "voice": "Voice"}},
    )
    outcome = validate(schema, {"weight": 600, "consciousness": "alert"})

    assert outcome.messages() == {"weight": ["The Weight must not exceed 500.0."]}


def test_oversized_integers_are_reported_not_raised():
    schema = _make_schema(
        {"id": "weight", "type": "number", "label": "Weight"},
        {"id": "pain", "type": "clinical_scale", "label": "Pain"},
    )
    outcome = validate(schema, {"weight": 10**400, "pain": 10**400})

    assert outcome.messages() == {
        "weight": ["The Weight must be a number."],
        "pain": ["The Pain must be a number."],
    }
    assert outcome.errors["weight"][0].kind == ErrorKind.FIELD_FORMAT_INVALID
