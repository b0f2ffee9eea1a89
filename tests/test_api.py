"""Route tests – the database session and submission service are stubbed out."""

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from clinical_forms.api import routes
from clinical_forms.engine.models import Submission
from clinical_forms.engine.orchestrator import SubmissionOrchestrator
from clinical_forms.main import app
from clinical_forms.models.database import get_db
from clinical_forms.schemas.templates import parse_template
from clinical_forms.services.submission import EncounterNotFound, SubmissionRejected

ENCOUNTER_ID = uuid.uuid4()

TEMPLATE = parse_template({
    "name": "vitals",
    "form_schema": {
        "sections": [{
            "id": "vitals",
            "fields": [
                {"id": "temperature", "type": "number", "label": "Body Temperature",
                 "constraints": {"min_value": 35, "max_value": 42}},
                {"id": "blood_pressure", "type": "text"},
            ],
        }]
    },
    "fhir_mapping": {
        "field_mappings": {
            "temperature": {"concept_id": 3020891, "value_slot": "number", "unit": "Cel"},
            "blood_pressure": {"concept_id": 3004249, "value_slot": "complex", "complex_type": "blood_pressure"},
        }
    },
})


def _run_engine(form_data):
    orchestrator = SubmissionOrchestrator(clock=lambda: datetime(2024, 5, 1, tzinfo=timezone.utc))
    submission = Submission(encounter_id=ENCOUNTER_ID, patient_id="pat-1", raw_data=form_data)
    return orchestrator.process(TEMPLATE.form_schema, TEMPLATE.fhir_mapping, submission)


@pytest.fixture
def client(monkeypatch):
    def fake_submit_form(db, encounter_id, form_data):
        if form_data.get("mode") == "missing":
            raise EncounterNotFound(f"Encounter {encounter_id} not found")
        if form_data.get("mode") == "discharged":
            raise SubmissionRejected("Cannot submit form for discharged patient")
        return _run_engine(form_data)

    monkeypatch.setattr(routes, "submit_form", fake_submit_form)
    app.dependency_overrides[get_db] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()


def _submit(client, form_data):
    return client.post(f"/api/v1/encounters/{ENCOUNTER_ID}/form", json={"form_data": form_data})


def test_successful_submission(client):
    response = _submit(client, {"temperature": 37.5, "blood_pressure": "120/80"})

    assert response.status_code == 200
    body = response.json()
    assert body["observations_created"] == 2
    assert body["validation_summary"] == {"total_fields": 2, "validated_fields": 1}
    assert body["observation_summary"]["has_complex_values"] is True
    bp = body["observations"][1]
    assert bp["value_type"] == "complex"
    assert bp["value_complex"] == {"systolic": 120, "diastolic": 80, "unit": "mmHg"}


def test_invalid_form_data_returns_400(client):
    response = _submit(client, {"temperature": 50})

    assert response.status_code == 400
    assert response.json()["detail"] == {
        "message": "Form data failed validation",
        "errors": {"temperature": ["The Body Temperature must not exceed 42.0."]},
    }


def test_malformed_body_returns_422(client):
    response = client.post(f"/api/v1/encounters/{ENCOUNTER_ID}/form", json={"form_data": "nope"})
    assert response.status_code == 422


def test_engine_failure_returns_generic_500(client):
    response = _submit(client, {"blood_pressure": "very high"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Observation generation failed"


def test_unknown_encounter_returns_404(client):
    assert _submit(client, {"mode": "missing"}).status_code == 404


def test_discharged_patient_returns_409(client):
    response = _submit(client, {"mode": "discharged"})
    assert response.status_code == 409
    assert response.json()["detail"] == "Cannot submit form for discharged patient"


class _FakeSession:
    def __init__(self, fail=False):
        self.fail = fail

    def execute(self, statement):
        if self.fail:
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))


@pytest.mark.parametrize("fail, expected", [(False, "connected"), (True, "disconnected")])
def test_health(fail, expected):
    app.dependency_overrides[get_db] = lambda: _FakeSession(fail)
    try:
        response = TestClient(app).get("/api/v1/health")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["database"] == expected
