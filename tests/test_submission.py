"""Tests for the submission service; the database session is a recording fake."""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import Text
from sqlalchemy.exc import OperationalError

from clinical_forms.engine.models import GenerationResult, GenerationSummary, Observation
from clinical_forms.models.records import AuditLog, ObservationRecord
from clinical_forms.services.submission import (
    SubmissionRejected,
    persist_generation,
    submit_form,
)

COMPLETED_AT = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
PATIENT_ID = uuid.uuid4()


class _RecordingSession:
    """Collects what the service adds; ``fail_on`` makes flush or commit raise."""

    def __init__(self, fail_on=None, encounter=None):
        self.fail_on = fail_on
        self.encounter = encounter
        self.added = []
        self.commits = 0
        self.rollbacks = 0

    def add(self, obj):
        self.added.append(obj)

    def add_all(self, objs):
        self.added.extend(objs)

    def flush(self):
        if self.fail_on == "flush":
            raise OperationalError("INSERT", {}, Exception("connection lost"))
        for obj in self.added:
            if getattr(obj, "id", None) is None:
                obj.id = uuid.uuid4()

    def commit(self):
        if self.fail_on == "commit":
            raise OperationalError("COMMIT", {}, Exception("connection lost"))
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def query(self, model):
        return _Query(self.encounter)


class _Query:
    def __init__(self, result):
        self.result = result

    def filter(self, *criteria):
        return self

    def first(self):
        return self.result


def _make_encounter(**overrides):
    encounter = {
        "id": uuid.uuid4(),
        "patient_id": PATIENT_ID,
        "is_active": True,
        "ended_at": None,
        "discharged_at": None,
        "form_template": SimpleNamespace(name="vitals"),
    }
    encounter.update(overrides)
    return SimpleNamespace(**encounter)


def _make_result(encounter, *extra):
    observations = [
        Observation(concept_id=3025315, code="weight", value_number=70, unit="kg"),
        Observation(concept_id=3036277, code="height", value_number=175, unit="cm", parent_code="weight"),
        *extra,
    ]
    observations = [
        obs.stamped(patient_id=encounter.patient_id, encounter_id=encounter.id, observed_at=COMPLETED_AT)
        for obs in observations
    ]
    return GenerationResult(
        observations=observations,
        summary=GenerationSummary.build(observations, total_form_fields=len(observations)),
    )


def test_persist_writes_everything_in_one_commit():
    encounter = _make_encounter()
    db = _RecordingSession()

    records = persist_generation(
        db, encounter, _make_result(encounter), completed_at=COMPLETED_AT, actor="nurse_1"
    )

    assert db.commits == 1
    assert db.rollbacks == 0
    weight, height = records
    assert height.parent_id == weight.id
    assert weight.parent_id is None
    assert weight.value_number == 70
    assert weight.concept_id == "3025315"
    assert encounter.ended_at == COMPLETED_AT

    [audit] = [obj for obj in db.added if isinstance(obj, AuditLog)]
    assert audit.action == "submit"
    assert audit.actor == "nurse_1"
    assert audit.detail == {"form_template": "vitals", "observations_created": 2}


def test_persist_keeps_existing_encounter_end():
    ended = datetime(2024, 4, 30, tzinfo=timezone.utc)
    encounter = _make_encounter(ended_at=ended)

    persist_generation(
        _RecordingSession(), encounter, _make_result(encounter), completed_at=COMPLETED_AT, actor="x"
    )
    assert encounter.ended_at == ended


@pytest.mark.parametrize("fail_on", ["flush", "commit"])
def test_persist_rolls_back_on_failure(fail_on):
    encounter = _make_encounter()
    db = _RecordingSession(fail_on=fail_on)

    with pytest.raises(OperationalError):
        persist_generation(db, encounter, _make_result(encounter), completed_at=COMPLETED_AT, actor="x")

    assert db.rollbacks == 1
    assert db.commits == 0


def test_long_strings_fit_the_string_slot():
    assert isinstance(ObservationRecord.__table__.c.value_string.type, Text)

    encounter = _make_encounter()
    long_note = "stable " * 200
    result = _make_result(encounter, Observation(concept_id=1, code="notes", value_string=long_note))

    records = persist_generation(_RecordingSession(), encounter, result, completed_at=COMPLETED_AT, actor="x")
    assert records[-1].value_string == long_note


def test_discharged_encounter_is_rejected():
    db = _RecordingSession(encounter=_make_encounter(discharged_at=COMPLETED_AT))

    with pytest.raises(SubmissionRejected, match="discharged"):
        submit_form(db, uuid.uuid4(), {"weight": 70})
    assert db.added == []


def test_encounter_without_template_is_rejected():
    db = _RecordingSession(encounter=_make_encounter(form_template=None))

    with pytest.raises(SubmissionRejected, match="No clinical form template"):
        submit_form(db, uuid.uuid4(), {"weight": 70})
