"""
Form submission against an encounter.

Loads the encounter and its template, runs the engine, and persists the
result. Everything produced by one successful submission (observation rows,
parent links, encounter completion, audit entry) is committed together or
not at all.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from clinical_forms.config import settings
from clinical_forms.engine.models import (
    GenerationResult,
    Observation,
    Submission,
    SubmissionOutcome,
    ValueSlot,
)
from clinical_forms.engine.orchestrator import Clock, SubmissionOrchestrator, build_generation_pipeline
from clinical_forms.models.records import Encounter, ObservationRecord, SubmissionRun
from clinical_forms.schemas.templates import parse_template
from clinical_forms.services.audit import log_action

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EncounterNotFound(Exception):
    pass


class SubmissionRejected(Exception):
    """The encounter cannot take a form submission in its current state."""


def load_encounter(db: Session, encounter_id: UUID) -> Encounter:
    encounter = db.query(Encounter).filter(Encounter.id == encounter_id).first()
    if encounter is None:
        raise EncounterNotFound(f"Encounter {encounter_id} not found")
    return encounter


def _to_record(observation: Observation) -> ObservationRecord:
    return ObservationRecord(
        patient_id=observation.patient_id,
        encounter_id=observation.encounter_id,
        concept_id=str(observation.concept_id),
        code=observation.code,
        status=observation.status,
        body_site_id=None if observation.body_site_id is None else str(observation.body_site_id),
        unit=observation.unit,
        reference_range=observation.reference_range,
        observed_at=observation.observed_at,
        **{observation.value_type.attribute: observation.value},
    )


def record_to_observation(record: ObservationRecord) -> Observation:
    """Rebuild an engine Observation from a stored row (used for FHIR export)."""
    values = {
        slot.attribute: getattr(record, slot.attribute)
        for slot in ValueSlot
        if getattr(record, slot.attribute) is not None
    }
    return Observation(
        concept_id=record.concept_id,
        code=record.code,
        unit=record.unit,
        status=record.status,
        body_site_id=record.body_site_id,
        reference_range=record.reference_range,
        patient_id=record.patient_id,
        encounter_id=record.encounter_id,
        observed_at=record.observed_at,
        **values,
    )


def persist_generation(
    db: Session,
    encounter: Encounter,
    result: GenerationResult,
    *,
    completed_at: datetime,
    actor: str,
) -> list[ObservationRecord]:
    """Write all observations and related updates in a single transaction."""
    try:
        records = [_to_record(obs) for obs in result.observations]
        db.add_all(records)
        db.flush()

        by_code = {record.code: record for record in records}
        for obs, record in zip(result.observations, records):
            if obs.parent_code and obs.parent_code in by_code:
                record.parent_id = by_code[obs.parent_code].id

        if encounter.is_active and encounter.ended_at is None:
            encounter.ended_at = completed_at

        log_action(
            db,
            actor=actor,
            action="submit",
            resource_type="Encounter",
            resource_id=encounter.id,
            detail={
                "form_template": encounter.form_template.name,
                "observations_created": result.observations_count,
            },
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    return records


def _record_run(db: Session, encounter: Encounter, outcome: SubmissionOutcome, submitted_at: datetime) -> None:
    validation = outcome.validation
    db.add(
        SubmissionRun(
            encounter_id=encounter.id,
            status=outcome.status.value,
            submitted_at=submitted_at,
            field_count=validation.field_count if validation else 0,
            validated_field_count=validation.validated_field_count if validation else 0,
            observations_created=outcome.result.observations_count if outcome.result else 0,
            errors=outcome.errors or ({"engine": outcome.message} if outcome.message else {}),
            dag_definition=build_generation_pipeline().to_dict(),
        )
    )
    db.commit()


def submit_form(
    db: Session,
    encounter_id: UUID,
    form_data: dict[str, Any],
    *,
    clock: Clock = utc_now,
    actor: str = settings.DEFAULT_ACTOR,
) -> SubmissionOutcome:
    encounter = load_encounter(db, encounter_id)
    if encounter.form_template is None:
        raise SubmissionRejected("No clinical form template associated with this encounter")
    if encounter.discharged_at is not None:
        raise SubmissionRejected("Cannot submit form for discharged patient")

    template = parse_template(encounter.form_template.as_template_dict())
    submitted_at = clock()
    orchestrator = SubmissionOrchestrator(clock=lambda: submitted_at, logger=logger)
    outcome = orchestrator.process(
        template.form_schema,
        template.fhir_mapping,
        Submission(encounter_id=encounter.id, patient_id=encounter.patient_id, raw_data=form_data),
    )

    if outcome.ok:
        persist_generation(db, encounter, outcome.result, completed_at=submitted_at, actor=actor)
        logger.info(
            "Clinical form completed: encounter=%s patient=%s template=%s observations=%d",
            encounter.id,
            encounter.patient_id,
            template.name,
            outcome.result.observations_count,
        )
    _record_run(db, encounter, outcome, submitted_at)
    return outcome
