"""
FastAPI routes.

Two kinds of bad input are told apart by status code:
- 422: the request body itself is malformed (pydantic request models)
- 400: the body is well formed but the submitted values fail the form's
  own schema, or a template fails its structural checks
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from clinical_forms.config import settings
from clinical_forms.engine.models import Observation, OutcomeStatus, SubmissionOutcome
from clinical_forms.models.database import get_db, ping
from clinical_forms.schemas.api import (
    FormErrorDetail,
    HealthResponse,
    ObservationOut,
    ObservationSummary,
    SubmissionResponse,
    SubmitFormRequest,
    TemplateCreateRequest,
    TemplateResponse,
    ValidationSummary,
)
from clinical_forms.services.fhir_export import to_fhir_bundle
from clinical_forms.services.submission import (
    EncounterNotFound,
    SubmissionRejected,
    load_encounter,
    record_to_observation,
    submit_form,
)
from clinical_forms.services.templates import TemplateRejected, create_template, get_template

router = APIRouter()


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database="connected" if ping(db) else "disconnected",
    )


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def _template_response(template) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        name=template.name,
        title=template.title,
        category=template.category,
        active=template.active,
        field_count=sum(
            len(section.get("fields", [])) for section in template.form_schema.get("sections", [])
        ),
        created_at=template.created_at,
    )


@router.post("/templates", response_model=TemplateResponse, status_code=201)
def create_form_template(request: TemplateCreateRequest, db: Session = Depends(get_db)):
    try:
        template = create_template(db, request.model_dump(exclude_none=True))
    except TemplateRejected as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid form template", "errors": exc.errors},
        ) from exc
    return _template_response(template)


@router.get("/templates/{template_id}", response_model=TemplateResponse)
def read_form_template(template_id: UUID, db: Session = Depends(get_db)):
    template = get_template(db, template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Form template not found")
    return _template_response(template)


# ---------------------------------------------------------------------------
# Form submission
# ---------------------------------------------------------------------------

def _observation_out(observation: Observation) -> ObservationOut:
    return ObservationOut(**observation.to_dict())


def build_submission_response(encounter_id: UUID, outcome: SubmissionOutcome) -> SubmissionResponse:
    """Translate an engine outcome into a response body, or raise the matching HTTP error."""
    if outcome.status == OutcomeStatus.VALIDATION_FAILED:
        raise HTTPException(
            status_code=400,
            detail=FormErrorDetail(
                message="Form data failed validation", errors=outcome.errors
            ).model_dump(),
        )
    if outcome.status == OutcomeStatus.ENGINE_FAILED:
        raise HTTPException(status_code=500, detail=outcome.message)

    result, validation = outcome.result, outcome.validation
    summary = result.summary
    return SubmissionResponse(
        encounter_id=encounter_id,
        observations=[_observation_out(obs) for obs in result.observations],
        observations_created=result.observations_count,
        validation_summary=ValidationSummary(
            total_fields=validation.field_count,
            validated_fields=validation.validated_field_count,
        ),
        observation_summary=ObservationSummary(
            total_form_fields=summary.total_form_fields,
            observations_created=summary.observations_created,
            observation_types=summary.observation_types,
            value_types=summary.value_types,
            has_complex_values=summary.has_complex_values,
            has_calculated_values=summary.has_calculated_values,
        ),
    )


@router.post("/encounters/{encounter_id}/form", response_model=SubmissionResponse)
def submit_encounter_form(
    encounter_id: UUID,
    request: SubmitFormRequest,
    db: Session = Depends(get_db),
):
    """Validate submitted form values and store the resulting observations."""
    try:
        outcome = submit_form(db, encounter_id, request.form_data)
    except EncounterNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except SubmissionRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return build_submission_response(encounter_id, outcome)


@router.get("/encounters/{encounter_id}/observations", response_model=list[ObservationOut])
def list_encounter_observations(encounter_id: UUID, db: Session = Depends(get_db)):
    try:
        encounter = load_encounter(db, encounter_id)
    except EncounterNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [_observation_out(record_to_observation(r)) for r in encounter.observations]


@router.get("/encounters/{encounter_id}/observations/fhir")
def export_encounter_observations(encounter_id: UUID, db: Session = Depends(get_db)):
    """Observations of one encounter as a FHIR collection Bundle."""
    try:
        encounter = load_encounter(db, encounter_id)
    except EncounterNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return to_fhir_bundle([record_to_observation(r) for r in encounter.observations])
