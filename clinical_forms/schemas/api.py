"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Union
from uuid import UUID

from pydantic import BaseModel, Field

FormValue = Union[str, int, float, bool, None, list[Any], dict[str, Any]]


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

class TemplateCreateRequest(BaseModel):
    """Raw template payload; structure is checked against the template JSON schema."""
    name: str = Field(..., min_length=1, max_length=128)
    title: str | None = None
    category: str | None = None
    form_schema: dict[str, Any]
    fhir_mapping: dict[str, Any]


class TemplateResponse(BaseModel):
    id: UUID
    name: str
    title: str | None
    category: str | None
    active: bool
    field_count: int
    created_at: datetime


# ---------------------------------------------------------------------------
# Form submission
# ---------------------------------------------------------------------------

class SubmitFormRequest(BaseModel):
    form_data: dict[str, FormValue]


class ObservationOut(BaseModel):
    patient_id: Any
    encounter_id: Any
    concept_id: Any
    code: str
    status: str
    value_type: str
    value_number: float | None = None
    value_string: str | None = None
    value_text: str | None = None
    value_datetime: str | None = None
    value_boolean: bool | None = None
    value_complex: dict[str, Any] | list[Any] | None = None
    unit: str | None = None
    body_site_id: Any = None
    reference_range: dict[str, Any] | None = None
    parent_code: str | None = None
    observed_at: str | None = None


class ObservationSummary(BaseModel):
    total_form_fields: int
    observations_created: int
    observation_types: dict[str, int] = {}
    value_types: dict[str, int] = {}
    has_complex_values: bool = False
    has_calculated_values: bool = False


class ValidationSummary(BaseModel):
    total_fields: int
    validated_fields: int


class SubmissionResponse(BaseModel):
    encounter_id: UUID
    observations: list[ObservationOut]
    observations_created: int
    validation_summary: ValidationSummary
    observation_summary: ObservationSummary


class FormErrorDetail(BaseModel):
    """Body of a 400 response when submitted values fail the form schema."""
    message: str
    errors: dict[str, list[str]]


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
