"""
Runtime records produced by the form engine.

Template structures (schema, mapping, groups, calculations) are parsed once
by ``clinical_forms.schemas.templates``; everything in this module is created
fresh for a single submission and handed back to the caller.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from clinical_forms.engine.errors import FieldError


class ValueSlot(str, Enum):
    NUMBER = "number"
    STRING = "string"
    TEXT = "text"
    DATETIME = "datetime"
    BOOLEAN = "boolean"
    COMPLEX = "complex"

    @property
    def attribute(self) -> str:
        return f"value_{self.value}"


@dataclass(frozen=True)
class Submission:
    encounter_id: Any
    patient_id: Any
    raw_data: dict[str, Any]


@dataclass(frozen=True)
class ValidationOutcome:
    validated_data: dict[str, Any]
    errors: dict[str, list[FieldError]]
    field_count: int
    validated_field_count: int

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def messages(self) -> dict[str, list[str]]:
        """Error map in the ``{field_id: [message, ...]}`` shape used by the API."""
        return {field_id: [e.message for e in errs] for field_id, errs in self.errors.items()}


@dataclass(frozen=True)
class Observation:
    """
    One coded clinical observation.

    Exactly one ``value_*`` slot is populated; construction fails otherwise.
    Drafts coming out of the mapper and aggregator have no patient, encounter
    or timestamp yet; the orchestrator stamps them via ``stamped()``.
    """

    concept_id: Any
    code: str
    value_number: float | int | None = None
    value_string: str | None = None
    value_text: str | None = None
    value_datetime: datetime | None = None
    value_boolean: bool | None = None
    value_complex: dict[str, Any] | list[Any] | None = None
    unit: str | None = None
    status: str = "final"
    body_site_id: Any = None
    reference_range: dict[str, Any] | None = None
    parent_code: str | None = None
    patient_id: Any = None
    encounter_id: Any = None
    observed_at: datetime | None = None

    def __post_init__(self):
        populated = [
            slot for slot in ValueSlot if getattr(self, slot.attribute) is not None
        ]
        if len(populated) != 1:
            raise ValueError(
                f"Observation '{self.code}' must populate exactly one value slot, "
                f"got {[s.value for s in populated]}"
            )

    @property
    def value_type(self) -> ValueSlot:
        for slot in ValueSlot:
            if getattr(self, slot.attribute) is not None:
                return slot
        raise AssertionError("unreachable")

    @property
    def value(self) -> Any:
        return getattr(self, self.value_type.attribute)

    def stamped(self, *, patient_id: Any, encounter_id: Any, observed_at: datetime) -> Observation:
        return replace(
            self, patient_id=patient_id, encounter_id=encounter_id, observed_at=observed_at
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "patient_id": self.patient_id,
            "encounter_id": self.encounter_id,
            "concept_id": self.concept_id,
            "code": self.code,
            "status": self.status,
            "value_type": self.value_type.value,
            "unit": self.unit,
            "body_site_id": self.body_site_id,
            "reference_range": self.reference_range,
            "parent_code": self.parent_code,
            "observed_at": self.observed_at.isoformat() if self.observed_at else None,
        }
        for slot in ValueSlot:
            value = getattr(self, slot.attribute)
            if isinstance(value, datetime):
                value = value.isoformat()
            data[slot.attribute] = value
        return data


@dataclass(frozen=True)
class GenerationSummary:
    total_form_fields: int
    observations_created: int
    observation_types: dict[str, int] = field(default_factory=dict)
    value_types: dict[str, int] = field(default_factory=dict)
    has_complex_values: bool = False
    has_calculated_values: bool = False

    @classmethod
    def build(
        cls,
        observations: list[Observation],
        *,
        total_form_fields: int,
        calculated_codes: set[str] | None = None,
    ) -> GenerationSummary:
        observation_types = Counter(obs.code for obs in observations if obs.code)
        value_types = Counter(obs.value_type.value for obs in observations)
        return cls(
            total_form_fields=total_form_fields,
            observations_created=len(observations),
            observation_types=dict(observation_types),
            value_types=dict(value_types),
            has_complex_values=ValueSlot.COMPLEX.value in value_types,
            has_calculated_values=any(
                obs.code in (calculated_codes or set()) for obs in observations
            ),
        )


@dataclass(frozen=True)
class GenerationResult:
    observations: list[Observation]
    summary: GenerationSummary

    @property
    def observations_count(self) -> int:
        return len(self.observations)


class OutcomeStatus(str, Enum):
    OK = "ok"
    VALIDATION_FAILED = "validation_failed"
    ENGINE_FAILED = "engine_failed"


@dataclass(frozen=True)
class SubmissionOutcome:
    """
    What ``SubmissionOrchestrator.process`` hands back.

    Exactly one of three shapes:
    - ``ok``: ``result`` holds the generated observations and summary
    - ``validation_failed``: ``errors`` maps field ids to messages, no observations
    - ``engine_failed``: ``message`` describes an unexpected internal failure
    """

    status: OutcomeStatus
    result: GenerationResult | None = None
    validation: ValidationOutcome | None = None
    errors: dict[str, list[str]] = field(default_factory=dict)
    message: str | None = None
    pipeline: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.status == OutcomeStatus.OK
