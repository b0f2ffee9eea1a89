"""
Turns validated form values into single-slot observation drafts.

One draft per mapped field that survived validation. Fields that were not
submitted (or submitted empty) never reach ``validated_data`` and so produce
no observation.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time
from typing import Any, Callable

from clinical_forms.engine.errors import MappingError, UnknownComplexType
from clinical_forms.engine.field_types import to_bool, to_number
from clinical_forms.engine.models import Observation, ValueSlot
from clinical_forms.engine.validator import is_empty
from clinical_forms.schemas.templates import FieldMapping, MappingSpec

BLOOD_PRESSURE_RE = re.compile(r"(\d+)\s*/\s*(\d+)")
DOSAGE_PARTS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([A-Za-z]+)")


# ---------------------------------------------------------------------------
# Complex value decoders
# ---------------------------------------------------------------------------

def parse_blood_pressure(field_id: str, value: Any, observed_at: datetime | None) -> dict[str, Any]:
    match = BLOOD_PRESSURE_RE.search(value) if isinstance(value, str) else None
    if match is None:
        raise MappingError(field_id, f"blood pressure '{value}' is not in systolic/diastolic form")
    return {"systolic": int(match.group(1)), "diastolic": int(match.group(2)), "unit": "mmHg"}


def parse_medication_dosage(field_id: str, value: Any, observed_at: datetime | None) -> dict[str, Any]:
    match = DOSAGE_PARTS_RE.search(value) if isinstance(value, str) else None
    if match is None:
        raise MappingError(field_id, f"dosage '{value}' has no amount and unit")
    return {"amount": float(match.group(1)), "unit": match.group(2), "original_text": value}


def parse_vital_signs_set(field_id: str, value: Any, observed_at: datetime | None) -> list[dict[str, Any]]:
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise MappingError(field_id, "vital signs set must be a list of readings")
    default_timestamp = observed_at.isoformat() if observed_at else None
    return [
        {
            "value": item.get("value"),
            "unit": item.get("unit"),
            "timestamp": item.get("timestamp") or default_timestamp,
        }
        for item in value
    ]


COMPLEX_DECODERS: dict[str, Callable[[str, Any, datetime | None], Any]] = {
    "blood_pressure": parse_blood_pressure,
    "medication_dosage": parse_medication_dosage,
    "vital_signs_set": parse_vital_signs_set,
}


# Complex types whose structured (list) values are reshaped rather than stored as-is.
NORMALIZED_COMPLEX_TYPES = {"vital_signs_set"}


def to_complex(field_id: str, value: Any, spec: MappingSpec, observed_at: datetime | None = None) -> Any:
    """
    Structured values (lists and dicts) are stored verbatim whatever the
    ``complex_type``, except a vital signs set list, whose readings are
    normalized. Scalars go through the type's decoder.
    """
    decoder = COMPLEX_DECODERS.get(spec.complex_type or "")
    if isinstance(value, (list, dict)):
        if isinstance(value, list) and spec.complex_type in NORMALIZED_COMPLEX_TYPES:
            return decoder(field_id, value, observed_at)
        return value
    if decoder is None:
        raise UnknownComplexType(field_id, spec.complex_type)
    return decoder(field_id, value, observed_at)


# ---------------------------------------------------------------------------
# Scalar slot conversion
# ---------------------------------------------------------------------------

def to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def slot_value(field_id: str, value: Any, spec: MappingSpec, observed_at: datetime | None = None) -> Any:
    """Express ``value`` in the mapping's value slot or raise MappingError."""
    slot = spec.value_slot
    if slot == ValueSlot.COMPLEX:
        return to_complex(field_id, value, spec, observed_at)
    if slot in (ValueSlot.STRING, ValueSlot.TEXT):
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        return value.isoformat() if isinstance(value, date) else str(value)

    converters: dict[ValueSlot, Callable[[Any], Any]] = {
        ValueSlot.NUMBER: to_number,
        ValueSlot.DATETIME: to_datetime,
        ValueSlot.BOOLEAN: to_bool,
    }
    converted = converters[slot](value)
    if converted is None:
        raise MappingError(field_id, f"value {value!r} cannot be stored as {slot.value}")
    return converted


def build_observation(
    field_id: str,
    value: Any,
    spec: MappingSpec,
    *,
    status: str = "final",
    observed_at: datetime | None = None,
) -> Observation:
    return Observation(
        concept_id=spec.concept_id,
        code=spec.observation_code or field_id,
        unit=spec.unit,
        status=status,
        body_site_id=spec.body_site_id,
        reference_range=spec.reference_range,
        **{spec.value_slot.attribute: slot_value(field_id, value, spec, observed_at)},
    )


def map_observations(
    validated_data: dict[str, Any],
    mapping: FieldMapping,
    observed_at: datetime | None = None,
) -> list[Observation]:
    """One observation per mapped field present in ``validated_data``, in schema order."""
    status = mapping.default_values.status
    return [
        build_observation(field_id, value, mapping.field_mappings[field_id],
                          status=status, observed_at=observed_at)
        for field_id, value in validated_data.items()
        if field_id in mapping.field_mappings and not is_empty(value)
    ]
