"""
Export engine observations as FHIR R4-style Observation resources.

Scalar values map onto the matching ``value[x]`` element. Complex values
(blood pressure, grouped panels) become ``component`` entries, one per key.
This is a pragmatic subset, not a conformance-checked FHIR serializer.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from clinical_forms.config import settings
from clinical_forms.engine.models import Observation, ValueSlot

LOCAL_CODE_SYSTEM = settings.FHIR_CODE_SYSTEM


def _coding(code: str, system: str) -> dict[str, Any]:
    return {"coding": [{"system": system, "code": code}]}


def _component_value(value: Any, unit: str | None = None) -> dict[str, Any]:
    if isinstance(value, bool):
        return {"valueBoolean": value}
    if isinstance(value, (int, float)):
        quantity: dict[str, Any] = {"value": value}
        if unit:
            quantity["unit"] = unit
        return {"valueQuantity": quantity}
    if isinstance(value, list) and all(not isinstance(v, (dict, list)) for v in value):
        return {"valueString": ", ".join(str(v) for v in value)}
    if isinstance(value, (dict, list)):
        return {"valueString": json.dumps(value, sort_keys=True, default=str)}
    return {"valueString": str(value)}


def _components(value: dict[str, Any] | list[Any], system: str) -> list[dict[str, Any]]:
    if isinstance(value, list):
        return [
            {"code": _coding(str(index), system), **_component_value(item)}
            for index, item in enumerate(value)
        ]
    unit = value.get("unit") if isinstance(value.get("unit"), str) else None
    return [
        {"code": _coding(key, system), **_component_value(item, unit)}
        for key, item in value.items()
        if key != "unit"
    ]


def to_fhir_observation(observation: Observation, system: str = LOCAL_CODE_SYSTEM) -> dict[str, Any]:
    resource: dict[str, Any] = {
        "resourceType": "Observation",
        "status": observation.status,
        "code": _coding(observation.code, system),
    }
    if observation.patient_id is not None:
        resource["subject"] = {"reference": f"Patient/{observation.patient_id}"}
    if observation.encounter_id is not None:
        resource["encounter"] = {"reference": f"Encounter/{observation.encounter_id}"}
    if observation.observed_at is not None:
        resource["effectiveDateTime"] = observation.observed_at.isoformat()

    slot, value = observation.value_type, observation.value
    if slot == ValueSlot.NUMBER:
        resource.update(_component_value(value, observation.unit))
    elif slot == ValueSlot.BOOLEAN:
        resource["valueBoolean"] = value
    elif slot == ValueSlot.DATETIME:
        resource["valueDateTime"] = value.isoformat() if isinstance(value, datetime) else str(value)
    elif slot == ValueSlot.COMPLEX:
        resource["component"] = _components(value, system)
    else:
        resource["valueString"] = value
    return resource


def to_fhir_bundle(observations: list[Observation], system: str = LOCAL_CODE_SYSTEM) -> dict[str, Any]:
    return {
        "resourceType": "Bundle",
        "type": "collection",
        "entry": [{"resource": to_fhir_observation(obs, system)} for obs in observations],
    }
