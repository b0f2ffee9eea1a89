"""
Grouped and calculated observations.

Both passes read ``validated_data`` rather than the individual observations,
so they see exactly the set of fields that were submitted and passed
validation.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any

from clinical_forms.engine.calculations import get_calculation
from clinical_forms.engine.models import Observation
from clinical_forms.engine.validator import is_empty
from clinical_forms.schemas.templates import CalcSpec, FieldMapping, GroupSpec, RelationshipSpec

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    return value.isoformat() if isinstance(value, date) else value


def _present(validated_data: dict[str, Any], field_id: str) -> bool:
    return field_id in validated_data and not is_empty(validated_data[field_id])


def build_group_observation(
    group: GroupSpec,
    validated_data: dict[str, Any],
    mapping: FieldMapping,
) -> Observation | None:
    """Bundle the group's mapped, submitted fields; None when none of them were submitted."""
    value = {
        field_id: _jsonable(validated_data[field_id])
        for field_id in group.field_ids
        if field_id in mapping.field_mappings and _present(validated_data, field_id)
    }
    if not value:
        return None
    return Observation(
        concept_id=group.concept_id,
        code=group.code,
        value_complex=value,
        status=mapping.default_values.status,
    )


def group_observations(validated_data: dict[str, Any], mapping: FieldMapping) -> list[Observation]:
    observations = []
    for group in mapping.grouped_observations:
        observation = build_group_observation(group, validated_data, mapping)
        if observation is not None:
            observations.append(observation)
    return observations


def build_calculated_observation(
    calc: CalcSpec,
    validated_data: dict[str, Any],
    status: str = "final",
) -> Observation | None:
    missing = [fid for fid in calc.required_field_ids if not _present(validated_data, fid)]
    if missing:
        logger.debug("Skipping calculation '%s': missing %s", calc.name, missing)
        return None

    calculation = get_calculation(calc.calculation)
    inputs = {role: validated_data.get(field_id) for role, field_id in calc.inputs.items()}
    result = calculation.evaluate(inputs)
    if result is None:
        logger.debug("Calculation '%s' produced no value for %s", calc.name, inputs)
        return None

    return Observation(
        concept_id=calc.concept_id,
        code=calc.code,
        value_number=result,
        unit=calc.unit or calculation.unit,
        status=status,
    )


def calculated_observations(validated_data: dict[str, Any], mapping: FieldMapping) -> list[Observation]:
    observations = []
    for calc in mapping.calculated_observations:
        observation = build_calculated_observation(calc, validated_data, mapping.default_values.status)
        if observation is not None:
            observations.append(observation)
    return observations


def link_relationships(
    observations: list[Observation],
    relationships: list[RelationshipSpec],
) -> list[Observation]:
    """Point child observations at their parent's code. Observations are not mutated."""
    present_codes = {obs.code for obs in observations}
    parent_of: dict[str, str] = {}
    for relationship in relationships:
        if relationship.parent_code not in present_codes:
            continue
        for child_code in relationship.child_codes:
            if child_code != relationship.parent_code:
                parent_of.setdefault(child_code, relationship.parent_code)

    return [
        replace(obs, parent_code=parent_of[obs.code]) if obs.code in parent_of else obs
        for obs in observations
    ]
