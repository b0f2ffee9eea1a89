"""
Schema validation for submitted form data.

Walks every field of every section in schema order and checks the raw
submitted value against the field's type and constraints. Nothing is raised
and nothing short-circuits: one call reports every invalid field.
"""

from __future__ import annotations

import logging
from typing import Any

from clinical_forms.engine.errors import ErrorKind, FieldError
from clinical_forms.engine.field_types import coerce, has_active_rule
from clinical_forms.engine.models import ValidationOutcome
from clinical_forms.schemas.templates import FieldDef, FormSchema

logger = logging.getLogger(__name__)


def is_empty(value: Any) -> bool:
    """``None``, ``""`` and ``[]`` count as not submitted; ``0`` and ``False`` do not."""
    return value is None or value == "" or (isinstance(value, (list, dict)) and not value)


def is_required(field_def: FieldDef, raw_data: dict[str, Any]) -> bool:
    if not field_def.required:
        return False
    dependency = field_def.depends_on
    if dependency is None:
        return True
    return raw_data.get(dependency.field) == dependency.value


def validate(schema: FormSchema, raw_data: dict[str, Any]) -> ValidationOutcome:
    """
    Validate ``raw_data`` against ``schema``.

    Keys that the schema does not declare are ignored. Empty values are
    skipped unless the field is required.
    """
    validated: dict[str, Any] = {}
    errors: dict[str, list[FieldError]] = {}
    validated_field_count = 0

    for field_def in schema.iter_fields():
        raw = raw_data.get(field_def.id)
        if is_empty(raw):
            if is_required(field_def, raw_data):
                errors[field_def.id] = [FieldError(
                    ErrorKind.REQUIRED_FIELD_MISSING,
                    f"The {field_def.display_label} field is required.",
                )]
            continue

        value, field_errors = coerce(
            field_def.type, raw, field_def.constraints, field_def.display_label
        )
        if field_errors:
            errors[field_def.id] = field_errors
            continue

        validated[field_def.id] = value
        if has_active_rule(field_def.type, field_def.constraints, is_required(field_def, raw_data)):
            validated_field_count += 1

    field_count = sum(1 for value in raw_data.values() if not is_empty(value))
    if errors:
        logger.info("Form validation failed for %d field(s): %s", len(errors), sorted(errors))

    return ValidationOutcome(
        validated_data=validated,
        errors=errors,
        field_count=field_count,
        validated_field_count=validated_field_count,
    )
