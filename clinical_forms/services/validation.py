"""
JSON Schema validation for request payloads.

Used for static shape checks (is this a well-formed template?) before any
payload is parsed into typed models. Every error is collected, each prefixed
with the JSON path where it occurred.
"""

from typing import Any

import jsonschema


def validate_against_schema(data: dict[str, Any], schema: dict[str, Any]) -> list[str]:
    """
    Validate a dict against a JSON schema.
    Returns a list of error messages (empty list = valid).
    """
    validator = jsonschema.Draft7Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    return [_describe(error) for error in errors]


def _describe(error: jsonschema.ValidationError) -> str:
    path = ".".join(str(part) for part in error.absolute_path)
    return f"{path}: {error.message}" if path else error.message
