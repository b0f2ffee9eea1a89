"""
Error kinds and exceptions for the form engine.

Per-field validation problems are plain values (FieldError) collected by the
validator. Exceptions are reserved for template misconfiguration and for
mapping failures that should never happen once validation has passed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    REQUIRED_FIELD_MISSING = "RequiredFieldMissing"
    FIELD_OUT_OF_RANGE = "FieldOutOfRange"
    FIELD_TOO_LONG = "FieldTooLong"
    FIELD_FORMAT_INVALID = "FieldFormatInvalid"
    UNKNOWN_COMPLEX_TYPE = "UnknownComplexType"
    CALCULATION_MISSING_INPUTS = "CalculationMissingInputs"
    UNKNOWN_CALCULATION = "UnknownCalculation"


@dataclass(frozen=True)
class FieldError:
    """A single problem with one submitted field."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return self.message


class EngineError(Exception):
    """Base class for engine exceptions."""


class TemplateError(EngineError):
    """The form template (schema or mapping) is misconfigured."""


class DuplicateFieldId(TemplateError):
    def __init__(self, field_id: str):
        super().__init__(f"Field id '{field_id}' is declared more than once")
        self.field_id = field_id


class UnknownFieldType(TemplateError):
    def __init__(self, field_type: str):
        super().__init__(f"Unknown field type '{field_type}'")
        self.field_type = field_type


class UnknownCalculation(TemplateError):
    kind = ErrorKind.UNKNOWN_CALCULATION

    def __init__(self, calculation: str):
        super().__init__(f"Unknown calculation '{calculation}'")
        self.calculation = calculation


class MappingError(EngineError):
    """A validated value could not be turned into an observation."""

    def __init__(self, field_id: str, message: str):
        super().__init__(f"{field_id}: {message}")
        self.field_id = field_id


class UnknownComplexType(MappingError):
    kind = ErrorKind.UNKNOWN_COMPLEX_TYPE

    def __init__(self, field_id: str, complex_type: str | None):
        super().__init__(field_id, f"unknown complex type '{complex_type}'")
        self.complex_type = complex_type
