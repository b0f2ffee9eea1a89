"""
Field type registry.

Every field type a form schema may declare maps to one coercion function.
A coercer takes the raw submitted value, the field's constraints and a label
for messages, and returns ``(typed_value, errors)``. Coercers are pure: the
same input always yields the same output, and nothing is raised for bad
input.

Stored templates use the older ``*_field`` type names; ``resolve_field_type``
accepts both spellings.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable
from urllib.parse import urlparse

from clinical_forms.engine.errors import ErrorKind, FieldError, UnknownFieldType

if TYPE_CHECKING:
    from clinical_forms.schemas.templates import FieldConstraints


class FieldType(str, Enum):
    NUMBER = "number"
    TEXT = "text"
    EMAIL = "email"
    DATE = "date"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    CHECKBOX = "checkbox"
    DATE_RANGE = "date_range"
    TIME = "time"
    URL = "url"
    VITAL_SIGNS = "vital_signs"
    MEDICATION_DOSAGE = "medication_dosage"
    CLINICAL_SCALE = "clinical_scale"


FIELD_TYPE_ALIASES: dict[str, FieldType] = {
    "number_field": FieldType.NUMBER,
    "text_field": FieldType.TEXT,
    "textarea_field": FieldType.TEXT,
    "textarea": FieldType.TEXT,
    "email_field": FieldType.EMAIL,
    "date_field": FieldType.DATE,
    "select_field": FieldType.SELECT,
    "multi_select_field": FieldType.MULTI_SELECT,
    "checkbox_field": FieldType.CHECKBOX,
    "date_range_field": FieldType.DATE_RANGE,
    "time_field": FieldType.TIME,
    "url_field": FieldType.URL,
}

# Accepted physiological ranges keyed by ``vital_type``.
VITAL_RANGES: dict[str, tuple[float, float]] = {
    "temperature": (35.0, 42.0),
    "heart_rate": (30, 200),
    "systolic_bp": (70, 250),
    "diastolic_bp": (40, 150),
    "respiratory_rate": (8, 40),
    "oxygen_saturation": (70, 100),
}

EMAIL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$")
DOSAGE_RE = re.compile(r"^[0-9]+(\.[0-9]+)?\s*(mg|ml|g|tablet|capsule|unit)s?$", re.IGNORECASE)
TIME_RE = re.compile(r"^([01][0-9]|2[0-3]):[0-5][0-9]$")
INTEGER_RE = re.compile(r"[+-]?[0-9]+")
DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off"}

Coercer = Callable[[Any, "FieldConstraints", str], tuple[Any, list[FieldError]]]


def resolve_field_type(name: str) -> FieldType:
    """Turn a stored type name (``number`` or ``number_field``) into a FieldType."""
    if name in FIELD_TYPE_ALIASES:
        return FIELD_TYPE_ALIASES[name]
    try:
        return FieldType(name)
    except ValueError:
        raise UnknownFieldType(name) from None


# ---------------------------------------------------------------------------
# Scalar parsing helpers
# ---------------------------------------------------------------------------

def _is_finite(value: int | float) -> bool:
    try:
        return math.isfinite(value)
    except OverflowError:
        return False


def to_number(raw: Any) -> int | float | None:
    """
    Parse a finite number; ints stay ints. Returns None when not numeric.

    Strings must be plain ASCII decimals (``"80"``, ``"-2.5"``, ``"1e3"``);
    ``"1_000"``, ``"nan"`` and non-ASCII digits are rejected. Ints too large
    for a float are rejected too.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return raw if _is_finite(raw) else None
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    try:
        if INTEGER_RE.fullmatch(text):
            value = int(text)
        elif DECIMAL_RE.fullmatch(text):
            value = float(text)
        else:
            return None
    except ValueError:
        # int() refuses digit strings past the interpreter's conversion limit
        return None
    return value if _is_finite(value) else None


def to_date(raw: Any) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def to_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int) and raw in (0, 1):
        return bool(raw)
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    return None


def _error(kind: ErrorKind, message: str) -> list[FieldError]:
    return [FieldError(kind, message)]


# ---------------------------------------------------------------------------
# Clinical predicates
# ---------------------------------------------------------------------------

def is_valid_vital_sign(value: Any, vital_type: str | None = None) -> bool:
    """Numeric, and inside the accepted range when the vital type is known."""
    number = to_number(value)
    if number is None:
        return False
    if vital_type and vital_type in VITAL_RANGES:
        low, high = VITAL_RANGES[vital_type]
        return low <= number <= high
    return True


def is_valid_medication_dosage(value: Any) -> bool:
    """e.g. "10mg", "2.5 ml", "1 tablet", "2 capsules"."""
    if not isinstance(value, str):
        return False
    return DOSAGE_RE.match(value.strip()) is not None


def is_valid_clinical_scale(value: Any, min_scale: int | None = None, max_scale: int | None = None) -> bool:
    number = to_number(value)
    if number is None:
        return False
    low = 0 if min_scale is None else min_scale
    high = 10 if max_scale is None else max_scale
    return low <= int(number) <= high


# ---------------------------------------------------------------------------
# Coercers
# ---------------------------------------------------------------------------

def coerce_number(raw, constraints, label):
    number = to_number(raw)
    if number is None:
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a number.")
    errors: list[FieldError] = []
    if constraints.min_value is not None and number < constraints.min_value:
        errors.append(FieldError(
            ErrorKind.FIELD_OUT_OF_RANGE,
            f"The {label} must be at least {constraints.min_value}.",
        ))
    if constraints.max_value is not None and number > constraints.max_value:
        errors.append(FieldError(
            ErrorKind.FIELD_OUT_OF_RANGE,
            f"The {label} must not exceed {constraints.max_value}.",
        ))
    return number, errors


def coerce_text(raw, constraints, label):
    if isinstance(raw, (dict, list)):
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a string.")
    text = raw if isinstance(raw, str) else str(raw)
    if constraints.max_length is not None and len(text) > constraints.max_length:
        return None, _error(
            ErrorKind.FIELD_TOO_LONG,
            f"The {label} must not exceed {constraints.max_length} characters.",
        )
    return text, []


def coerce_email(raw, constraints, label):
    if not isinstance(raw, str) or not EMAIL_RE.match(raw.strip()):
        return None, _error(
            ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a valid email address."
        )
    return raw.strip(), []


def coerce_date(raw, constraints, label):
    parsed = to_date(raw)
    if parsed is None:
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a valid date.")
    return parsed, []


def _option_errors(values: list[Any], constraints, label) -> list[FieldError]:
    if constraints.options is None:
        return []
    if all(str(v) in constraints.options for v in values):
        return []
    return _error(ErrorKind.FIELD_FORMAT_INVALID, f"The selected {label} is invalid.")


def coerce_select(raw, constraints, label):
    if constraints.multiple:
        return coerce_multi_select(raw, constraints, label)
    if isinstance(raw, (dict, list)):
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The selected {label} is invalid.")
    value = str(raw)
    errors = _option_errors([value], constraints, label)
    return (None if errors else value), errors


def coerce_multi_select(raw, constraints, label):
    items = raw if isinstance(raw, list) else [raw]
    if any(isinstance(item, (dict, list)) for item in items):
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a list of options.")
    values = [str(item) for item in items]
    errors = _option_errors(values, constraints, label)
    return (None if errors else values), errors


def coerce_checkbox(raw, constraints, label):
    value = to_bool(raw)
    if value is None:
        return None, _error(
            ErrorKind.FIELD_FORMAT_INVALID, f"The {label} field must be true or false."
        )
    return value, []


def coerce_date_range(raw, constraints, label):
    if not isinstance(raw, dict):
        return None, _error(
            ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must have a start_date and an end_date."
        )
    start, end = to_date(raw.get("start_date")), to_date(raw.get("end_date"))
    if start is None or end is None:
        return None, _error(
            ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must have a valid start_date and end_date."
        )
    if end < start:
        return None, _error(
            ErrorKind.FIELD_OUT_OF_RANGE, f"The {label} end date must be on or after the start date."
        )
    return {"start_date": start.isoformat(), "end_date": end.isoformat()}, []


def coerce_time(raw, constraints, label):
    if not isinstance(raw, str) or not TIME_RE.match(raw.strip()):
        return None, _error(
            ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a time in HH:MM format."
        )
    return raw.strip(), []


def coerce_url(raw, constraints, label):
    parsed = urlparse(raw.strip()) if isinstance(raw, str) else None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a valid URL.")
    return raw.strip(), []


def coerce_vital_signs(raw, constraints, label):
    number = to_number(raw)
    if number is None:
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a number.")
    if not is_valid_vital_sign(number, constraints.vital_type):
        low, high = VITAL_RANGES[constraints.vital_type]
        return None, _error(
            ErrorKind.FIELD_OUT_OF_RANGE,
            f"The {label} must be between {low} and {high}.",
        )
    return number, []


def coerce_medication_dosage(raw, constraints, label):
    if not is_valid_medication_dosage(raw):
        return None, _error(
            ErrorKind.FIELD_FORMAT_INVALID,
            f"The {label} must be a dosage such as '10mg' or '1 tablet'.",
        )
    return raw.strip(), []


def coerce_clinical_scale(raw, constraints, label):
    number = to_number(raw)
    if number is None:
        return None, _error(ErrorKind.FIELD_FORMAT_INVALID, f"The {label} must be a number.")
    if not is_valid_clinical_scale(number, constraints.min_scale, constraints.max_scale):
        low = 0 if constraints.min_scale is None else constraints.min_scale
        high = 10 if constraints.max_scale is None else constraints.max_scale
        return None, _error(
            ErrorKind.FIELD_OUT_OF_RANGE, f"The {label} must be between {low} and {high}."
        )
    return int(number), []


COERCERS: dict[FieldType, Coercer] = {
    FieldType.NUMBER: coerce_number,
    FieldType.TEXT: coerce_text,
    FieldType.EMAIL: coerce_email,
    FieldType.DATE: coerce_date,
    FieldType.SELECT: coerce_select,
    FieldType.MULTI_SELECT: coerce_multi_select,
    FieldType.CHECKBOX: coerce_checkbox,
    FieldType.DATE_RANGE: coerce_date_range,
    FieldType.TIME: coerce_time,
    FieldType.URL: coerce_url,
    FieldType.VITAL_SIGNS: coerce_vital_signs,
    FieldType.MEDICATION_DOSAGE: coerce_medication_dosage,
    FieldType.CLINICAL_SCALE: coerce_clinical_scale,
}


def coerce(
    field_type: FieldType,
    raw: Any,
    constraints: FieldConstraints,
    label: str = "value",
) -> tuple[Any, list[FieldError]]:
    """Coerce ``raw`` according to ``field_type``. Never raises for bad input."""
    value, errors = COERCERS[field_type](raw, constraints, label)
    return (None, errors) if errors else (value, [])


def has_active_rule(field_type: FieldType, constraints: FieldConstraints, required: bool) -> bool:
    """
    Whether a field carries a real validation rule.

    Every type except plain text checks its value's shape. Text only counts
    when it is required or length-limited.
    """
    if field_type != FieldType.TEXT:
        return True
    return required or constraints.max_length is not None
