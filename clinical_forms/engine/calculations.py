"""
Named formulas for calculated observations.

A calculation declares the inputs it needs (by role, e.g. ``height``) and a
pure function over those inputs. Templates refer to calculations by name; an
unknown name is rejected when the template is parsed, not per submission.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from clinical_forms.engine.errors import UnknownCalculation
from clinical_forms.engine.field_types import to_number


@dataclass(frozen=True)
class Calculation:
    name: str
    inputs: tuple[str, ...]
    formula: Callable[[dict[str, float]], float | None]
    unit: str | None = None

    def evaluate(self, values: dict[str, object]) -> float | None:
        """Run the formula; None when an input is not numeric or the result is undefined."""
        numbers: dict[str, float] = {}
        for role in self.inputs:
            number = to_number(values.get(role))
            if number is None:
                return None
            numbers[role] = float(number)
        return self.formula(numbers)


def _bmi(v: dict[str, float]) -> float | None:
    height_m = v["height"] / 100
    if height_m <= 0:
        return None
    return round(v["weight"] / (height_m * height_m), 2)


def _mean_arterial_pressure(v: dict[str, float]) -> float:
    return round((v["diastolic"] * 2 + v["systolic"]) / 3, 1)


def _pulse_pressure(v: dict[str, float]) -> float:
    return v["systolic"] - v["diastolic"]


CALCULATIONS: dict[str, Calculation] = {
    "bmi": Calculation("bmi", ("height", "weight"), _bmi, unit="kg/m2"),
    "mean_arterial_pressure": Calculation(
        "mean_arterial_pressure", ("systolic", "diastolic"), _mean_arterial_pressure, unit="mmHg"
    ),
    "pulse_pressure": Calculation(
        "pulse_pressure", ("systolic", "diastolic"), _pulse_pressure, unit="mmHg"
    ),
}

# Form field ids each input role reads from unless a template overrides them.
DEFAULT_INPUT_FIELDS: dict[str, str] = {
    "height": "height",
    "weight": "weight",
    "systolic": "systolic_bp",
    "diastolic": "diastolic_bp",
}


def get_calculation(name: str) -> Calculation:
    try:
        return CALCULATIONS[name]
    except KeyError:
        raise UnknownCalculation(name) from None
