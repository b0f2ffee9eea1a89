"""
Typed form templates.

Templates are stored as loose JSON (``form_schema`` + ``fhir_mapping``). They
are parsed into these pydantic models once, at the boundary, so the engine
never works on untyped dicts. Both the current field layout (constraints
nested under ``constraints``) and the stored layout (``min_value`` etc. on the
field itself, ``*_field`` type names, ``value_field: value_number``) are
accepted.
"""

from __future__ import annotations

from typing import Any, Iterator

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from clinical_forms.engine.calculations import DEFAULT_INPUT_FIELDS, get_calculation
from clinical_forms.engine.errors import DuplicateFieldId, TemplateError
from clinical_forms.engine.field_types import FieldType, resolve_field_type
from clinical_forms.engine.models import ValueSlot

CONSTRAINT_KEYS = (
    "min_value",
    "max_value",
    "max_length",
    "min_scale",
    "max_scale",
    "vital_type",
    "options",
    "multiple",
)


def _normalize_options(options: Any) -> list[str] | None:
    """Options may be ``[{"value": ..}]``, ``["a", "b"]`` or ``{"a": "Label A"}``."""
    if options is None:
        return None
    if isinstance(options, dict):
        return [str(key) for key in options]
    return [str(o["value"]) if isinstance(o, dict) else str(o) for o in options]


class FieldConstraints(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_value: float | None = None
    max_value: float | None = None
    max_length: int | None = None
    min_scale: int | None = None
    max_scale: int | None = None
    vital_type: str | None = None
    options: list[str] | None = None
    multiple: bool = False

    @field_validator("options", mode="before")
    @classmethod
    def _options(cls, value):
        return _normalize_options(value)


class FieldDependency(BaseModel):
    """The field is only required when ``field`` was submitted as ``value``."""

    model_config = ConfigDict(frozen=True)

    field: str
    value: Any


class FieldDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    type: FieldType
    label: str | None = None
    required: bool = False
    constraints: FieldConstraints = FieldConstraints()
    unit: str | None = None
    depends_on: FieldDependency | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_constraints(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        constraints = dict(data.get("constraints") or {})
        for key in CONSTRAINT_KEYS:
            if key in data:
                constraints.setdefault(key, data.pop(key))
        data["constraints"] = constraints
        if isinstance(data.get("type"), str):
            data["type"] = resolve_field_type(data["type"])
        return data

    @property
    def display_label(self) -> str:
        return self.label or self.id


class Section(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    fields: list[FieldDef] = []


class FormSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str | None = None
    sections: list[Section] = []

    @model_validator(mode="after")
    def _unique_field_ids(self):
        seen: set[str] = set()
        for field_def in self.iter_fields():
            if field_def.id in seen:
                raise DuplicateFieldId(field_def.id)
            seen.add(field_def.id)
        return self

    def iter_fields(self) -> Iterator[FieldDef]:
        for section in self.sections:
            yield from section.fields

    @property
    def field_ids(self) -> list[str]:
        return [f.id for f in self.iter_fields()]


class MappingSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    concept_id: int | str = Field(
        ..., validation_alias=AliasChoices("concept_id", "observation_concept_id")
    )
    value_slot: ValueSlot = Field(..., validation_alias=AliasChoices("value_slot", "value_field"))
    observation_code: str | None = None
    unit: str | None = None
    complex_type: str | None = None
    body_site_id: int | str | None = None
    reference_range: dict[str, Any] | None = None

    @field_validator("value_slot", mode="before")
    @classmethod
    def _strip_value_prefix(cls, value):
        if isinstance(value, str) and value.startswith("value_"):
            return value[len("value_"):]
        return value


class GroupSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    concept_id: int | str = Field(
        ..., validation_alias=AliasChoices("concept_id", "observation_concept_id")
    )
    observation_code: str | None = None
    field_ids: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("field_ids", "fields")
    )

    @field_validator("field_ids")
    @classmethod
    def _ordered_set(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def code(self) -> str:
        return self.observation_code or self.name


class CalcSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    concept_id: int | str = Field(
        ..., validation_alias=AliasChoices("concept_id", "observation_concept_id")
    )
    observation_code: str | None = None
    calculation: str
    inputs: dict[str, str] = {}
    required_field_ids: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("required_field_ids", "required_fields"),
    )
    unit: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _resolve_calculation(cls, data):
        if not isinstance(data, dict) or "calculation" not in data:
            return data
        calculation = get_calculation(data["calculation"])
        overrides = data.get("inputs") or {}
        inputs = {
            role: overrides.get(role, DEFAULT_INPUT_FIELDS.get(role, role))
            for role in calculation.inputs
        }
        data = {**data, "inputs": inputs}
        if not (data.get("required_field_ids") or data.get("required_fields")):
            data["required_field_ids"] = list(inputs.values())
        return data

    @property
    def code(self) -> str:
        return self.observation_code or self.name


class RelationshipSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    parent_code: str
    child_codes: list[str] = []


class DefaultValues(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    status: str = "final"


def _named_list(value: Any) -> Any:
    """Stored templates key groups/calculations by name; accept both shapes."""
    if isinstance(value, dict):
        return [{"name": name, **config} for name, config in value.items()]
    return value


class FieldMapping(BaseModel):
    """Everything that turns validated values into observations."""

    model_config = ConfigDict(frozen=True)

    field_mappings: dict[str, MappingSpec] = {}
    grouped_observations: list[GroupSpec] = []
    calculated_observations: list[CalcSpec] = []
    observation_relationships: list[RelationshipSpec] = []
    default_values: DefaultValues = DefaultValues()

    @field_validator("grouped_observations", "calculated_observations", mode="before")
    @classmethod
    def _keyed_by_name(cls, value):
        return _named_list(value)


class FormTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    title: str | None = None
    category: str | None = None
    form_schema: FormSchema
    fhir_mapping: FieldMapping


def parse_template(data: dict[str, Any]) -> FormTemplate:
    """Parse a stored template, turning every problem into a TemplateError."""
    try:
        return FormTemplate.model_validate(data)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise TemplateError(f"Invalid form template: {details}") from exc
