"""
JSON schemas for data crossing the service boundary.

- FORM_TEMPLATE_SCHEMA: structural contract for a stored clinical form
  template (sections of typed fields plus the FHIR mapping). Checked before
  a template is accepted so that malformed templates never reach the engine.
- FHIR_OBSERVATION_SCHEMA: simplified subset of the HL7 FHIR R4 Observation
  resource produced by the export service.
"""

_FIELD_SCHEMA: dict = {
    "type": "object",
    "required": ["id", "type"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "type": {"type": "string", "minLength": 1},
        "label": {"type": "string"},
        "required": {"type": "boolean"},
        "unit": {"type": ["string", "null"]},
        "min_value": {"type": "number"},
        "max_value": {"type": "number"},
        "max_length": {"type": "integer", "minimum": 0},
        "min_scale": {"type": "integer"},
        "max_scale": {"type": "integer"},
        "vital_type": {"type": "string"},
        "multiple": {"type": "boolean"},
        "options": {"type": ["array", "object"]},
        "constraints": {"type": "object"},
        "depends_on": {
            "type": "object",
            "required": ["field", "value"],
            "properties": {"field": {"type": "string"}},
        },
    },
}

_CONCEPT_ID: dict = {"type": ["integer", "string"]}

FORM_TEMPLATE_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Clinical form template",
    "type": "object",
    "required": ["name", "form_schema", "fhir_mapping"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "title": {"type": "string"},
        "category": {"type": "string"},
        "form_schema": {
            "type": "object",
            "required": ["sections"],
            "properties": {
                "version": {"type": "string"},
                "sections": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["id", "fields"],
                        "properties": {
                            "id": {"type": "string"},
                            "title": {"type": "string"},
                            "fields": {"type": "array", "items": _FIELD_SCHEMA},
                        },
                    },
                },
            },
        },
        "fhir_mapping": {
            "type": "object",
            "required": ["field_mappings"],
            "properties": {
                "field_mappings": {
                    "type": "object",
                    "additionalProperties": {
                        "type": "object",
                        "properties": {
                            "concept_id": _CONCEPT_ID,
                            "observation_concept_id": _CONCEPT_ID,
                            "value_slot": {"type": "string"},
                            "value_field": {"type": "string"},
                            "observation_code": {"type": "string"},
                            "complex_type": {"type": "string"},
                        },
                        "anyOf": [
                            {"required": ["concept_id"]},
                            {"required": ["observation_concept_id"]},
                        ],
                    },
                },
                "grouped_observations": {"type": ["array", "object"]},
                "calculated_observations": {"type": ["array", "object"]},
                "observation_relationships": {"type": "array"},
                "default_values": {"type": "object"},
            },
        },
    },
}


_QUANTITY: dict = {
    "type": "object",
    "properties": {
        "value": {"type": "number"},
        "unit": {"type": "string"},
    },
}

_REFERENCE: dict = {
    "type": "object",
    "required": ["reference"],
    "properties": {"reference": {"type": "string"}},
}

_CODEABLE_CONCEPT: dict = {
    "type": "object",
    "description": "LOINC, SNOMED or local coded value.",
    "required": ["coding"],
    "properties": {
        "coding": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["system", "code"],
                "properties": {
                    "system": {"type": "string"},
                    "code": {"type": "string"},
                    "display": {"type": "string"},
                },
            },
        }
    },
}

FHIR_OBSERVATION_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "FHIR Observation (simplified)",
    "type": "object",
    "required": ["resourceType", "status", "code"],
    "properties": {
        "resourceType": {"type": "string", "const": "Observation"},
        "status": {
            "type": "string",
            "enum": ["registered", "preliminary", "final", "amended"],
        },
        "code": _CODEABLE_CONCEPT,
        "subject": _REFERENCE,
        "encounter": _REFERENCE,
        "effectiveDateTime": {"type": "string"},
        "valueQuantity": _QUANTITY,
        "valueString": {"type": "string"},
        "valueDateTime": {"type": "string"},
        "valueBoolean": {"type": "boolean"},
        "component": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["code"],
                "properties": {
                    "code": _CODEABLE_CONCEPT,
                    "valueQuantity": _QUANTITY,
                    "valueString": {"type": "string"},
                    "valueBoolean": {"type": "boolean"},
                },
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}
