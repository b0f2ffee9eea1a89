"""Accepting and loading clinical form templates."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from clinical_forms.config import settings
from clinical_forms.engine.errors import TemplateError
from clinical_forms.models.records import FormTemplate
from clinical_forms.schemas.fhir import FORM_TEMPLATE_SCHEMA
from clinical_forms.schemas.templates import FormTemplate as ParsedTemplate
from clinical_forms.schemas.templates import parse_template
from clinical_forms.services.audit import log_action
from clinical_forms.services.validation import validate_against_schema

logger = logging.getLogger(__name__)


class TemplateRejected(Exception):
    """A submitted template failed structural or configuration checks."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def check_template(payload: dict[str, Any]) -> ParsedTemplate:
    """
    Run the JSON schema check, then parse into typed models.
    Raises TemplateRejected with every problem found.
    """
    errors = validate_against_schema(payload, FORM_TEMPLATE_SCHEMA)
    if errors:
        raise TemplateRejected(errors)
    try:
        return parse_template(payload)
    except TemplateError as exc:
        raise TemplateRejected([str(exc)]) from exc


def create_template(
    db: Session, payload: dict[str, Any], *, actor: str = settings.DEFAULT_ACTOR
) -> FormTemplate:
    parsed = check_template(payload)
    template = FormTemplate(
        name=parsed.name,
        title=parsed.title,
        category=parsed.category,
        form_schema=payload["form_schema"],
        fhir_mapping=payload["fhir_mapping"],
        active=True,
    )
    db.add(template)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="create",
        resource_type="FormTemplate",
        resource_id=template.id,
        detail={"name": template.name, "field_count": len(parsed.form_schema.field_ids)},
    )
    db.commit()
    logger.info("Created form template '%s' (%s)", template.name, template.id)
    return template


def get_template(db: Session, template_id: UUID) -> FormTemplate | None:
    return db.query(FormTemplate).filter(FormTemplate.id == template_id).first()
