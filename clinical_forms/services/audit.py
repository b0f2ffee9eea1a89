"""Audit logging for template and form submission actions."""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from clinical_forms.models.records import AuditLog

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    *,
    actor: str,
    action: str,
    resource_type: str,
    resource_id: UUID,
    detail: dict[str, Any] | None = None,
) -> None:
    """Add an audit entry to the current transaction; the caller commits."""
    db.add(
        AuditLog(
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            detail=detail,
        )
    )
    logger.info("AUDIT: %s %s %s/%s", actor, action, resource_type, resource_id)
