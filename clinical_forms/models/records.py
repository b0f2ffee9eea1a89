"""
Persistence models for form templates, encounters and generated observations.

The engine itself never touches these; the submission service maps engine
results onto rows and commits them in one transaction.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from clinical_forms.models.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Form Template – schema + FHIR mapping, stored as JSON
# ---------------------------------------------------------------------------
class FormTemplate(Base):
    __tablename__ = "clinical_form_templates"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(128), unique=True, nullable=False)
    title = Column(String(255))
    category = Column(String(64))
    form_schema = Column(JSONB, nullable=False, comment="Sections and typed fields")
    fhir_mapping = Column(JSONB, nullable=False, comment="Field -> observation mapping")
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    encounters = relationship("Encounter", back_populates="form_template")

    def as_template_dict(self) -> dict:
        return {
            "name": self.name,
            "title": self.title,
            "category": self.category,
            "form_schema": self.form_schema,
            "fhir_mapping": self.fhir_mapping,
        }


# ---------------------------------------------------------------------------
# Encounter – the clinical contact a form is submitted against
# ---------------------------------------------------------------------------
class Encounter(Base):
    __tablename__ = "encounters"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(UUID(as_uuid=True), nullable=False)
    form_template_id = Column(
        UUID(as_uuid=True), ForeignKey("clinical_form_templates.id"), nullable=True
    )
    is_active = Column(Boolean, default=True, nullable=False)
    started_at = Column(DateTime, default=_utcnow, nullable=False)
    ended_at = Column(DateTime, nullable=True)
    discharged_at = Column(DateTime, nullable=True, comment="Set when the visit was discharged")

    form_template = relationship("FormTemplate", back_populates="encounters", lazy="joined")
    observations = relationship("ObservationRecord", back_populates="encounter", lazy="selectin")

    __table_args__ = (Index("ix_encounters_patient", "patient_id"),)


# ---------------------------------------------------------------------------
# Observation – one row per generated observation, one value column set
# ---------------------------------------------------------------------------
class ObservationRecord(Base):
    __tablename__ = "observations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("observations.id"), nullable=True)
    patient_id = Column(UUID(as_uuid=True), nullable=False)
    encounter_id = Column(UUID(as_uuid=True), ForeignKey("encounters.id"), nullable=False)
    concept_id = Column(String(64), nullable=False, comment="Pre-resolved concept identifier")
    code = Column(String(64), nullable=False)
    status = Column(String(32), default="final", nullable=False)
    body_site_id = Column(String(64), nullable=True)

    value_number = Column(Float)
    value_string = Column(Text)
    value_text = Column(Text)
    value_datetime = Column(DateTime)
    value_boolean = Column(Boolean)
    value_complex = Column(JSONB)
    unit = Column(String(32))
    reference_range = Column(JSONB)

    observed_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    encounter = relationship("Encounter", back_populates="observations")

    __table_args__ = (
        Index("ix_observations_encounter", "encounter_id"),
        Index("ix_observations_patient_code", "patient_id", "code"),
    )


# ---------------------------------------------------------------------------
# Audit Log – immutable compliance trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(64), nullable=False, comment="create | read | submit")
    resource_type = Column(String(64), nullable=False)
    resource_id = Column(UUID(as_uuid=True), nullable=False)
    detail = Column(JSONB, comment="Context for the action")
    timestamp = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_timestamp", "timestamp"),)


# ---------------------------------------------------------------------------
# Submission Run – history of every form submission attempt
# ---------------------------------------------------------------------------
class SubmissionRun(Base):
    __tablename__ = "submission_runs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    encounter_id = Column(UUID(as_uuid=True), ForeignKey("encounters.id"), nullable=False)
    status = Column(
        Enum("ok", "validation_failed", "engine_failed", name="submission_status_enum"),
        nullable=False,
    )
    submitted_at = Column(DateTime, nullable=False)
    field_count = Column(Integer, default=0)
    validated_field_count = Column(Integer, default=0)
    observations_created = Column(Integer, default=0)
    errors = Column(JSONB, default=dict)
    dag_definition = Column(JSONB, comment="Snapshot of the generation steps that ran")
