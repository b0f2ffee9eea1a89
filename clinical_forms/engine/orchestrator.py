"""
Submission orchestration: validate, then generate observations.

Validation runs first and on its own. If any field is invalid the outcome
carries the complete field error map and nothing else happens. Otherwise
generation runs as a DAG of steps:

    map_fields -> group_fields -> calculate_fields -> link_observations
               -> stamp -> summarize

Individual observations therefore always precede grouped ones, which precede
calculated ones. Any exception inside a step is an internal failure: the
remaining steps are skipped and the caller gets one generic message.

The orchestrator does no I/O and reads no global clock; the caller supplies
both the clock and, optionally, the logger.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from clinical_forms.engine.aggregator import (
    calculated_observations,
    group_observations,
    link_relationships,
)
from clinical_forms.engine.dag import DAG
from clinical_forms.engine.mapper import map_observations
from clinical_forms.engine.models import (
    GenerationResult,
    GenerationSummary,
    OutcomeStatus,
    Submission,
    SubmissionOutcome,
)
from clinical_forms.engine.validator import validate
from clinical_forms.schemas.templates import FieldMapping, FormSchema

Clock = Callable[[], datetime]

ENGINE_FAILURE_MESSAGE = "Observation generation failed"


# ---------------------------------------------------------------------------
# Generation steps (each receives and returns a context dict)
# ---------------------------------------------------------------------------


def map_fields(context: dict[str, Any]) -> dict[str, Any]:
    observations = map_observations(
        context["validated_data"], context["mapping"], context["observed_at"]
    )
    return {"individual_observations": observations}


def group_fields(context: dict[str, Any]) -> dict[str, Any]:
    return {"grouped_observations": group_observations(context["validated_data"], context["mapping"])}


def calculate_fields(context: dict[str, Any]) -> dict[str, Any]:
    return {
        "calculated_observations": calculated_observations(
            context["validated_data"], context["mapping"]
        )
    }


def link_observations(context: dict[str, Any]) -> dict[str, Any]:
    combined = (
        context["individual_observations"]
        + context["grouped_observations"]
        + context["calculated_observations"]
    )
    return {
        "observations": link_relationships(
            combined, context["mapping"].observation_relationships
        )
    }


def stamp(context: dict[str, Any]) -> dict[str, Any]:
    submission: Submission = context["submission"]
    return {
        "observations": [
            obs.stamped(
                patient_id=submission.patient_id,
                encounter_id=submission.encounter_id,
                observed_at=context["observed_at"],
            )
            for obs in context["observations"]
        ]
    }


def summarize(context: dict[str, Any]) -> dict[str, Any]:
    mapping: FieldMapping = context["mapping"]
    mapped_fields = [fid for fid in context["validated_data"] if fid in mapping.field_mappings]
    summary = GenerationSummary.build(
        context["observations"],
        total_form_fields=len(mapped_fields),
        calculated_codes={o.code for o in context["calculated_observations"]},
    )
    return {"result": GenerationResult(observations=context["observations"], summary=summary)}


def build_generation_pipeline(log: logging.Logger | None = None) -> DAG:
    dag = DAG("observation_generation", log=log)
    dag.add_task("map_fields", map_fields)
    dag.add_task("group_fields", group_fields, depends_on=["map_fields"])
    dag.add_task("calculate_fields", calculate_fields, depends_on=["group_fields"])
    dag.add_task("link_observations", link_observations, depends_on=["calculate_fields"])
    dag.add_task("stamp", stamp, depends_on=["link_observations"])
    dag.add_task("summarize", summarize, depends_on=["stamp"])
    return dag


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SubmissionOrchestrator:
    """Runs one submission through validation and observation generation."""

    def __init__(self, clock: Clock, logger: logging.Logger | None = None):
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def process(
        self,
        schema: FormSchema,
        mapping: FieldMapping,
        submission: Submission,
    ) -> SubmissionOutcome:
        outcome = validate(schema, submission.raw_data)
        if not outcome.is_valid:
            self.logger.info(
                "Submission for encounter %s rejected: %d invalid field(s)",
                submission.encounter_id,
                len(outcome.errors),
            )
            return SubmissionOutcome(
                status=OutcomeStatus.VALIDATION_FAILED,
                validation=outcome,
                errors=outcome.messages(),
            )

        pipeline = build_generation_pipeline(log=self.logger)
        run_summary = pipeline.run(
            initial_context={
                "validated_data": outcome.validated_data,
                "mapping": mapping,
                "submission": submission,
                "observed_at": self.clock(),
            }
        )

        failed = pipeline.first_failure()
        if failed is not None:
            self.logger.error(
                "Observation generation failed for encounter %s at step '%s': %s",
                submission.encounter_id,
                failed.name,
                failed.error,
            )
            return SubmissionOutcome(
                status=OutcomeStatus.ENGINE_FAILED,
                validation=outcome,
                message=ENGINE_FAILURE_MESSAGE,
                pipeline=run_summary,
            )

        result: GenerationResult = pipeline.steps["summarize"].result["result"]
        self.logger.info(
            "Generated %d observation(s) for encounter %s",
            result.observations_count,
            submission.encounter_id,
        )
        return SubmissionOutcome(
            status=OutcomeStatus.OK,
            result=result,
            validation=outcome,
            pipeline=run_summary,
        )
