"""
Step runner used to sequence observation generation.

Steps are registered in run order and may only depend on steps registered
before them, so registration order is already a valid execution order and
no cycle can be built. Each step receives the shared context and returns a
dict that is merged into it. A step that raises is marked failed with its
exception kept; every step depending on it, directly or through a skipped
step, is skipped.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

StepFn = Callable[[dict[str, Any]], dict[str, Any] | None]


class StepStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class Step:
    name: str
    fn: StepFn
    depends_on: tuple[str, ...] = ()
    status: StepStatus = StepStatus.PENDING
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    exception: Exception | None = None
    duration_ms: float = 0.0

    def report(self) -> dict[str, Any]:
        if self.status == StepStatus.SKIPPED:
            return {"status": self.status.value}
        return {
            "status": self.status.value,
            "duration_ms": round(self.duration_ms, 2),
            "error": self.error,
        }


class DAG:
    """
    Usage:
        dag = DAG("observation_generation")
        dag.add_task("map_fields", map_fields)
        dag.add_task("group_fields", group_fields, depends_on=["map_fields"])
        report = dag.run(initial_context={"validated_data": {...}})
    """

    def __init__(self, name: str, log: logging.Logger | None = None):
        self.name = name
        self.steps: dict[str, Step] = {}
        self.log = log or logger

    def add_task(self, name: str, fn: StepFn, depends_on: list[str] | None = None) -> DAG:
        if name in self.steps:
            raise ValueError(f"Duplicate step name: {name}")
        unknown = [dep for dep in depends_on or [] if dep not in self.steps]
        if unknown:
            raise ValueError(f"Step '{name}' depends on unregistered step(s): {', '.join(unknown)}")
        self.steps[name] = Step(name=name, fn=fn, depends_on=tuple(depends_on or ()))
        return self

    def _blocked(self, step: Step) -> bool:
        return any(self.steps[dep].status != StepStatus.SUCCESS for dep in step.depends_on)

    def _execute(self, step: Step, context: dict[str, Any]) -> None:
        started = time.perf_counter()
        try:
            step.result = step.fn(context) or {}
        except Exception as exc:
            step.status, step.error, step.exception = StepStatus.FAILED, str(exc), exc
            self.log.error("Step '%s' failed: %s", step.name, exc)
        else:
            step.status = StepStatus.SUCCESS
            context.update(step.result)
        finally:
            step.duration_ms = (time.perf_counter() - started) * 1000

    def run(self, initial_context: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run every step once, in registration order, and return a report."""
        context = dict(initial_context or {})
        for step in self.steps.values():
            if self._blocked(step):
                step.status = StepStatus.SKIPPED
                self.log.warning("Skipping '%s': upstream step did not complete", step.name)
                continue
            self._execute(step, context)

        failed = self.first_failure()
        self.log.debug("'%s' finished%s", self.name, f" (failed at '{failed.name}')" if failed else "")
        return {
            "pipeline": self.name,
            "status": "failed" if failed else "completed",
            "steps": {name: step.report() for name, step in self.steps.items()},
        }

    def first_failure(self) -> Step | None:
        return next((s for s in self.steps.values() if s.status == StepStatus.FAILED), None)

    def to_dict(self) -> dict[str, Any]:
        """Step graph snapshot, stored with each submission run."""
        return {
            "name": self.name,
            "steps": {name: {"depends_on": list(step.depends_on)} for name, step in self.steps.items()},
        }
