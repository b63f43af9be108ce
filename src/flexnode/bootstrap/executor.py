"""Sequential, fail-fast step execution.

Steps run strictly one after another: later steps assume every earlier step
succeeded, so the first failure ends the run and the remaining steps are
reported as not run.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..errors import StepExecutionError, step_failure
from .step import CompletionProbe, Step, StepPhase

logger = structlog.get_logger(__name__)


class StepStatus(str, Enum):
    """Outcome of a single step."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_RUN = "not_run"


@dataclass
class StepOutcome:
    """What happened to one step."""

    name: str
    status: StepStatus
    phase: StepPhase | None = None
    error: Exception | None = None
    duration_seconds: float = 0.0


@dataclass
class ExecutionResult:
    """Aggregated result of a bootstrap or unbootstrap run."""

    label: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    error: StepExecutionError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def failed_step(self) -> StepOutcome | None:
        for outcome in self.outcomes:
            if outcome.status == StepStatus.FAILED:
                return outcome
        return None

    def count(self, status: StepStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def summary(self) -> str:
        """One-line summary, e.g. ``bootstrap: 3 succeeded, 1 failed, 6 not run``."""
        parts = [f"{self.count(StepStatus.SUCCEEDED)} succeeded"]
        for status, text in (
            (StepStatus.SKIPPED, "skipped"),
            (StepStatus.FAILED, "failed"),
            (StepStatus.NOT_RUN, "not run"),
        ):
            if self.count(status):
                parts.append(f"{self.count(status)} {text}")
        return f"{self.label}: {', '.join(parts)}"


async def _is_completed(step: Step, step_log: structlog.stdlib.BoundLogger) -> bool:
    """Ask a step's completion probe; a failing probe means "run it"."""
    if not isinstance(step, CompletionProbe):
        return False
    try:
        return await step.is_completed()
    except Exception as e:
        step_log.warning("Completion check failed, running step", error=str(e))
        return False


async def run_steps(
    steps: Sequence[Step],
    label: str,
    *,
    skip_completed: bool = False,
) -> ExecutionResult:
    """Validate and execute ``steps`` in order, stopping at the first failure.

    Args:
        steps: Ordered steps
        label: Run label used in logs and the overall error
        skip_completed: Consult CompletionProbe.is_completed and skip steps
            that report their work is already done

    Returns:
        ExecutionResult with one outcome per step. Cancellation of the
        calling task is not converted into a result; it propagates.
    """
    log = logger.bind(label=label)
    result = ExecutionResult(label=label)
    total = len(steps)
    log.info("Starting run", steps=total)

    for index, step in enumerate(steps, start=1):
        step_log = log.bind(step=step.name, position=f"{index}/{total}")

        if skip_completed and await _is_completed(step, step_log):
            step_log.info("Step already completed, skipping")
            result.outcomes.append(StepOutcome(name=step.name, status=StepStatus.SKIPPED))
            continue

        started = time.monotonic()
        phase = StepPhase.VALIDATE
        try:
            step_log.info("Validating step")
            await step.validate()
            phase = StepPhase.EXECUTE
            step_log.info("Executing step")
            await step.execute()
        except Exception as e:
            duration = time.monotonic() - started
            step_log.error("Step failed", phase=phase.value, error=str(e))
            result.outcomes.append(
                StepOutcome(
                    name=step.name,
                    status=StepStatus.FAILED,
                    phase=phase,
                    error=e,
                    duration_seconds=duration,
                )
            )
            for remaining in steps[index:]:
                result.outcomes.append(StepOutcome(name=remaining.name, status=StepStatus.NOT_RUN))
            error = step_failure(label, step.name, phase.value, e)
            error.__cause__ = e
            result.error = error
            log.error("Run aborted", summary=result.summary())
            return result

        duration = time.monotonic() - started
        step_log.info("Step completed", duration_seconds=round(duration, 2))
        result.outcomes.append(
            StepOutcome(
                name=step.name,
                status=StepStatus.SUCCEEDED,
                phase=StepPhase.EXECUTE,
                duration_seconds=duration,
            )
        )

    log.info("Run completed", summary=result.summary())
    return result
