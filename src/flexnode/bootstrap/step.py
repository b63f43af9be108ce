"""Step contract shared by every installable unit.

A step is validated, then executed. Both run inside the caller's asyncio
task, so cancelling that task (operator abort or overall deadline) cancels
whatever the step is awaiting.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable


class StepPhase(str, Enum):
    """Phase of a step that was attempted."""

    VALIDATE = "validate"
    EXECUTE = "execute"


@runtime_checkable
class Step(Protocol):
    """Contract for one unit of bootstrap or teardown work."""

    @property
    def name(self) -> str:
        """Stable step name used in logs and results."""
        ...

    async def validate(self) -> None:
        """Check prerequisites without changing host state.

        Raises:
            PreconditionError: A prerequisite tool, configuration value or
                permission is missing.
        """
        ...

    async def execute(self) -> None:
        """Perform the step's idempotent action. Any exception halts the run."""
        ...


@runtime_checkable
class CompletionProbe(Protocol):
    """Optional capability: report that a step's work is already in place.

    The executor only consults the probe when asked to skip completed
    steps; otherwise every step re-executes.
    """

    async def is_completed(self) -> bool: ...
