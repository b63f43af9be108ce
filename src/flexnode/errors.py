"""Error taxonomy for flexnode.

Every failure raised by the bootstrap engine or the trust establisher is a
FlexNodeError. Retryable errors are retried locally by the retry/poll
combinators and only surface once their bounds are exhausted.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class FlexNodeError(Exception):
    """Base error class for flexnode errors."""

    message: str
    retryable: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class PreconditionError(FlexNodeError):
    """A prerequisite tool, configuration value or permission is missing."""


@dataclass(eq=False)
class ConfigError(PreconditionError):
    """Configuration missing or invalid."""


@dataclass(eq=False)
class CommandError(FlexNodeError):
    """An external installer or service command failed."""

    returncode: int | None = None
    stderr: str = ""


@dataclass(eq=False)
class AuthenticationError(FlexNodeError):
    """No usable ambient credential for the management plane."""


@dataclass(eq=False)
class MetadataError(FlexNodeError):
    """The instance metadata endpoint returned an unusable response."""


@dataclass(eq=False)
class ParseError(FlexNodeError):
    """A resource identifier could not be parsed."""


@dataclass(eq=False)
class AmbiguousIdentityError(FlexNodeError):
    """Several user-assigned identities and no client ID to choose one."""


@dataclass(eq=False)
class IdentityNotFoundError(FlexNodeError):
    """The configured client ID matches no assigned identity."""


@dataclass(eq=False)
class NoIdentityError(FlexNodeError):
    """The VM has neither a user-assigned nor a system-assigned identity."""


@dataclass(eq=False)
class ClusterConfigurationError(FlexNodeError):
    """The target managed cluster does not meet node requirements."""


@dataclass(eq=False)
class PermissionDeniedError(FlexNodeError):
    """The caller lacks rights to create role assignments."""


@dataclass(eq=False)
class PrincipalPropagationDelayError(FlexNodeError):
    """The principal is not yet visible to the authorization directory."""

    retryable: bool = True


@dataclass(eq=False)
class RetryExhaustedError(FlexNodeError):
    """A retriable operation kept failing until its attempt budget ran out."""

    attempts: int = 0


@dataclass(eq=False)
class RoleAssignmentError(FlexNodeError):
    """One or more required role assignments failed."""

    failed: list[str] = field(default_factory=list)
    total: int = 0


@dataclass(eq=False)
class PollTimeoutError(FlexNodeError):
    """A polled condition did not become true before the deadline."""

    timeout_seconds: float = 0.0
    polls: int = 0


@dataclass(eq=False)
class PropagationTimeoutError(PollTimeoutError):
    """Role assignments did not propagate before the deadline."""


@dataclass(eq=False)
class StepExecutionError(FlexNodeError):
    """A bootstrap step failed; wraps the underlying cause."""

    label: str = ""
    step: str = ""
    phase: str = ""


def step_failure(label: str, step: str, phase: str, cause: BaseException) -> StepExecutionError:
    """Wrap a step failure with its run label, step name and phase.

    Args:
        label: Run label (bootstrap, unbootstrap)
        step: Name of the failing step
        phase: validate or execute

    Returns:
        StepExecutionError whose message names the step, phase and cause
    """
    return StepExecutionError(
        message=f"{label} failed at step '{step}' during {phase}: {cause}",
        data={"cause_type": type(cause).__name__},
        label=label,
        step=step,
        phase=phase,
    )
