"""Role assignment for the node identity.

The node's identity needs three built-in roles before the kubelet can talk
to the cluster. Each role is attempted once per run; transient "principal
not found" responses (the identity has not replicated to the directory yet)
are retried with backoff inside that single attempt.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from azure.core.exceptions import HttpResponseError

from ..errors import (
    FlexNodeError,
    PermissionDeniedError,
    PollTimeoutError,
    PrincipalPropagationDelayError,
    PropagationTimeoutError,
    RoleAssignmentError,
)
from ..shared.retry import BackoffSchedule, Clock, Sleep, poll_until, retry_async
from .clients import AzureClients
from .resource_id import ClusterResourceIdentifier

logger = logging.getLogger(__name__)

# Built-in role definition IDs
AKS_CLUSTER_ADMIN_ROLE_ID = "0ab0b1a8-8aac-4efd-b8c2-3ee1fb270be8"
AKS_RBAC_CLUSTER_ADMIN_ROLE_ID = "b1ff04bb-8a4e-4dc4-8eb5-8693973ce19b"
READER_ROLE_ID = "acdd72a7-3385-48ef-bd42-f606fba81ae7"

ASSIGNMENT_SCHEDULE = BackoffSchedule(max_attempts=5, initial_delay=5.0, max_delay=30.0)
PROPAGATION_POLL_INTERVAL = 10.0
PROPAGATION_TIMEOUT = 600.0

# A bare 403 status in error text, not three digits inside a GUID
_STATUS_403 = re.compile(r"(?<![0-9A-Za-z-])403(?![0-9A-Za-z-])")


@dataclass(frozen=True)
class RoleAssignmentSpec:
    """A role the node identity must hold, and where."""

    role_name: str
    role_definition_id: str
    scope: str


def required_role_assignments(cluster: ClusterResourceIdentifier) -> list[RoleAssignmentSpec]:
    """The fixed, ordered set of grants the node identity needs."""
    return [
        RoleAssignmentSpec(
            "Azure Kubernetes Service Cluster Admin Role",
            AKS_CLUSTER_ADMIN_ROLE_ID,
            cluster.resource_id,
        ),
        RoleAssignmentSpec(
            "Azure Kubernetes Service RBAC Cluster Admin",
            AKS_RBAC_CLUSTER_ADMIN_ROLE_ID,
            cluster.resource_id,
        ),
        RoleAssignmentSpec("Reader", READER_ROLE_ID, cluster.resource_group_id),
    ]


class FailureKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    ALREADY_ASSIGNED = "already_assigned"
    PRINCIPAL_PROPAGATION_DELAY = "principal_propagation_delay"
    OTHER = "other"


class AssignmentOutcome(str, Enum):
    CREATED = "created"
    ALREADY_ASSIGNED = "already_assigned"


def classify_assignment_error(error: BaseException) -> FailureKind:
    """Classify a role assignment failure.

    Structured fields of an HttpResponseError win; the message text is only
    consulted when they say nothing recognizable.
    """
    if isinstance(error, HttpResponseError):
        code = getattr(getattr(error, "error", None), "code", None) or ""
        if code == "RoleAssignmentExists":
            return FailureKind.ALREADY_ASSIGNED
        if code == "PrincipalNotFound":
            return FailureKind.PRINCIPAL_PROPAGATION_DELAY
        if error.status_code == 403 or code == "AuthorizationFailed":
            return FailureKind.PERMISSION_DENIED

    text = str(error)
    if "RoleAssignmentExists" in text or "already exists" in text:
        return FailureKind.ALREADY_ASSIGNED
    if "PrincipalNotFound" in text or "does not exist in the directory" in text:
        return FailureKind.PRINCIPAL_PROPAGATION_DELAY
    if "AuthorizationFailed" in text or "Forbidden" in text or _STATUS_403.search(text):
        return FailureKind.PERMISSION_DENIED
    return FailureKind.OTHER


async def assign_role(
    clients: AzureClients,
    principal_id: str,
    spec: RoleAssignmentSpec,
    *,
    schedule: BackoffSchedule = ASSIGNMENT_SCHEDULE,
    sleep: Sleep = asyncio.sleep,
) -> AssignmentOutcome:
    """Grant one role, retrying while the principal is still replicating.

    Raises:
        PermissionDeniedError: The caller may not create role assignments
        RetryExhaustedError: The principal never became visible
        FlexNodeError: Any other failure
    """

    async def attempt() -> AssignmentOutcome:
        try:
            await clients.create_role_assignment(spec.scope, spec.role_definition_id, principal_id)
        except Exception as e:
            kind = classify_assignment_error(e)
            detail = e.message if isinstance(e, HttpResponseError) else str(e) or type(e).__name__
            if kind is FailureKind.ALREADY_ASSIGNED:
                return AssignmentOutcome.ALREADY_ASSIGNED
            if kind is FailureKind.PRINCIPAL_PROPAGATION_DELAY:
                raise PrincipalPropagationDelayError(
                    f"principal {principal_id} not yet visible: {detail}"
                ) from e
            if kind is FailureKind.PERMISSION_DENIED:
                raise PermissionDeniedError(
                    f"insufficient permissions to assign '{spec.role_name}' at {spec.scope} - "
                    "the Azure credential needs Owner or User Access Administrator: "
                    f"{detail}"
                ) from e
            raise FlexNodeError(f"failed to assign '{spec.role_name}': {detail}") from e
        return AssignmentOutcome.CREATED

    def log_retry(next_attempt: int, delay: float, error: Exception) -> None:
        logger.info(
            "Principal not yet visible for '%s', retrying in %gs (attempt %d/%d)",
            spec.role_name,
            delay,
            next_attempt,
            schedule.max_attempts,
        )

    outcome = await retry_async(
        attempt,
        is_retriable=lambda e: isinstance(e, PrincipalPropagationDelayError),
        schedule=schedule,
        sleep=sleep,
        on_retry=log_retry,
        description=f"assigning '{spec.role_name}'",
    )
    if outcome is AssignmentOutcome.ALREADY_ASSIGNED:
        logger.info("Role '%s' already assigned at %s", spec.role_name, spec.scope)
    else:
        logger.info("Assigned role '%s' at %s", spec.role_name, spec.scope)
    return outcome


async def assign_roles(
    clients: AzureClients,
    principal_id: str,
    specs: Sequence[RoleAssignmentSpec],
    *,
    schedule: BackoffSchedule = ASSIGNMENT_SCHEDULE,
    sleep: Sleep = asyncio.sleep,
) -> dict[str, AssignmentOutcome]:
    """Attempt every role once, then report all failures together.

    Returns:
        Outcome per role name.

    Raises:
        RoleAssignmentError: At least one role could not be assigned
    """
    outcomes: dict[str, AssignmentOutcome] = {}
    failures: list[tuple[str, Exception]] = []

    for spec in specs:
        try:
            outcomes[spec.role_name] = await assign_role(
                clients, principal_id, spec, schedule=schedule, sleep=sleep
            )
        except FlexNodeError as e:
            logger.error("Failed to assign role '%s': %s", spec.role_name, e)
            failures.append((spec.role_name, e))

    if failures:
        details = "; ".join(f"{name}: {error}" for name, error in failures)
        error = RoleAssignmentError(
            message=f"{len(failures)} of {len(specs)} role assignments failed: {details}",
            failed=[name for name, _ in failures],
            total=len(specs),
        )
        raise error from failures[0][1]
    return outcomes


def _role_id_matches(assignment: Any, role_definition_id: str) -> bool:
    assigned = (getattr(assignment, "role_definition_id", None) or "").rstrip("/")
    return assigned.lower().endswith(role_definition_id.lower())


async def has_role_assignments(
    clients: AzureClients, principal_id: str, specs: Sequence[RoleAssignmentSpec]
) -> bool:
    """True once every required role is listed for the principal at its scope."""
    for spec in specs:
        assignments = await clients.list_role_assignments(spec.scope, principal_id)
        if not any(_role_id_matches(a, spec.role_definition_id) for a in assignments):
            logger.debug("Role '%s' not yet visible at %s", spec.role_name, spec.scope)
            return False
    return True


async def wait_for_permissions(
    clients: AzureClients,
    principal_id: str,
    specs: Sequence[RoleAssignmentSpec],
    *,
    interval: float = PROPAGATION_POLL_INTERVAL,
    timeout: float = PROPAGATION_TIMEOUT,
    sleep: Sleep = asyncio.sleep,
    clock: Clock | None = None,
) -> int:
    """Wait until the new role assignments are visible.

    Returns:
        Number of polls it took.

    Raises:
        PropagationTimeoutError: Not visible within ``timeout`` seconds
    """
    logger.info("Waiting for role assignments to propagate (timeout %gs)", timeout)

    def log_pending(polls: int) -> None:
        logger.info("Role assignments not yet propagated (poll %d)", polls)

    try:
        polls = await poll_until(
            lambda: has_role_assignments(clients, principal_id, specs),
            interval=interval,
            timeout=timeout,
            sleep=sleep,
            clock=clock,
            on_pending=log_pending,
            description="role assignment propagation",
        )
    except PollTimeoutError as e:
        raise PropagationTimeoutError(
            message=f"role assignments did not propagate within {timeout:g}s",
            timeout_seconds=e.timeout_seconds,
            polls=e.polls,
        ) from e

    logger.info("Role assignments propagated after %d poll(s)", polls)
    return polls


async def remove_role_assignments(
    clients: AzureClients, principal_id: str, specs: Sequence[RoleAssignmentSpec]
) -> int:
    """Delete the principal's grants of the required roles.

    Grants that are already gone are skipped. Grants inherited from a parent
    scope are left alone.

    Returns:
        Number of assignments deleted.
    """
    removed = 0
    for spec in specs:
        assignments = await clients.list_role_assignments(spec.scope, principal_id)
        for assignment in assignments:
            if not _role_id_matches(assignment, spec.role_definition_id):
                continue
            if (getattr(assignment, "scope", None) or "").lower() != spec.scope.lower():
                continue
            await clients.delete_role_assignment(spec.scope, assignment.name)
            logger.info("Removed role '%s' at %s", spec.role_name, spec.scope)
            removed += 1
    return removed
