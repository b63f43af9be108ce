"""Managed identity resolution for an Azure VM."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import AmbiguousIdentityError, IdentityNotFoundError, NoIdentityError

logger = logging.getLogger(__name__)

CLIENT_ID_SETTING = "azure.azureVm.managedIdentity.clientId"


class IdentityKind(str, Enum):
    SYSTEM_ASSIGNED = "system-assigned"
    USER_ASSIGNED = "user-assigned"


@dataclass(frozen=True)
class ResolvedIdentity:
    """The single identity that receives the node's role assignments."""

    kind: IdentityKind
    principal_id: str
    client_id: str | None = None
    resource_id: str | None = None


def resolve_identity(vm: Any, configured_client_id: str | None = None) -> ResolvedIdentity:
    """Pick the managed identity to authorize from a VM resource.

    Rules, in order:
    1. Exactly one user-assigned identity: use it.
    2. Several user-assigned identities: use the one whose client ID matches
       the configured client ID.
    3. No user-assigned identity: use the system-assigned principal.

    Args:
        vm: VirtualMachine model (``identity.user_assigned_identities`` maps
            resource IDs to objects with ``principal_id`` and ``client_id``)
        configured_client_id: Disambiguating client ID from configuration

    Raises:
        AmbiguousIdentityError: Several user-assigned identities and no
            configured client ID
        IdentityNotFoundError: The configured client ID matches none of them
        NoIdentityError: Neither kind of identity is present
    """
    identity = getattr(vm, "identity", None)
    if identity is None:
        raise NoIdentityError(
            "no managed identity found on this Azure VM - please assign a managed identity to the VM"
        )

    user_assigned = dict(getattr(identity, "user_assigned_identities", None) or {})

    if len(user_assigned) > 1:
        if not configured_client_id:
            raise AmbiguousIdentityError(
                f"multiple user-assigned managed identities found ({len(user_assigned)}) - "
                f"please specify which one to use by setting {CLIENT_ID_SETTING}",
                data={"count": len(user_assigned)},
            )
        for resource_id, candidate in user_assigned.items():
            if candidate is not None and candidate.client_id == configured_client_id:
                if candidate.principal_id:
                    logger.info(
                        "Found user-assigned managed identity with client ID %s and principal ID %s",
                        configured_client_id,
                        candidate.principal_id,
                    )
                    return ResolvedIdentity(
                        kind=IdentityKind.USER_ASSIGNED,
                        principal_id=candidate.principal_id,
                        client_id=candidate.client_id,
                        resource_id=resource_id,
                    )
        raise IdentityNotFoundError(
            f"configured managed identity client ID '{configured_client_id}' does not match "
            f"any of the {len(user_assigned)} user-assigned managed identities on this VM",
            data={"client_id": configured_client_id},
        )

    for resource_id, candidate in user_assigned.items():
        if candidate is not None and candidate.principal_id:
            logger.info(
                "Found user-assigned managed identity with principal ID %s", candidate.principal_id
            )
            return ResolvedIdentity(
                kind=IdentityKind.USER_ASSIGNED,
                principal_id=candidate.principal_id,
                client_id=candidate.client_id,
                resource_id=resource_id,
            )

    system_principal = getattr(identity, "principal_id", None)
    if system_principal:
        logger.info("Found system-assigned managed identity with principal ID %s", system_principal)
        return ResolvedIdentity(kind=IdentityKind.SYSTEM_ASSIGNED, principal_id=system_principal)

    raise NoIdentityError(
        "no managed identity (system or user assigned) found on this Azure VM - "
        "please assign a managed identity to the VM"
    )
