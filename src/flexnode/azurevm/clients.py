"""Azure management-plane clients.

The SDK clients are synchronous; every call runs in a worker thread behind
``asyncio.wait_for`` so it has its own short timeout and the awaiting task
stays cancellable.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from azure.core.credentials import TokenCredential
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.authorization.models import PrincipalType, RoleAssignmentCreateParameters
from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.containerservice import ContainerServiceClient

from ..errors import AuthenticationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MANAGEMENT_SCOPE = "https://management.azure.com/.default"
REMOTE_CALL_TIMEOUT = 10.0


def create_credential() -> TokenCredential:
    """Ambient credential used to manage role assignments.

    The VM's own managed identity is excluded: it is the principal being
    granted access, so it cannot be the one granting it.
    """
    return DefaultAzureCredential(exclude_managed_identity_credential=True)


async def ensure_authentication(
    credential: TokenCredential, timeout: float = REMOTE_CALL_TIMEOUT
) -> None:
    """Check that ``credential`` can obtain a management-plane token.

    Raises:
        AuthenticationError: No usable credential
    """
    try:
        await asyncio.wait_for(asyncio.to_thread(credential.get_token, MANAGEMENT_SCOPE), timeout)
    except ClientAuthenticationError as e:
        raise AuthenticationError(
            "no usable Azure credential - log in with 'az login' or set "
            f"AZURE_CLIENT_ID/AZURE_TENANT_ID/AZURE_CLIENT_SECRET: {e.message}"
        ) from e
    except asyncio.TimeoutError as e:
        raise AuthenticationError(f"timed out after {timeout:g}s acquiring an Azure token") from e


def role_definition_resource_id(subscription_id: str, role_definition_id: str) -> str:
    """Full ARM ID of a built-in role definition."""
    return (
        f"/subscriptions/{subscription_id}/providers/Microsoft.Authorization/"
        f"roleDefinitions/{role_definition_id}"
    )


class AzureClients:
    """Async facade over the compute, container service and authorization clients."""

    def __init__(
        self,
        credential: TokenCredential,
        subscription_id: str,
        call_timeout: float = REMOTE_CALL_TIMEOUT,
    ):
        self.credential = credential
        self.subscription_id = subscription_id
        self.call_timeout = call_timeout
        self.authorization = AuthorizationManagementClient(credential, subscription_id)
        self.container_service = ContainerServiceClient(credential, subscription_id)
        self._compute: dict[str, ComputeManagementClient] = {}

    def compute(self, subscription_id: str) -> ComputeManagementClient:
        """Compute client for the VM's subscription, which may differ from the cluster's."""
        if subscription_id not in self._compute:
            self._compute[subscription_id] = ComputeManagementClient(self.credential, subscription_id)
        return self._compute[subscription_id]

    async def _call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.wait_for(
            asyncio.to_thread(fn, *args, **kwargs), timeout=self.call_timeout
        )

    async def get_virtual_machine(self, subscription_id: str, resource_group: str, name: str) -> Any:
        return await self._call(self.compute(subscription_id).virtual_machines.get, resource_group, name)

    async def get_managed_cluster(self, resource_group: str, name: str) -> Any:
        return await self._call(self.container_service.managed_clusters.get, resource_group, name)

    async def create_role_assignment(self, scope: str, role_definition_id: str, principal_id: str) -> Any:
        """Create a role assignment under a fresh name.

        The call is synchronous on the server side; visibility to data-plane
        authorization checks still lags behind.
        """
        assignment_name = str(uuid.uuid4())
        parameters = RoleAssignmentCreateParameters(
            role_definition_id=role_definition_resource_id(self.subscription_id, role_definition_id),
            principal_id=principal_id,
            # Lets ARM accept principals that have not replicated yet
            principal_type=PrincipalType.SERVICE_PRINCIPAL,
        )
        logger.debug("Creating role assignment %s at %s", assignment_name, scope)
        return await self._call(
            self.authorization.role_assignments.create, scope, assignment_name, parameters
        )

    async def list_role_assignments(self, scope: str, principal_id: str) -> list[Any]:
        """Role assignments held by ``principal_id`` at or above ``scope``."""

        def _list() -> list[Any]:
            return list(
                self.authorization.role_assignments.list_for_scope(
                    scope, filter=f"assignedTo('{principal_id}')"
                )
            )

        return await self._call(_list)

    async def delete_role_assignment(self, scope: str, assignment_name: str) -> None:
        await self._call(self.authorization.role_assignments.delete, scope, assignment_name)
