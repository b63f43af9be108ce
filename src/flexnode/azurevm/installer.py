"""Trust establishment for nodes running on Azure VMs.

The installer authorizes the VM's managed identity against the target
cluster: it discovers which VM it runs on, picks the identity, checks the
cluster uses Azure RBAC, grants the required roles and waits until those
grants are visible. The uninstaller removes the grants again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError

from ..config import NodeConfig
from ..errors import ClusterConfigurationError, FlexNodeError
from ..shared.retry import BackoffSchedule, Clock, Sleep
from .clients import AzureClients, create_credential, ensure_authentication
from .identity import ResolvedIdentity, resolve_identity
from .imds import InstanceMetadataClient
from .resource_id import ClusterResourceIdentifier, parse_cluster_resource_id, parse_vm_resource_id
from .roles import (
    ASSIGNMENT_SCHEDULE,
    PROPAGATION_POLL_INTERVAL,
    PROPAGATION_TIMEOUT,
    assign_roles,
    has_role_assignments,
    remove_role_assignments,
    required_role_assignments,
    wait_for_permissions,
)

logger = logging.getLogger(__name__)


class TrustState(str, Enum):
    """Progress of a trust establishment run."""

    NOT_STARTED = "not_started"
    CLIENTS_READY = "clients_ready"
    IDENTITY_RESOLVED = "identity_resolved"
    CLUSTER_VALIDATED = "cluster_validated"
    ROLES_ASSIGNED = "roles_assigned"
    PERMISSIONS_PROPAGATED = "permissions_propagated"
    COMPLETE = "complete"


class _AzureVmStep:
    """Shared discovery for the install and uninstall steps."""

    def __init__(
        self,
        config: NodeConfig,
        *,
        credential_factory: Callable[[], TokenCredential] = create_credential,
        clients_factory: Callable[[TokenCredential, str], AzureClients] = AzureClients,
        metadata: InstanceMetadataClient | None = None,
    ):
        self.config = config
        self.credential_factory = credential_factory
        self.clients_factory = clients_factory
        self.metadata = metadata or InstanceMetadataClient()

    def _cluster(self) -> ClusterResourceIdentifier:
        self.config.require_subscription_id()
        return parse_cluster_resource_id(self.config.require_cluster_resource_id())

    async def _connect(self) -> AzureClients:
        credential = self.credential_factory()
        await ensure_authentication(credential)
        return self.clients_factory(credential, self.config.require_subscription_id())

    async def _resolve_identity(self, clients: AzureClients) -> ResolvedIdentity:
        vm_id = parse_vm_resource_id(await self.metadata.get_vm_resource_id())
        try:
            vm = await clients.get_virtual_machine(vm_id.subscription_id, vm_id.resource_group, vm_id.name)
        except AzureError as e:
            raise FlexNodeError(f"failed to get VM {vm_id.name}: {e.message}") from e
        return resolve_identity(vm, self.config.azure.managed_identity_client_id)

    async def validate(self) -> None:
        """Check configuration, credentials and identity without changing anything."""
        self._cluster()
        clients = await self._connect()
        identity = await self._resolve_identity(clients)
        logger.debug("Validated %s identity %s", identity.kind.value, identity.principal_id)


class AzureVmInstaller(_AzureVmStep):
    """Grant the VM's managed identity access to the target cluster."""

    def __init__(
        self,
        config: NodeConfig,
        *,
        credential_factory: Callable[[], TokenCredential] = create_credential,
        clients_factory: Callable[[TokenCredential, str], AzureClients] = AzureClients,
        metadata: InstanceMetadataClient | None = None,
        schedule: BackoffSchedule = ASSIGNMENT_SCHEDULE,
        poll_interval: float = PROPAGATION_POLL_INTERVAL,
        propagation_timeout: float = PROPAGATION_TIMEOUT,
        sleep: Sleep = asyncio.sleep,
        clock: Clock | None = None,
    ):
        super().__init__(
            config,
            credential_factory=credential_factory,
            clients_factory=clients_factory,
            metadata=metadata,
        )
        self.schedule = schedule
        self.poll_interval = poll_interval
        self.propagation_timeout = propagation_timeout
        self.sleep = sleep
        self.clock = clock
        self.state = TrustState.NOT_STARTED
        self.identity: ResolvedIdentity | None = None

    @property
    def name(self) -> str:
        return "azure-vm-install"

    async def is_completed(self) -> bool:
        """True when every required grant is already visible for the node identity."""
        try:
            cluster = self._cluster()
            clients = await self._connect()
            identity = await self._resolve_identity(clients)
            return await has_role_assignments(
                clients, identity.principal_id, required_role_assignments(cluster)
            )
        except (FlexNodeError, AzureError, asyncio.TimeoutError) as e:
            logger.debug("Completion check failed, treating step as not completed: %s", e)
            return False

    def _advance(self, state: TrustState) -> None:
        logger.debug("Trust establishment: %s -> %s", self.state.value, state.value)
        self.state = state

    async def execute(self) -> None:
        self.state = TrustState.NOT_STARTED
        cluster = self._cluster()

        clients = await self._connect()
        self._advance(TrustState.CLIENTS_READY)

        self.identity = await self._resolve_identity(clients)
        self._advance(TrustState.IDENTITY_RESOLVED)

        await self._validate_cluster(clients, cluster)
        self._advance(TrustState.CLUSTER_VALIDATED)

        specs = required_role_assignments(cluster)
        await assign_roles(
            clients, self.identity.principal_id, specs, schedule=self.schedule, sleep=self.sleep
        )
        self._advance(TrustState.ROLES_ASSIGNED)

        await wait_for_permissions(
            clients,
            self.identity.principal_id,
            specs,
            interval=self.poll_interval,
            timeout=self.propagation_timeout,
            sleep=self.sleep,
            clock=self.clock,
        )
        self._advance(TrustState.PERMISSIONS_PROPAGATED)

        self._advance(TrustState.COMPLETE)
        logger.info(
            "Managed identity %s authorized for cluster %s", self.identity.principal_id, cluster.name
        )

    async def _validate_cluster(self, clients: AzureClients, cluster: ClusterResourceIdentifier) -> None:
        try:
            managed_cluster = await clients.get_managed_cluster(cluster.resource_group, cluster.name)
        except AzureError as e:
            raise FlexNodeError(f"failed to get managed cluster {cluster.name}: {e.message}") from e

        aad_profile = getattr(managed_cluster, "aad_profile", None)
        if aad_profile is None or not aad_profile.enable_azure_rbac:
            raise ClusterConfigurationError(
                f"cluster {cluster.name} does not have Azure RBAC enabled - "
                "enable it with 'az aks update --enable-azure-rbac'",
                data={"cluster": cluster.resource_id},
            )
        logger.info("Cluster %s has Azure RBAC enabled", cluster.name)


class AzureVmUnInstaller(_AzureVmStep):
    """Remove the grants the installer created for the VM's managed identity."""

    @property
    def name(self) -> str:
        return "azure-vm-uninstall"

    async def execute(self) -> None:
        cluster = self._cluster()
        clients = await self._connect()
        identity = await self._resolve_identity(clients)
        removed = await remove_role_assignments(
            clients, identity.principal_id, required_role_assignments(cluster)
        )
        logger.info("Removed %d role assignment(s) for %s", removed, identity.principal_id)
