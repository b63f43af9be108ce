"""Fakes for the Azure management plane and SDK models."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

from azure.core.exceptions import HttpResponseError

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"
CLUSTER_RG = "aks-rg"
CLUSTER_NAME = "aks-cluster"
CLUSTER_ID = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/{CLUSTER_RG}"
    f"/providers/Microsoft.ContainerService/managedClusters/{CLUSTER_NAME}"
)
VM_ID = (
    f"/subscriptions/{SUBSCRIPTION_ID}/resourceGroups/vm-rg"
    "/providers/Microsoft.Compute/virtualMachines/node-1"
)
PRINCIPAL_ID = "11111111-2222-3333-4444-555555555555"


def make_vm(
    user_assigned: dict[str, tuple[str | None, str | None]] | None = None,
    system_principal: str | None = None,
    has_identity: bool = True,
) -> SimpleNamespace:
    """Build a VirtualMachine-like object.

    Args:
        user_assigned: resource ID -> (principal_id, client_id)
        system_principal: System-assigned principal ID
        has_identity: False for a VM with no identity block at all
    """
    if not has_identity:
        return SimpleNamespace(identity=None)
    identities = {
        resource_id: SimpleNamespace(principal_id=principal, client_id=client)
        for resource_id, (principal, client) in (user_assigned or {}).items()
    }
    return SimpleNamespace(
        identity=SimpleNamespace(
            principal_id=system_principal,
            user_assigned_identities=identities or None,
        )
    )


def make_cluster(enable_azure_rbac: bool | None = True) -> SimpleNamespace:
    """Build a ManagedCluster-like object; None means no AAD profile."""
    if enable_azure_rbac is None:
        return SimpleNamespace(aad_profile=None)
    return SimpleNamespace(aad_profile=SimpleNamespace(enable_azure_rbac=enable_azure_rbac))


def make_http_error(status_code: int | None, code: str | None, message: str) -> HttpResponseError:
    """Build an HttpResponseError carrying a structured ARM error code."""
    error = HttpResponseError(message=message)
    error.status_code = status_code
    error.error = SimpleNamespace(code=code, message=message) if code else None
    return error


@dataclass
class FakeAzureClients:
    """In-memory replacement for AzureClients.

    ``create_errors`` maps a role definition ID to exceptions raised by
    successive create calls for that role; once the list is empty the
    assignment is recorded. ``visible_after`` hides recorded assignments
    from that many list calls.
    """

    vm: Any = None
    cluster: Any = None
    create_errors: dict[str, list[Exception]] = field(default_factory=dict)
    visible_after: int = 0
    assignments: list[SimpleNamespace] = field(default_factory=list)
    create_calls: list[tuple[str, str, str]] = field(default_factory=list)
    list_calls: int = 0
    deleted: list[tuple[str, str]] = field(default_factory=list)

    async def get_virtual_machine(self, subscription_id: str, resource_group: str, name: str) -> Any:
        return self.vm

    async def get_managed_cluster(self, resource_group: str, name: str) -> Any:
        return self.cluster

    async def create_role_assignment(self, scope: str, role_definition_id: str, principal_id: str) -> Any:
        self.create_calls.append((scope, role_definition_id, principal_id))
        pending = self.create_errors.get(role_definition_id)
        if pending:
            raise pending.pop(0)
        return self.add_assignment(scope, role_definition_id, principal_id)

    def add_assignment(self, scope: str, role_definition_id: str, principal_id: str) -> SimpleNamespace:
        assignment = SimpleNamespace(
            name=f"assignment-{len(self.assignments) + 1}",
            scope=scope,
            principal_id=principal_id,
            role_definition_id=(
                f"/subscriptions/{SUBSCRIPTION_ID}/providers/Microsoft.Authorization"
                f"/roleDefinitions/{role_definition_id}"
            ),
        )
        self.assignments.append(assignment)
        return assignment

    async def list_role_assignments(self, scope: str, principal_id: str) -> list[Any]:
        self.list_calls += 1
        if self.list_calls <= self.visible_after:
            return []
        # Assignments at the scope or inherited from a parent scope
        return [
            a
            for a in self.assignments
            if a.principal_id == principal_id and scope.lower().startswith(a.scope.lower())
        ]

    async def delete_role_assignment(self, scope: str, assignment_name: str) -> None:
        self.deleted.append((scope, assignment_name))
        self.assignments = [a for a in self.assignments if a.name != assignment_name]


class FakeMetadataClient:
    """Instance metadata client returning a fixed VM resource ID."""

    def __init__(self, resource_id: str = VM_ID):
        self.resource_id = resource_id
        self.calls = 0

    async def get_vm_resource_id(self) -> str:
        self.calls += 1
        return self.resource_id
