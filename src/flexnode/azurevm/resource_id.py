"""Azure resource ID parsing.

Resource IDs look like
``/subscriptions/{sub}/resourceGroups/{rg}/providers/{ns}/{type}/{name}``.
Keywords are matched case-insensitively and the token after each keyword is
taken as its value.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ParseError


@dataclass(frozen=True)
class VMResourceIdentifier:
    """Subscription, resource group and name of a virtual machine."""

    subscription_id: str
    resource_group: str
    name: str


@dataclass(frozen=True)
class ClusterResourceIdentifier:
    """Subscription, resource group and name of a managed cluster."""

    subscription_id: str
    resource_group: str
    name: str
    resource_id: str

    @property
    def resource_group_id(self) -> str:
        return f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"


def _extract(resource_id: str, keywords: tuple[str, ...]) -> dict[str, str]:
    parts = resource_id.split("/")
    found: dict[str, str] = {}
    for index, part in enumerate(parts):
        key = part.lower()
        if key in keywords and index + 1 < len(parts) and parts[index + 1]:
            found[key] = parts[index + 1]

    missing = [k for k in keywords if k not in found]
    if missing:
        raise ParseError(
            f"failed to extract {', '.join(missing)} from resource ID: {resource_id}",
            data={"resource_id": resource_id, "missing": missing},
        )
    return found


def parse_vm_resource_id(resource_id: str) -> VMResourceIdentifier:
    """Parse a virtual machine resource ID.

    Raises:
        ParseError: Any of subscriptions, resourceGroups or virtualMachines
            is missing. No partial result is returned.
    """
    found = _extract(resource_id, ("subscriptions", "resourcegroups", "virtualmachines"))
    return VMResourceIdentifier(
        subscription_id=found["subscriptions"],
        resource_group=found["resourcegroups"],
        name=found["virtualmachines"],
    )


def parse_cluster_resource_id(resource_id: str) -> ClusterResourceIdentifier:
    """Parse a managed cluster resource ID.

    Raises:
        ParseError: Any of subscriptions, resourceGroups or managedClusters
            is missing.
    """
    found = _extract(resource_id, ("subscriptions", "resourcegroups", "managedclusters"))
    return ClusterResourceIdentifier(
        subscription_id=found["subscriptions"],
        resource_group=found["resourcegroups"],
        name=found["managedclusters"],
        resource_id=resource_id.rstrip("/"),
    )
