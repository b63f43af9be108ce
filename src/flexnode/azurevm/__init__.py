"""Trust establishment for nodes running on Azure VMs."""

from .identity import IdentityKind, ResolvedIdentity, resolve_identity
from .installer import AzureVmInstaller, AzureVmUnInstaller, TrustState
from .resource_id import (
    ClusterResourceIdentifier,
    VMResourceIdentifier,
    parse_cluster_resource_id,
    parse_vm_resource_id,
)
from .roles import RoleAssignmentSpec, required_role_assignments

__all__ = [
    # Steps
    "AzureVmInstaller",
    "AzureVmUnInstaller",
    "TrustState",
    # Identity
    "IdentityKind",
    "ResolvedIdentity",
    "resolve_identity",
    # Resource IDs
    "ClusterResourceIdentifier",
    "VMResourceIdentifier",
    "parse_cluster_resource_id",
    "parse_vm_resource_id",
    # Roles
    "RoleAssignmentSpec",
    "required_role_assignments",
]
