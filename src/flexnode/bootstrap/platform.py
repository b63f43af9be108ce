"""Platform detection: which identity strategy applies to this host."""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from pathlib import Path

from ..shared.paths import DMI_DIR

# Every Azure VM reports this chassis asset tag through SMBIOS
AZURE_CHASSIS_ASSET_TAG = "7783-7084-3265-9085-8269-3286-77"


class IdentityStrategy(str, Enum):
    """How the node obtains its cloud identity."""

    AZURE_VM = "azure-vm"  # managed identity via the instance metadata endpoint
    ARC = "arc"  # hybrid identity via the Arc connected machine agent


def is_azure_vm(dmi_dir: Path = DMI_DIR) -> bool:
    """Return True when the host is an Azure virtual machine."""
    try:
        asset_tag = (dmi_dir / "chassis_asset_tag").read_text().strip()
    except OSError:
        return False
    return asset_tag == AZURE_CHASSIS_ASSET_TAG


def select_identity_strategy(
    probe: Callable[[], bool] = is_azure_vm,
    override: str = "auto",
) -> IdentityStrategy:
    """Choose the identity strategy once per run.

    Args:
        probe: Predicate reporting whether the host is an Azure VM
        override: "auto" to consult the probe, or an IdentityStrategy value

    Returns:
        The selected IdentityStrategy
    """
    if override != "auto":
        return IdentityStrategy(override)
    return IdentityStrategy.AZURE_VM if probe() else IdentityStrategy.ARC
