"""Assemble and run the bootstrap and unbootstrap step lists."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from ..azurevm import AzureVmInstaller, AzureVmUnInstaller
from ..config import NodeConfig
from .components import (
    ARC_COMPONENT,
    ComponentStep,
    ServiceStep,
    component_installers,
    component_uninstallers,
)
from .executor import ExecutionResult, run_steps
from .platform import IdentityStrategy, is_azure_vm, select_identity_strategy
from .step import Step

logger = structlog.get_logger(__name__)


class Bootstrapper:
    """Turns this host into a cluster node, or back.

    The identity strategy is chosen once, when the bootstrapper is created,
    and shared by both directions.
    """

    def __init__(self, config: NodeConfig, platform_probe: Callable[[], bool] = is_azure_vm):
        self.config = config
        self.strategy = select_identity_strategy(platform_probe, config.identity_strategy)
        logger.info("Selected identity strategy", strategy=self.strategy.value)

    def identity_step(self) -> Step:
        match self.strategy:
            case IdentityStrategy.AZURE_VM:
                return AzureVmInstaller(self.config)
            case IdentityStrategy.ARC:
                return ComponentStep(ARC_COMPONENT, "install", self.config)

    def identity_teardown_step(self) -> Step:
        match self.strategy:
            case IdentityStrategy.AZURE_VM:
                return AzureVmUnInstaller(self.config)
            case IdentityStrategy.ARC:
                return ComponentStep(ARC_COMPONENT, "uninstall", self.config)

    def bootstrap_steps(self) -> list[Step]:
        """Identity first, then the node components between a service stop and start."""
        return [
            self.identity_step(),
            ServiceStep("stop"),
            *component_installers(self.config),
            ServiceStep("start"),
        ]

    def unbootstrap_steps(self) -> list[Step]:
        """Components in reverse order; the identity's privileges go last."""
        return [
            ServiceStep("stop", disable=True),
            *component_uninstallers(self.config),
            self.identity_teardown_step(),
        ]

    async def bootstrap(self, skip_completed: bool = False) -> ExecutionResult:
        return await run_steps(self.bootstrap_steps(), "bootstrap", skip_completed=skip_completed)

    async def unbootstrap(self) -> ExecutionResult:
        return await run_steps(self.unbootstrap_steps(), "unbootstrap")
