"""Unit tests for Bootstrapper step assembly and runs."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock, patch

import pytest

from flexnode.azurevm import AzureVmInstaller, AzureVmUnInstaller
from flexnode.bootstrap import Bootstrapper, ComponentStep, IdentityStrategy, StepStatus

BOOTSTRAP_ORDER = [
    "services-stop",
    "system-configuration-install",
    "runc-install",
    "containerd-install",
    "kube-binaries-install",
    "cni-install",
    "kubelet-install",
    "node-problem-detector-install",
    "services-start",
]

UNBOOTSTRAP_ORDER = [
    "services-stop",
    "node-problem-detector-uninstall",
    "kubelet-uninstall",
    "cni-uninstall",
    "kube-binaries-uninstall",
    "containerd-uninstall",
    "runc-uninstall",
    "system-configuration-uninstall",
]


@pytest.mark.flexnode_unit
class TestStepAssembly:
    """Tests for bootstrap_steps and unbootstrap_steps."""

    def test_azure_vm_bootstrap_order(self, node_config):
        """Test the identity step comes first on an Azure VM."""
        steps = Bootstrapper(node_config, platform_probe=lambda: True).bootstrap_steps()

        assert isinstance(steps[0], AzureVmInstaller)
        assert [s.name for s in steps] == ["azure-vm-install"] + BOOTSTRAP_ORDER

    def test_arc_bootstrap_order(self, node_config):
        """Test the Arc step replaces the Azure VM step off Azure."""
        steps = Bootstrapper(node_config, platform_probe=lambda: False).bootstrap_steps()

        assert isinstance(steps[0], ComponentStep)
        assert [s.name for s in steps] == ["arc-install"] + BOOTSTRAP_ORDER

    def test_azure_vm_unbootstrap_order(self, node_config):
        """Test the identity teardown step comes last."""
        steps = Bootstrapper(node_config, platform_probe=lambda: True).unbootstrap_steps()

        assert isinstance(steps[-1], AzureVmUnInstaller)
        assert [s.name for s in steps] == UNBOOTSTRAP_ORDER + ["azure-vm-uninstall"]

    def test_arc_unbootstrap_order(self, node_config):
        steps = Bootstrapper(node_config, platform_probe=lambda: False).unbootstrap_steps()
        assert [s.name for s in steps] == UNBOOTSTRAP_ORDER + ["arc-uninstall"]

    def test_component_order_is_reversed(self, node_config):
        """Test unbootstrap components are the reverse of bootstrap components."""
        bootstrapper = Bootstrapper(node_config, platform_probe=lambda: True)
        installed = [s.component for s in bootstrapper.bootstrap_steps() if isinstance(s, ComponentStep)]
        removed = [s.component for s in bootstrapper.unbootstrap_steps() if isinstance(s, ComponentStep)]

        assert removed == list(reversed(installed))

    def test_strategy_chosen_once(self, node_config):
        """Test the platform probe runs once per bootstrapper."""
        calls = []

        def probe():
            calls.append(1)
            return True

        bootstrapper = Bootstrapper(node_config, platform_probe=probe)
        bootstrapper.bootstrap_steps()
        bootstrapper.unbootstrap_steps()

        assert len(calls) == 1
        assert bootstrapper.strategy is IdentityStrategy.AZURE_VM

    def test_configured_strategy_wins(self, node_config):
        config = replace(node_config, identity_strategy="arc")
        bootstrapper = Bootstrapper(config, platform_probe=lambda: True)
        assert bootstrapper.strategy is IdentityStrategy.ARC


@pytest.mark.flexnode_unit
class TestRuns:
    """Tests for bootstrap and unbootstrap runs."""

    @pytest.mark.asyncio
    async def test_bootstrap_fails_fast_on_missing_installer(self, node_config):
        """Test a missing Arc installer stops the run before any service is touched."""
        bootstrapper = Bootstrapper(node_config, platform_probe=lambda: False)

        with patch("flexnode.bootstrap.components.run_command", new=AsyncMock()) as mock_run:
            result = await bootstrapper.bootstrap()

        assert result.success is False
        assert result.label == "bootstrap"
        assert result.error.step == "arc-install"
        assert result.error.phase == "validate"
        assert result.count(StepStatus.NOT_RUN) == len(BOOTSTRAP_ORDER)
        mock_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unbootstrap_passes_label(self, node_config):
        bootstrapper = Bootstrapper(node_config, platform_probe=lambda: False)

        with patch("flexnode.bootstrap.bootstrapper.run_steps", new=AsyncMock()) as mock_run_steps:
            await bootstrapper.unbootstrap()

        steps, label = mock_run_steps.await_args.args
        assert label == "unbootstrap"
        assert steps[-1].name == "arc-uninstall"
