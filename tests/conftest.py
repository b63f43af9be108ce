"""Shared test fixtures for flexnode tests.

This module provides:
- fake_clock: deterministic sleep/clock pair for backoff and polling
- fake_clients: in-memory management-plane clients (see tests.fakes)
- http_error: factory for HttpResponseError with a status and ARM error code
- node_config: configuration for an Azure VM node with a temp components dir
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from flexnode.config import AzureConfig, ComponentsConfig, NodeConfig
from tests.fakes import (
    CLUSTER_ID,
    PRINCIPAL_ID,
    SUBSCRIPTION_ID,
    FakeAzureClients,
    make_cluster,
    make_http_error,
    make_vm,
)


@dataclass
class FakeClock:
    """Sleep and clock that only move when the code under test sleeps."""

    now: float = 0.0
    sleeps: list[float] = field(default_factory=list)

    def time(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


@pytest.fixture
def fake_clock() -> FakeClock:
    """Deterministic clock; pass ``fake_clock.sleep`` and ``fake_clock.time``."""
    return FakeClock()


@pytest.fixture
def fake_clients() -> FakeAzureClients:
    """A VM with one user-assigned identity and a cluster with Azure RBAC."""
    return FakeAzureClients(
        vm=make_vm(user_assigned={"/uami/node": (PRINCIPAL_ID, "client-1")}),
        cluster=make_cluster(True),
    )


@pytest.fixture
def http_error():
    """Factory: ``http_error(status_code, code, message)``."""
    return make_http_error


@pytest.fixture
def components_dir(tmp_path: Path) -> Path:
    """Empty components directory."""
    path = tmp_path / "components"
    path.mkdir()
    return path


@pytest.fixture
def node_config(components_dir: Path) -> NodeConfig:
    """Configuration for an Azure VM node joining CLUSTER_ID."""
    return NodeConfig(
        azure=AzureConfig(subscription_id=SUBSCRIPTION_ID, cluster_resource_id=CLUSTER_ID),
        components=ComponentsConfig(dir=components_dir, timeout_seconds=30),
    )
