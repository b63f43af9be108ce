"""Collaborator steps: node components and service control.

Each node component (container runtime, kubelet, CNI, ...) ships an
installer executable in the components directory that accepts ``install``
or ``uninstall``. The steps here only drive those executables and
``systemctl``; what the installers do on the host is their own business.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

from ..config import NodeConfig
from ..errors import CommandError, PreconditionError

logger = logging.getLogger(__name__)

# Install order; teardown runs the reverse
COMPONENTS = (
    "system-configuration",
    "runc",
    "containerd",
    "kube-binaries",
    "cni",
    "kubelet",
    "node-problem-detector",
)

# Hybrid identity agent for hosts outside Azure
ARC_COMPONENT = "arc"

# Services in start order
NODE_SERVICES = ("containerd", "kubelet")

SYSTEMCTL_TIMEOUT = 60


async def run_command(argv: list[str], timeout: float) -> str:
    """Run a command, returning stdout.

    The child is killed if the timeout expires or the calling task is
    cancelled.

    Raises:
        CommandError: Non-zero exit status or timeout
    """
    logger.debug("Running %s", " ".join(argv))
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise CommandError(
            message=f"{argv[0]} timed out after {timeout:g}s",
            data={"argv": argv},
        ) from e
    except asyncio.CancelledError:
        proc.kill()
        await proc.wait()
        raise

    if proc.returncode != 0:
        err = stderr.decode("utf-8", errors="replace").strip()
        raise CommandError(
            message=f"{' '.join(argv)} exited with status {proc.returncode}: {err}",
            data={"argv": argv},
            returncode=proc.returncode,
            stderr=err,
        )
    return stdout.decode("utf-8", errors="replace")


class ComponentStep:
    """Install or uninstall one node component via its installer executable."""

    def __init__(self, component: str, action: str, config: NodeConfig):
        if action not in ("install", "uninstall"):
            raise ValueError(f"Unknown component action: {action}")
        self.component = component
        self.action = action
        self.installer: Path = config.components.dir / component
        self.timeout = config.components.timeout_seconds

    @property
    def name(self) -> str:
        return f"{self.component}-{self.action}"

    async def validate(self) -> None:
        if not self.installer.is_file():
            raise PreconditionError(
                f"Installer for '{self.component}' not found at {self.installer}",
                data={"component": self.component},
            )
        if not os.access(self.installer, os.X_OK):
            raise PreconditionError(
                f"Installer for '{self.component}' is not executable: {self.installer}",
                data={"component": self.component},
            )

    async def execute(self) -> None:
        logger.info("Running %s %s", self.installer, self.action)
        await run_command([str(self.installer), self.action], timeout=self.timeout)


class ServiceStep:
    """Stop or start the node's systemd services."""

    def __init__(self, action: str, services: tuple[str, ...] = NODE_SERVICES, disable: bool = False):
        if action not in ("start", "stop"):
            raise ValueError(f"Unknown service action: {action}")
        self.action = action
        self.services = services
        self.disable = disable

    @property
    def name(self) -> str:
        return f"services-{self.action}"

    async def validate(self) -> None:
        if not shutil.which("systemctl"):
            raise PreconditionError("systemctl not found; a systemd host is required")

    async def execute(self) -> None:
        if self.action == "start":
            await run_command(["systemctl", "daemon-reload"], timeout=SYSTEMCTL_TIMEOUT)
            for service in self.services:
                logger.info("Starting %s", service)
                await run_command(
                    ["systemctl", "enable", "--now", f"{service}.service"],
                    timeout=SYSTEMCTL_TIMEOUT,
                )
            return

        # Stop dependents first
        for service in reversed(self.services):
            if not await self._is_active(service):
                logger.info("%s is not running", service)
                continue
            logger.info("Stopping %s", service)
            await run_command(["systemctl", "stop", f"{service}.service"], timeout=SYSTEMCTL_TIMEOUT)
            if self.disable:
                await run_command(
                    ["systemctl", "disable", f"{service}.service"], timeout=SYSTEMCTL_TIMEOUT
                )

    async def _is_active(self, service: str) -> bool:
        try:
            await run_command(
                ["systemctl", "is-active", "--quiet", f"{service}.service"],
                timeout=SYSTEMCTL_TIMEOUT,
            )
        except CommandError as e:
            if e.returncode is None:
                raise
            return False
        return True


def component_installers(config: NodeConfig) -> list[ComponentStep]:
    """Installer steps in dependency order."""
    return [ComponentStep(component, "install", config) for component in COMPONENTS]


def component_uninstallers(config: NodeConfig) -> list[ComponentStep]:
    """Uninstaller steps in reverse dependency order."""
    return [ComponentStep(component, "uninstall", config) for component in reversed(COMPONENTS)]
