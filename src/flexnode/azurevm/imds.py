"""Azure Instance Metadata Service (IMDS) client.

IMDS is a link-local endpoint that tells code running on a VM about the VM
itself. Only the ``compute.resourceId`` field is consumed here.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import MetadataError

logger = logging.getLogger(__name__)

IMDS_INSTANCE_URL = "http://169.254.169.254/metadata/instance"
IMDS_API_VERSION = "2025-04-07"
IMDS_TIMEOUT_SECONDS = 10.0


class InstanceMetadataClient:
    """Query the instance metadata endpoint."""

    def __init__(
        self,
        url: str = IMDS_INSTANCE_URL,
        api_version: str = IMDS_API_VERSION,
        timeout_seconds: float = IMDS_TIMEOUT_SECONDS,
    ):
        self.url = url
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds

    async def get_instance(self) -> dict[str, Any]:
        """Fetch the instance document.

        Raises:
            MetadataError: Connection failure, non-200 status or invalid JSON
        """
        try:
            # IMDS must not be reached through a proxy
            async with httpx.AsyncClient(timeout=self.timeout_seconds, trust_env=False) as client:
                response = await client.get(
                    self.url,
                    params={"api-version": self.api_version},
                    headers={"Metadata": "true"},
                )
        except httpx.TimeoutException as e:
            raise MetadataError(f"IMDS request timed out after {self.timeout_seconds:g}s") from e
        except httpx.HTTPError as e:
            raise MetadataError(f"failed to query IMDS instance endpoint: {e}") from e

        if response.status_code != 200:
            raise MetadataError(
                f"IMDS instance request failed (status {response.status_code}): {response.text}",
                data={"http_status": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise MetadataError(f"failed to parse IMDS instance response: {e}") from e

    async def get_vm_resource_id(self) -> str:
        """Return this VM's ARM resource ID.

        Raises:
            MetadataError: The response has no compute.resourceId
        """
        instance = await self.get_instance()
        compute = instance.get("compute") or {}
        resource_id = compute.get("resourceId") if isinstance(compute, dict) else None
        if not resource_id:
            raise MetadataError("failed to get VM resource ID from IMDS instance endpoint")
        logger.info("Found VM resource ID: %s", resource_id)
        return resource_id
