"""Node configuration management.

Configuration is read once from /etc/flexnode/config.yaml (or the path given
with --config / $FLEXNODE_CONFIG) and is read-only afterwards. Environment
variables override file values.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .shared.paths import DEFAULT_COMPONENTS_DIR, get_config_path

DEFAULT_COMPONENT_TIMEOUT = 600
IDENTITY_STRATEGIES = ("auto", "azure-vm", "arc")

# Environment variable mappings
ENV_VARS = {
    "subscription_id": "FLEXNODE_SUBSCRIPTION_ID",
    "cluster_resource_id": "FLEXNODE_CLUSTER_RESOURCE_ID",
    "managed_identity_client_id": "FLEXNODE_MANAGED_IDENTITY_CLIENT_ID",
    "identity_strategy": "FLEXNODE_IDENTITY_STRATEGY",
    "components_dir": "FLEXNODE_COMPONENTS_DIR",
}


@dataclass(frozen=True)
class AzureConfig:
    """Azure settings for the trust establisher."""

    subscription_id: str | None = None
    cluster_resource_id: str | None = None
    managed_identity_client_id: str | None = None


@dataclass(frozen=True)
class ComponentsConfig:
    """Where collaborator installers live and how long they may run."""

    dir: Path = DEFAULT_COMPONENTS_DIR
    timeout_seconds: int = DEFAULT_COMPONENT_TIMEOUT


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    json: bool = False
    file: str | None = None


@dataclass(frozen=True)
class NodeConfig:
    """Complete node configuration."""

    azure: AzureConfig = field(default_factory=AzureConfig)
    components: ComponentsConfig = field(default_factory=ComponentsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    identity_strategy: str = "auto"
    source: str = "default"

    def require_subscription_id(self) -> str:
        """Return the subscription ID or raise ConfigError."""
        if not self.azure.subscription_id:
            raise ConfigError(
                "azure.subscriptionId is required (or set FLEXNODE_SUBSCRIPTION_ID)"
            )
        return self.azure.subscription_id

    def require_cluster_resource_id(self) -> str:
        """Return the target cluster resource ID or raise ConfigError."""
        if not self.azure.cluster_resource_id:
            raise ConfigError(
                "azure.targetCluster.resourceId is required "
                "(or set FLEXNODE_CLUSTER_RESOURCE_ID)"
            )
        return self.azure.cluster_resource_id


def _get(data: dict[str, Any], *keys: str) -> Any:
    """Walk nested mappings, returning None when any level is missing."""
    current: Any = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def parse_config(data: dict[str, Any], source: str = "config file") -> NodeConfig:
    """Build a NodeConfig from a parsed YAML document.

    Args:
        data: Parsed YAML mapping (camelCase keys)
        source: Description of where the data came from

    Returns:
        NodeConfig with file values applied over defaults
    """
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

    azure = AzureConfig(
        subscription_id=_get(data, "azure", "subscriptionId"),
        cluster_resource_id=_get(data, "azure", "targetCluster", "resourceId"),
        managed_identity_client_id=_get(data, "azure", "azureVm", "managedIdentity", "clientId"),
    )

    components = ComponentsConfig()
    if _get(data, "components", "dir"):
        components = replace(components, dir=Path(_get(data, "components", "dir")))
    if _get(data, "components", "timeoutSeconds") is not None:
        try:
            timeout = int(_get(data, "components", "timeoutSeconds"))
        except (TypeError, ValueError) as e:
            raise ConfigError(f"components.timeoutSeconds must be an integer: {e}") from e
        components = replace(components, timeout_seconds=timeout)

    logging_section = data.get("logging") or {}
    if not isinstance(logging_section, dict):
        raise ConfigError(
            f"logging must be a mapping with level/json/file keys, got {logging_section!r}"
        )
    logging_config = LoggingConfig(
        level=str(logging_section.get("level", "info")),
        json=bool(logging_section.get("json", False)),
        file=logging_section.get("file"),
    )

    config = NodeConfig(
        azure=azure,
        components=components,
        logging=logging_config,
        identity_strategy=str(data.get("identityStrategy", "auto")),
        source=source,
    )
    _check_identity_strategy(config.identity_strategy)
    return config


def _check_identity_strategy(value: str) -> None:
    if value not in IDENTITY_STRATEGIES:
        raise ConfigError(
            f"identityStrategy must be one of {', '.join(IDENTITY_STRATEGIES)}, got '{value}'"
        )


def apply_env_overrides(config: NodeConfig, environ: dict[str, str] | None = None) -> NodeConfig:
    """Override configuration values from environment variables."""
    env = os.environ if environ is None else environ

    azure_overrides = {
        key: env[var]
        for key, var in ENV_VARS.items()
        if key in AzureConfig.__dataclass_fields__ and env.get(var)
    }
    if azure_overrides:
        config = replace(config, azure=replace(config.azure, **azure_overrides))

    if env.get(ENV_VARS["identity_strategy"]):
        strategy = env[ENV_VARS["identity_strategy"]]
        _check_identity_strategy(strategy)
        config = replace(config, identity_strategy=strategy)

    if env.get(ENV_VARS["components_dir"]):
        config = replace(
            config,
            components=replace(config.components, dir=Path(env[ENV_VARS["components_dir"]])),
        )

    return config


def load_config(path: str | Path | None = None, environ: dict[str, str] | None = None) -> NodeConfig:
    """Load node configuration.

    Precedence (highest to lowest):
    1. Environment variables
    2. Config file
    3. Defaults

    An explicitly requested file that does not exist is an error; the
    default location is optional.

    Returns:
        NodeConfig with values applied
    """
    config_path = get_config_path(path)

    if config_path.exists():
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        config = parse_config(data, source=str(config_path))
    elif path:
        raise ConfigError(f"Config file not found: {config_path}")
    else:
        config = NodeConfig()

    return apply_env_overrides(config, environ)
