"""Unit tests for flexnode.config."""

from pathlib import Path

import pytest

from flexnode.config import NodeConfig, apply_env_overrides, load_config, parse_config
from flexnode.errors import ConfigError
from flexnode.shared.paths import DEFAULT_COMPONENTS_DIR

FULL_CONFIG = """\
azure:
  subscriptionId: sub-1
  targetCluster:
    resourceId: /subscriptions/sub-1/resourceGroups/rg/providers/Microsoft.ContainerService/managedClusters/c
  azureVm:
    managedIdentity:
      clientId: client-1
identityStrategy: azure-vm
components:
  dir: /srv/components
  timeoutSeconds: 120
logging:
  level: debug
  json: true
"""


@pytest.mark.flexnode_unit
class TestParseConfig:
    """Tests for parse_config."""

    def test_defaults(self):
        config = parse_config({})
        assert config.azure.subscription_id is None
        assert config.components.dir == DEFAULT_COMPONENTS_DIR
        assert config.components.timeout_seconds == 600
        assert config.identity_strategy == "auto"
        assert config.logging.level == "info"

    def test_invalid_identity_strategy(self):
        with pytest.raises(ConfigError, match="identityStrategy"):
            parse_config({"identityStrategy": "gcp"})

    def test_invalid_timeout(self):
        with pytest.raises(ConfigError, match="timeoutSeconds"):
            parse_config({"components": {"timeoutSeconds": "soon"}})

    def test_logging_not_a_mapping(self):
        """Test a scalar logging section is a ConfigError, not an AttributeError."""
        with pytest.raises(ConfigError, match="logging must be a mapping"):
            parse_config({"logging": "debug"})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigError):
            parse_config(["azure"])

    def test_require_values(self):
        """Test required Azure values are only enforced on access."""
        config = NodeConfig()
        with pytest.raises(ConfigError, match="FLEXNODE_SUBSCRIPTION_ID"):
            config.require_subscription_id()
        with pytest.raises(ConfigError, match="FLEXNODE_CLUSTER_RESOURCE_ID"):
            config.require_cluster_resource_id()


@pytest.mark.flexnode_unit
class TestLoadConfig:
    """Tests for load_config."""

    def test_load_full_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(FULL_CONFIG)

        config = load_config(config_file, environ={})

        assert config.azure.subscription_id == "sub-1"
        assert config.azure.cluster_resource_id.endswith("/managedClusters/c")
        assert config.azure.managed_identity_client_id == "client-1"
        assert config.identity_strategy == "azure-vm"
        assert config.components.dir == Path("/srv/components")
        assert config.components.timeout_seconds == 120
        assert config.logging.level == "debug"
        assert config.logging.json is True
        assert config.source == str(config_file)

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_default_missing_file_is_optional(self, tmp_path, monkeypatch):
        monkeypatch.setattr("flexnode.config.get_config_path", lambda path: tmp_path / "absent.yaml")
        config = load_config(environ={})
        assert config.source == "default"

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("azure: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_file, environ={})

    def test_empty_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        assert load_config(config_file, environ={}).identity_strategy == "auto"


@pytest.mark.flexnode_unit
class TestEnvOverrides:
    """Tests for apply_env_overrides."""

    def test_env_overrides_file(self, tmp_path):
        """Test environment variables take precedence over file values."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(FULL_CONFIG)

        config = load_config(
            config_file,
            environ={
                "FLEXNODE_SUBSCRIPTION_ID": "sub-env",
                "FLEXNODE_MANAGED_IDENTITY_CLIENT_ID": "client-env",
                "FLEXNODE_IDENTITY_STRATEGY": "arc",
                "FLEXNODE_COMPONENTS_DIR": "/env/components",
            },
        )

        assert config.azure.subscription_id == "sub-env"
        assert config.azure.managed_identity_client_id == "client-env"
        assert config.azure.cluster_resource_id.endswith("/managedClusters/c")
        assert config.identity_strategy == "arc"
        assert config.components.dir == Path("/env/components")

    def test_empty_env_values_ignored(self):
        config = apply_env_overrides(NodeConfig(), {"FLEXNODE_SUBSCRIPTION_ID": ""})
        assert config.azure.subscription_id is None

    def test_invalid_env_strategy(self):
        with pytest.raises(ConfigError):
            apply_env_overrides(NodeConfig(), {"FLEXNODE_IDENTITY_STRATEGY": "bogus"})
