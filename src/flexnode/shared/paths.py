"""Well-known host paths used by flexnode."""

import os
from pathlib import Path

# System-wide configuration directory
CONFIG_DIR = Path("/etc/flexnode")

# Default configuration file
DEFAULT_CONFIG_FILE = CONFIG_DIR / "config.yaml"

# Per-component installer executables
DEFAULT_COMPONENTS_DIR = Path("/opt/flexnode/components")


# DMI attributes exposed by the kernel
DMI_DIR = Path("/sys/class/dmi/id")

CONFIG_ENV_VAR = "FLEXNODE_CONFIG"


def get_config_path(explicit: str | Path | None = None) -> Path:
    """Resolve the configuration file path.

    Precedence: explicit argument, then $FLEXNODE_CONFIG, then
    /etc/flexnode/config.yaml.
    """
    if explicit:
        return Path(explicit)
    if os.environ.get(CONFIG_ENV_VAR):
        return Path(os.environ[CONFIG_ENV_VAR])
    return DEFAULT_CONFIG_FILE

