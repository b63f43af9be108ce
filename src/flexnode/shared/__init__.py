"""Shared modules for flexnode: logging setup, host paths and retry combinators."""

from .logging import configure_logging
from .paths import (
    CONFIG_DIR,
    DEFAULT_COMPONENTS_DIR,
    DEFAULT_CONFIG_FILE,
    DMI_DIR,
    get_config_path,
)
from .retry import BackoffSchedule, poll_until, retry_async

__all__ = [
    # Paths
    "CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_COMPONENTS_DIR",
    "DMI_DIR",
    "get_config_path",
    # Logging
    "configure_logging",
    # Retry and polling
    "BackoffSchedule",
    "poll_until",
    "retry_async",
]
