"""flexnode - join machines to an AKS cluster as worker nodes."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("flexnode")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Fallback for editable installs without metadata

from .main import main

__all__ = ["main", "__version__"]
