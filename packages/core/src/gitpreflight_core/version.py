from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

_FALLBACK_VERSION = "0.1.0"


def get_version() -> str:
    """Read the installed gitpreflight version from package metadata."""
    try:
        return version("gitpreflight")
    except PackageNotFoundError:
        return _FALLBACK_VERSION
