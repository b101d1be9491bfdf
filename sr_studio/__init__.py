"""Top level package for the SR Studio super-resolution application."""

from __future__ import annotations

from importlib import metadata as _importlib_metadata


def _resolve_distribution_version() -> str:
    """Best-effort retrieval of the installed package version."""

    candidates = ("sr-studio", "sr_studio")
    for name in candidates:
        try:
            return _importlib_metadata.version(name)
        except _importlib_metadata.PackageNotFoundError:  # pragma: no cover - metadata lookup
            continue
    return "0.0.0"


__version__ = _resolve_distribution_version()


def get_version() -> str:
    """Return the discovered package version."""

    return __version__


from .core.app_core import AppConfiguration, AppCore  # noqa: E402

__all__ = ["AppCore", "AppConfiguration", "__version__", "get_version"]
