"""Minimum-version markers shared by the manifest and lockfile."""
from __future__ import annotations

from pathlib import Path
from typing import Type

from packaging.version import InvalidVersion, Version

from protovend import __version__
from protovend.core.exceptions import ParseError, VersionTooOldError


def current_version() -> str:
    return __version__


def parse_version(
    value: str,
    *,
    source: Path | None = None,
    error: Type[ParseError] = ParseError,
) -> Version:
    """Parse a ``min_protovend_version`` marker.

    Raises:
        ParseError: (or the ``error`` subclass) if ``value`` is not a valid version
    """
    try:
        return Version(str(value))
    except InvalidVersion as exc:
        raise error(
            f"Invalid min_protovend_version '{value}'",
            context={"path": str(source) if source else "", "cause": str(exc)},
        ) from exc


def ensure_supported(
    required: str,
    *,
    source: Path | None = None,
    error: Type[ParseError] = ParseError,
) -> None:
    """Fail when metadata requires a newer protovend than the one running.

    Raises:
        VersionTooOldError: If ``required`` is newer than :func:`current_version`
    """
    if parse_version(required, source=source, error=error) > Version(current_version()):
        raise VersionTooOldError(
            f"protovend cli version {current_version()} is too old for included metadata files. "
            f"Minimum version must be {required}",
            context={"path": str(source) if source else "", "required": required},
        )


__all__ = ["current_version", "parse_version", "ensure_supported"]
