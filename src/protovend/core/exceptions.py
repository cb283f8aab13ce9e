"""Protovend exceptions.

Errors are grouped the way the CLI reports them: configuration problems,
resolution failures, network failures, and local filesystem failures.
Every error carries a ``context`` mapping with enough detail (repository,
branch, underlying cause) to diagnose it without inspecting the cache.
"""
from __future__ import annotations

from typing import Any, Dict, Mapping


class ProtovendError(Exception):
    """Base exception for protovend."""

    context: Dict[str, Any]

    def __init__(self, message: str = "", *, context: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        if context is not None:
            # Store a shallow copy to avoid accidental mutation.
            self.context = dict(context)
        else:
            self.context = {}

    def with_context(self, **extra: Any) -> "ProtovendError":
        """Add context keys that are not already set and return ``self``."""
        for key, value in extra.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def to_json_error(self) -> Dict[str, Any]:
        """Return a JSON-serializable error payload."""
        return {
            "message": str(self),
            "code": self.__class__.__name__,
            "context": self.context,
        }

    def __str__(self) -> str:
        message = super().__str__()
        details = []
        for key in ("repository", "branch", "commit"):
            if key in self.context and f"{self.context[key]}" not in message:
                details.append(f"{key}={self.context[key]}")
        if details:
            message = f"{message} ({', '.join(details)})"
        cause = self.context.get("stderr") or self.context.get("cause")
        if cause:
            message = f"{message}\n{cause}"
        return message


# --- configuration ---------------------------------------------------------


class ConfigError(ProtovendError):
    """Raised when the manifest or lockfile is missing or malformed."""


class ManifestNotFoundError(ConfigError):
    """Raised when the project has no manifest file."""


class ParseError(ConfigError):
    """Raised when a metadata file cannot be parsed."""


class ManifestParseError(ParseError):
    """Raised when .protovend.yml is not a valid manifest."""


class LockfileParseError(ParseError):
    """Raised when .protovend.lock is not a valid lockfile."""


class DuplicateEntryError(ConfigError):
    """Raised when a repository is declared more than once."""


class DependencyNotFoundError(ConfigError):
    """Raised when a repository is not declared in the manifest."""


class VersionTooOldError(ConfigError):
    """Raised when metadata files require a newer protovend."""


class InvalidRepositoryError(ConfigError):
    """Raised when a repository identifier or URL cannot be parsed."""


# --- resolution ------------------------------------------------------------


class ResolutionError(ProtovendError):
    """Raised when a repository, branch, or commit cannot be resolved."""


class RepositoryNotFoundError(ResolutionError):
    """Raised when the remote repository does not exist."""


class BranchNotFoundError(ResolutionError):
    """Raised when the tracked branch does not exist on the remote."""


class CommitNotFoundError(ResolutionError):
    """Raised when a pinned commit is not available from the remote."""


class AuthError(ResolutionError):
    """Raised when the remote rejects our credentials."""


# --- transport and filesystem ---------------------------------------------


class NetworkError(ProtovendError):
    """Raised on connectivity failures and git timeouts."""


class FilesystemError(ProtovendError):
    """Raised when the cache, staging area, or vendor tree cannot be written."""


class CacheCleanupError(FilesystemError):
    """Raised after cleanup when one or more cached clones could not be deleted."""

    def __init__(
        self,
        message: str = "",
        *,
        failures: Mapping[str, str] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        ctx = dict(context or {})
        self.failures: Dict[str, str] = dict(failures or {})
        if self.failures:
            ctx["failures"] = self.failures
        super().__init__(message, context=ctx)


class PathNotFoundError(ProtovendError):
    """Raised when a subdirectory does not exist at a commit."""


class LintError(ProtovendError):
    """Raised when lint checks report violations."""


__all__ = [
    "ProtovendError",
    "ConfigError",
    "ManifestNotFoundError",
    "ParseError",
    "ManifestParseError",
    "LockfileParseError",
    "DuplicateEntryError",
    "DependencyNotFoundError",
    "VersionTooOldError",
    "InvalidRepositoryError",
    "ResolutionError",
    "RepositoryNotFoundError",
    "BranchNotFoundError",
    "CommitNotFoundError",
    "AuthError",
    "NetworkError",
    "FilesystemError",
    "CacheCleanupError",
    "PathNotFoundError",
    "LintError",
]
