"""Protovend data models.

Provides immutable dataclasses for declared dependencies, resolved imports,
and the results reported by reconciliation and cache cleanup.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from protovend.core.exceptions import InvalidRepositoryError
from protovend.core.git_url import GitUrl, is_repository_id, repository_key, sanitise_path
from protovend.core.redaction import redact_url_credentials


@dataclass(frozen=True, slots=True)
class Dependency:
    """A manifest entry: an upstream repository and the branch to track.

    Attributes:
        repo: ``owner/name`` identifier, unique within the manifest
        branch: Tracking branch name
        url: Explicit remote URL; ``None`` means derive it from settings
    """

    repo: str
    branch: str
    url: str | None = None

    def __post_init__(self) -> None:
        # Never retain credential-bearing URLs in memory or on disk.
        if self.url is not None:
            object.__setattr__(self, "url", redact_url_credentials(self.url))

    @property
    def key(self) -> str:
        return repository_key(self.repo)

    @property
    def vendor_path(self) -> str:
        """Directory under ``vendor/proto`` (and ``proto/`` upstream) for this repository."""
        return sanitise_path(self.repo)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {"repo": self.repo, "branch": self.branch}
        if self.url is not None:
            result["url"] = self.url
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dependency:
        """Create from dictionary.

        Accepts ``{repo, branch}``, ``{url, branch}`` and the legacy
        ``{repo, branch, host}`` form.

        Raises:
            ValueError: If required keys are missing
            InvalidRepositoryError: If the repository cannot be parsed
        """
        repo, url = _repository_fields(data)
        return cls(repo=repo, branch=str(data["branch"]), url=url)


@dataclass(frozen=True, slots=True)
class ResolvedImport:
    """A lockfile entry: the exact commit vendored for a dependency.

    Attributes:
        repo: ``owner/name`` identifier
        branch: Branch the commit was resolved from
        commit: Full commit SHA
        url: Explicit remote URL copied from the dependency, if any
    """

    repo: str
    branch: str
    commit: str
    url: str | None = None

    def __post_init__(self) -> None:
        if self.url is not None:
            object.__setattr__(self, "url", redact_url_credentials(self.url))

    @property
    def key(self) -> str:
        return repository_key(self.repo)

    @property
    def vendor_path(self) -> str:
        return sanitise_path(self.repo)

    def matches(self, dependency: Dependency) -> bool:
        """True when this import was resolved for ``dependency`` as currently declared."""
        return self.key == dependency.key and self.branch == dependency.branch

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {"repo": self.repo, "branch": self.branch, "commit": self.commit}
        if self.url is not None:
            result["url"] = self.url
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolvedImport:
        """Create from dictionary (same key forms as :meth:`Dependency.from_dict`)."""
        if "commit" not in data:
            raise ValueError("Missing required keys: ['commit']")
        repo, url = _repository_fields(data)
        return cls(repo=repo, branch=str(data["branch"]), commit=str(data["commit"]), url=url)

    @classmethod
    def for_dependency(cls, dependency: Dependency, commit: str) -> ResolvedImport:
        return cls(repo=dependency.repo, branch=dependency.branch, commit=commit, url=dependency.url)


def _repository_fields(data: dict[str, Any]) -> tuple[str, str | None]:
    if "branch" not in data:
        raise ValueError("Missing required keys: ['branch']")
    repo = data.get("repo")
    url = data.get("url")
    host = data.get("host")
    if url:
        parsed = GitUrl.parse(str(url))
        return str(repo) if repo else parsed.repository, parsed.url
    if not repo:
        raise ValueError("Missing required keys: ['repo']")
    repo = str(repo)
    if not is_repository_id(repo):
        raise InvalidRepositoryError(
            f"Invalid repository identifier: {repo}",
            context={"repository": repo},
        )
    if host:
        # Legacy host-keyed entries were always fetched over ssh.
        return repo, f"git@{host}:{repo}.git"
    return repo, None


class DependencyState(str, Enum):
    """Per-dependency progress through a reconciliation run."""

    PENDING = "pending"
    CACHED = "cached"
    RESOLVED = "resolved"
    STAGED = "staged"
    COMMITTED = "committed"
    ABORTED = "aborted"


@dataclass(slots=True)
class DependencyOutcome:
    """What happened to one dependency during reconciliation.

    Attributes:
        dependency: The manifest entry
        state: Last state reached
        commit: Commit vendored (set once resolved)
        previous_commit: Commit pinned before the run, if any
        files: Number of ``.proto`` files staged
        proto_dir_found: Whether the upstream ``proto/<owner>/<name>`` directory exists
        findings: Layout findings for the upstream ``proto/`` tree at ``commit``
        error: Failure message when aborted
    """

    dependency: Dependency
    state: DependencyState = DependencyState.PENDING
    commit: str | None = None
    previous_commit: str | None = None
    files: int = 0
    proto_dir_found: bool = True
    findings: tuple[str, ...] = ()
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.commit is not None and self.commit != self.previous_commit

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo": self.dependency.repo,
            "branch": self.dependency.branch,
            "state": self.state.value,
            "commit": self.commit,
            "previous_commit": self.previous_commit,
            "changed": self.changed,
            "files": self.files,
            "proto_dir_found": self.proto_dir_found,
            "findings": list(self.findings),
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """Result of an install/update run.

    Attributes:
        mode: ``install`` or ``update``
        outcomes: One outcome per dependency, in manifest order
        removed: Repositories whose stale imports were dropped
        lint_findings: Post-commit vendor tree findings (formatted)
    """

    mode: str
    outcomes: tuple[DependencyOutcome, ...] = ()
    removed: tuple[str, ...] = ()
    lint_findings: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.removed) or any(o.changed for o in self.outcomes)


@dataclass(frozen=True, slots=True)
class CleanupResult:
    """Result of emptying the repository cache.

    Attributes:
        removed: Cache entries deleted, as ``<host>/<owner>/<name>``
    """

    removed: tuple[str, ...] = ()


__all__ = [
    "Dependency",
    "ResolvedImport",
    "DependencyState",
    "DependencyOutcome",
    "ReconcileResult",
    "CleanupResult",
]
