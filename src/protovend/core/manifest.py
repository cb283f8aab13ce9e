"""Manifest store for ``.protovend.yml``.

The manifest declares which upstream repositories to vendor and which branch
of each to track. Only ``init``/``add``/``remove`` write it; reconciliation
reads it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Iterable

import yaml

from protovend.core.exceptions import (
    DependencyNotFoundError,
    DuplicateEntryError,
    ManifestNotFoundError,
    ManifestParseError,
)
from protovend.core.git_url import parse_repository, repository_key
from protovend.core.models import Dependency
from protovend.core.schemas import MANIFEST_SCHEMA, validation_errors
from protovend.core.utils.io import read_yaml, write_yaml
from protovend.core.versioning import current_version, ensure_supported

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = ".protovend.yml"


@dataclass(frozen=True, slots=True)
class Manifest:
    """Declared dependencies in declaration order.

    Attributes:
        min_protovend_version: Oldest protovend allowed to read this file
        vendor: Dependency declarations, unique by repository
    """

    min_protovend_version: str
    vendor: tuple[Dependency, ...] = ()

    def __post_init__(self) -> None:
        seen: dict[str, Dependency] = {}
        for dep in self.vendor:
            if dep.key in seen:
                raise DuplicateEntryError(
                    f"{dep.repo} is declared more than once",
                    context={"repository": dep.repo, "existing_branch": seen[dep.key].branch},
                )
            seen[dep.key] = dep

    def get(self, repository: str) -> Dependency | None:
        key = repository_key(repository)
        for dep in self.vendor:
            if dep.key == key:
                return dep
        return None

    def with_vendor(self, vendor: Iterable[Dependency]) -> Manifest:
        return replace(self, vendor=tuple(vendor))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "min_protovend_version": self.min_protovend_version,
            "vendor": [dep.to_dict() for dep in self.vendor],
        }


class ManifestStore:
    """Reads and writes the manifest of one project.

    Args:
        repo_root: Project directory holding ``.protovend.yml``
    """

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    @property
    def path(self) -> Path:
        return self.repo_root / MANIFEST_FILENAME

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Manifest:
        """Load and validate the manifest.

        Raises:
            ManifestNotFoundError: If ``.protovend.yml`` does not exist
            ManifestParseError: If it is not a valid manifest document
            DuplicateEntryError: If a repository is declared twice
            VersionTooOldError: If it requires a newer protovend
        """
        try:
            data = read_yaml(self.path)
        except FileNotFoundError as exc:
            raise ManifestNotFoundError(
                f"{MANIFEST_FILENAME} not found. Run 'protovend init' first.",
                context={"path": str(self.path)},
            ) from exc
        except yaml.YAMLError as exc:
            raise ManifestParseError(
                f"Unable to parse {MANIFEST_FILENAME}",
                context={"path": str(self.path), "cause": str(exc)},
            ) from exc

        if isinstance(data, dict) and "min_protovend_version" in data:
            # An unquoted ``0.1`` is read by YAML as a float.
            data["min_protovend_version"] = str(data["min_protovend_version"])
        errors = validation_errors(data, MANIFEST_SCHEMA)
        if errors:
            raise ManifestParseError(
                f"Invalid {MANIFEST_FILENAME}: {errors[0]}",
                context={"path": str(self.path), "errors": errors},
            )

        ensure_supported(data["min_protovend_version"], source=self.path, error=ManifestParseError)

        try:
            vendor = tuple(Dependency.from_dict(item) for item in data.get("vendor") or ())
        except ValueError as exc:
            raise ManifestParseError(
                f"Invalid {MANIFEST_FILENAME}: {exc}",
                context={"path": str(self.path)},
            ) from exc
        try:
            manifest = Manifest(min_protovend_version=data["min_protovend_version"], vendor=vendor)
        except DuplicateEntryError as exc:
            raise exc.with_context(path=str(self.path))
        logger.debug("Loaded %d dependencies from %s", len(manifest.vendor), self.path)
        return manifest

    def save(self, manifest: Manifest) -> None:
        """Write ``manifest`` atomically, keeping declaration order."""
        write_yaml(self.path, manifest.to_dict())

    def init(self) -> bool:
        """Create an empty manifest. Returns False (and warns) if one already exists."""
        if self.exists():
            logger.warning("%s already exists", MANIFEST_FILENAME)
            return False
        self.save(Manifest(min_protovend_version=current_version()))
        logger.info("Created %s", MANIFEST_FILENAME)
        return True

    def add_entry(self, repository: str, branch: str) -> Dependency:
        """Append a declaration for ``repository`` (``owner/name`` or git URL).

        Raises:
            DuplicateEntryError: If the repository is already declared; the
                declared branch is in ``context["existing_branch"]``
        """
        manifest = self.load()
        repo, url = parse_repository(repository)
        existing = manifest.get(repo)
        if existing is not None:
            raise DuplicateEntryError(
                f"{existing.repo} has already been added to {MANIFEST_FILENAME}",
                context={"repository": existing.repo, "existing_branch": existing.branch},
            )
        dependency = Dependency(repo=repo, branch=branch, url=url)
        self.save(manifest.with_vendor((*manifest.vendor, dependency)))
        logger.info("%s added to protovend metadata", dependency.repo)
        return dependency

    def update_branch(self, repository: str, branch: str) -> Dependency:
        """Point an existing declaration at ``branch``.

        Raises:
            DependencyNotFoundError: If the repository is not declared
        """
        manifest = self.load()
        repo, _ = parse_repository(repository)
        existing = self._require(manifest, repo)
        updated = replace(existing, branch=branch)
        self.save(manifest.with_vendor(updated if d is existing else d for d in manifest.vendor))
        logger.info("Updated %s to use branch %s", updated.repo, branch)
        return updated

    def remove_entry(self, repository: str) -> Dependency:
        """Remove the declaration for ``repository``.

        Raises:
            DependencyNotFoundError: If the repository is not declared
        """
        manifest = self.load()
        repo, _ = parse_repository(repository)
        existing = self._require(manifest, repo)
        self.save(manifest.with_vendor(d for d in manifest.vendor if d is not existing))
        logger.info("%s removed from protovend metadata", existing.repo)
        return existing

    def _require(self, manifest: Manifest, repo: str) -> Dependency:
        existing = manifest.get(repo)
        if existing is None:
            raise DependencyNotFoundError(
                f"{repo} is not declared in {MANIFEST_FILENAME}",
                context={"repository": repo},
            )
        return existing


__all__ = ["MANIFEST_FILENAME", "Manifest", "ManifestStore"]
