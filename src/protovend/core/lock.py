"""Lockfile store for ``.protovend.lock``.

The lockfile records the exact commit vendored for every declared dependency.
It is fully rewritten by each successful install/update, never patched.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, TextIO

import yaml

from protovend.core.exceptions import LockfileParseError
from protovend.core.git_url import repository_key
from protovend.core.models import ResolvedImport
from protovend.core.schemas import LOCKFILE_SCHEMA, validation_errors
from protovend.core.utils.io import dump_yaml_string, read_yaml, write_temp_sibling, write_yaml
from protovend.core.versioning import current_version, ensure_supported

logger = logging.getLogger(__name__)

LOCKFILE_FILENAME = ".protovend.lock"
UPDATED_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def format_updated(value: datetime) -> str:
    return value.strftime(UPDATED_FORMAT)


def parse_updated(value: Any) -> datetime:
    """Parse an ``updated`` timestamp.

    Accepts the native ``%Y-%m-%d %H:%M:%S.%f`` form, ISO 8601 with a ``T``
    separator, and datetimes already produced by the YAML loader.

    Raises:
        ValueError: If the value is not a recognised timestamp
    """
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    try:
        return datetime.strptime(text, UPDATED_FORMAT)
    except ValueError:
        return datetime.fromisoformat(text)


@dataclass(frozen=True, slots=True)
class Lockfile:
    """Resolved imports in manifest order.

    Attributes:
        min_protovend_version: Oldest protovend allowed to read this file
        imports: One resolved import per declared dependency
        updated: Time of the last successful write (``None`` until saved)
    """

    min_protovend_version: str
    imports: tuple[ResolvedImport, ...] = ()
    updated: Optional[datetime] = None

    def get(self, repository: str) -> ResolvedImport | None:
        key = repository_key(repository)
        for entry in self.imports:
            if entry.key == key:
                return entry
        return None

    def with_imports(self, imports: Iterable[ResolvedImport]) -> Lockfile:
        return replace(self, imports=tuple(imports))

    def stamped(self, now: Optional[datetime] = None) -> Lockfile:
        return replace(self, updated=now or datetime.now())

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        updated = self.updated or datetime.now()
        return {
            "imports": [entry.to_dict() for entry in self.imports],
            "min_protovend_version": self.min_protovend_version,
            "updated": format_updated(updated),
        }


class LockfileStore:
    """Reads and writes the lockfile of one project.

    Args:
        repo_root: Project directory holding ``.protovend.lock``
    """

    def __init__(self, repo_root: Path) -> None:
        self.repo_root = Path(repo_root)

    @property
    def path(self) -> Path:
        return self.repo_root / LOCKFILE_FILENAME

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Lockfile:
        """Load the lockfile, or return an empty one if it does not exist yet.

        Raises:
            LockfileParseError: If the file is not a valid lockfile document
            VersionTooOldError: If it requires a newer protovend
        """
        try:
            data = read_yaml(self.path)
        except FileNotFoundError:
            logger.debug("No %s found, starting from an empty lockfile", LOCKFILE_FILENAME)
            return Lockfile(min_protovend_version=current_version())
        except yaml.YAMLError as exc:
            raise LockfileParseError(
                f"Unable to parse {LOCKFILE_FILENAME}",
                context={"path": str(self.path), "cause": str(exc)},
            ) from exc

        if isinstance(data, dict):
            if "min_protovend_version" in data:
                data["min_protovend_version"] = str(data["min_protovend_version"])
            if isinstance(data.get("updated"), datetime):
                data["updated"] = format_updated(data["updated"])
        errors = validation_errors(data, LOCKFILE_SCHEMA)
        if errors:
            raise LockfileParseError(
                f"Invalid {LOCKFILE_FILENAME}: {errors[0]}",
                context={"path": str(self.path), "errors": errors},
            )

        ensure_supported(data["min_protovend_version"], source=self.path, error=LockfileParseError)

        try:
            updated = parse_updated(data["updated"])
            imports = tuple(ResolvedImport.from_dict(item) for item in data.get("imports") or ())
        except ValueError as exc:
            raise LockfileParseError(
                f"Invalid {LOCKFILE_FILENAME}: {exc}",
                context={"path": str(self.path)},
            ) from exc
        return Lockfile(
            min_protovend_version=data["min_protovend_version"],
            imports=imports,
            updated=updated,
        )

    def render(self, lockfile: Lockfile) -> str:
        """Return the YAML document for ``lockfile`` without writing it."""
        return dump_yaml_string(lockfile.to_dict())

    def save(self, lockfile: Lockfile, *, now: Optional[datetime] = None) -> Lockfile:
        """Stamp ``updated`` and write atomically. Returns the stamped lockfile."""
        stamped = lockfile.stamped(now)
        write_yaml(self.path, stamped.to_dict())
        return stamped

    def stage(self, lockfile: Lockfile, *, now: Optional[datetime] = None) -> tuple[Lockfile, Path]:
        """Stamp ``lockfile`` and write it to a temp file beside the lockfile.

        The caller publishes it with ``os.replace(temp, store.path)`` (or
        deletes it) once the vendor tree is in place.
        """
        stamped = lockfile.stamped(now)
        content = self.render(stamped)

        def _writer(f: TextIO) -> None:
            f.write(content)

        return stamped, write_temp_sibling(self.path, _writer)

    def init(self) -> bool:
        """Create an empty lockfile. Returns False (and warns) if one already exists."""
        if self.exists():
            logger.warning("%s already exists", LOCKFILE_FILENAME)
            return False
        self.save(Lockfile(min_protovend_version=current_version()))
        logger.info("Created %s", LOCKFILE_FILENAME)
        return True


__all__ = [
    "LOCKFILE_FILENAME",
    "UPDATED_FORMAT",
    "Lockfile",
    "LockfileStore",
    "format_updated",
    "parse_updated",
]
