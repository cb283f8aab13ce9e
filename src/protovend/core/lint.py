"""Lint checks for proto layouts.

Three entry points:

- :func:`check_publisher_layout` validates a repository that publishes
  schemas: its ``.proto`` files must live under ``proto/<owner>/<name>``.
- :func:`check_published_files` runs the same layout checks on the
  ``proto/`` listing of an upstream commit during install and update.
- :func:`check_vendor_tree` validates a consumer's ``vendor/proto`` against
  the imports recorded in its lockfile.

Checks return findings; callers decide whether findings are fatal.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from protovend.core.git_url import sanitise_path
from protovend.core.models import ResolvedImport

logger = logging.getLogger(__name__)

PROTOS_DIRECTORY = "proto"
PROTO_SUFFIX = ".proto"


@dataclass(frozen=True, slots=True)
class LintFinding:
    """A single lint violation.

    Attributes:
        code: Check identifier (``P001``, ``P002``, ``P003``)
        resource: Path the finding refers to
        message: Human-readable explanation
    """

    code: str
    resource: str
    message: str

    def __str__(self) -> str:
        return f"{self.resource}: {self.code} {self.message}"

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "resource": self.resource, "message": self.message}


def check_publisher_layout(project_root: Path, repository: str) -> List[LintFinding]:
    """Check that a publishing repository keeps its protos under ``proto/<owner>/<name>``.

    Args:
        project_root: Root of the publishing repository
        repository: Its ``owner/name`` identifier

    Returns:
        ``P002`` if the expected directory is missing and one ``P001`` per
        ``.proto`` file stored directly in ``proto/``.
    """
    proto_root = Path(project_root) / PROTOS_DIRECTORY
    expected = sanitise_path(repository)
    findings: List[LintFinding] = []

    logger.info("Running protovend checks..")

    if not (proto_root / expected).is_dir():
        findings.append(_missing_directory(str(proto_root), expected))

    if proto_root.is_dir():
        for entry in sorted(proto_root.iterdir()):
            if entry.is_file() and entry.suffix == PROTO_SUFFIX:
                findings.append(_root_proto(str(entry), expected))
    return findings


def check_published_files(paths: Iterable[str], repository: str, *, location: str) -> List[LintFinding]:
    """Check the ``proto/`` listing of an upstream commit before it is vendored.

    Only ``proto/<owner>/<name>`` is vendored, so every ``.proto`` file
    elsewhere under ``proto/`` would be left behind.

    Args:
        paths: File paths relative to ``proto/`` at the commit
        repository: The upstream's ``owner/name`` identifier
        location: Prefix for finding resources, e.g. ``org/svc@abc123def456``

    Returns:
        ``P002`` if nothing lives under the expected directory and one
        ``P001`` per ``.proto`` file outside it.
    """
    listed = sorted(paths)
    expected = sanitise_path(repository)
    prefix = f"{expected}/"
    root = f"{location}/{PROTOS_DIRECTORY}"
    findings: List[LintFinding] = []

    if not any(path.startswith(prefix) for path in listed):
        findings.append(_missing_directory(root, expected))

    for path in listed:
        if not path.endswith(PROTO_SUFFIX) or path.startswith(prefix):
            continue
        resource = f"{root}/{path}"
        if "/" in path:
            findings.append(
                LintFinding(
                    code="P001",
                    resource=resource,
                    message=(
                        f".proto files outside {expected} are not vendored; "
                        f"they should be moved to {expected}. "
                        "If source is from another repo please ask the owners to update"
                    ),
                )
            )
        else:
            findings.append(_root_proto(resource, expected))
    return findings


def _missing_directory(resource: str, expected: str) -> LintFinding:
    return LintFinding(
        code="P002",
        resource=resource,
        message=(
            "Proto folder structure is not correct; it should contain the directory "
            f"{expected}. If source is from another repo please ask the owners to update"
        ),
    )


def _root_proto(resource: str, expected: str) -> LintFinding:
    return LintFinding(
        code="P001",
        resource=resource,
        message=(
            ".proto files should not be stored in the root /proto folder; "
            f"they should be moved to {expected}. "
            "If source is from another repo please ask the owners to update"
        ),
    )


def check_vendor_tree(vendor_dir: Path, imports: Iterable[ResolvedImport]) -> List[LintFinding]:
    """Check ``vendor/proto`` against the lockfile's imports.

    Returns a ``P003`` finding for every directory that belongs to no import
    and for every import with no vendored ``.proto`` files.
    """
    vendor_dir = Path(vendor_dir)
    expected = {entry.vendor_path: entry for entry in imports}
    findings: List[LintFinding] = []

    for vendor_path, entry in expected.items():
        target = vendor_dir / vendor_path
        if not target.is_dir() or not any(target.rglob(f"*{PROTO_SUFFIX}")):
            findings.append(
                LintFinding(
                    code="P003",
                    resource=str(target),
                    message=f"{entry.repo} is locked at {entry.commit[:12]} but has no vendored .proto files",
                )
            )

    if vendor_dir.is_dir():
        owned = {Path(p).parts[0] for p in expected}
        owned_full = set(expected)
        for owner in sorted(vendor_dir.iterdir()):
            if owner.name not in owned:
                findings.append(_stray(owner))
                continue
            if not owner.is_dir():
                continue
            for repo_dir in sorted(owner.iterdir()):
                if f"{owner.name}/{repo_dir.name}" not in owned_full:
                    findings.append(_stray(repo_dir))
    return findings


def _stray(path: Path) -> LintFinding:
    return LintFinding(
        code="P003",
        resource=str(path),
        message="not produced by any import in .protovend.lock",
    )


def report(findings: Iterable[LintFinding]) -> None:
    for finding in findings:
        logger.warning("%s", finding)


__all__ = [
    "PROTOS_DIRECTORY",
    "PROTO_SUFFIX",
    "LintFinding",
    "check_publisher_layout",
    "check_published_files",
    "check_vendor_tree",
    "report",
]
