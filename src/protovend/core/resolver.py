"""Version resolver.

Decides which commit to vendor for each dependency. The decision itself is a
pure function of the declaration, the existing pin, and the run mode; only
executing a ``latest`` plan touches the network.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from protovend.core.models import Dependency, ResolvedImport
from protovend.core.remote import RemoteSourceClient

logger = logging.getLogger(__name__)


class ReconcileMode(str, Enum):
    INSTALL = "install"
    UPDATE = "update"


class PlanKind(str, Enum):
    PINNED = "pinned"
    LATEST = "latest"


@dataclass(frozen=True, slots=True)
class ResolutionPlan:
    """How to obtain the commit for one dependency.

    Attributes:
        kind: ``pinned`` to reuse ``commit``, ``latest`` to ask the remote
        commit: The pinned commit (``None`` for ``latest``)
    """

    kind: PlanKind
    commit: Optional[str] = None

    @classmethod
    def pinned(cls, commit: str) -> ResolutionPlan:
        return cls(PlanKind.PINNED, commit)

    @classmethod
    def latest(cls) -> ResolutionPlan:
        return cls(PlanKind.LATEST)


def plan_resolution(
    dependency: Dependency,
    existing: Optional[ResolvedImport],
    mode: ReconcileMode,
) -> ResolutionPlan:
    """Choose how to resolve ``dependency``.

    In install mode an existing pin for the same repository and branch is
    reused verbatim. Everything else (update mode, a new dependency, a
    changed branch) resolves to the branch head.
    """
    if mode is ReconcileMode.INSTALL and existing is not None and existing.matches(dependency):
        return ResolutionPlan.pinned(existing.commit)
    return ResolutionPlan.latest()


class VersionResolver:
    """Executes resolution plans against a remote client."""

    def __init__(self, client: RemoteSourceClient) -> None:
        self.client = client

    def resolve(
        self,
        dependency: Dependency,
        existing: Optional[ResolvedImport],
        mode: ReconcileMode,
        *,
        url: str,
    ) -> str:
        """Return the commit to vendor for ``dependency``.

        Raises:
            RepositoryNotFoundError, BranchNotFoundError, AuthError, NetworkError:
                From the remote client when resolving to latest
        """
        plan = plan_resolution(dependency, existing, mode)
        if plan.kind is PlanKind.PINNED:
            assert plan.commit is not None
            logger.debug("%s pinned at %s", dependency.repo, plan.commit[:12])
            return plan.commit
        commit = self.client.resolve_latest_commit(url, dependency.branch)
        logger.debug("%s %s resolved to %s", dependency.repo, dependency.branch, commit[:12])
        return commit


__all__ = [
    "ReconcileMode",
    "PlanKind",
    "ResolutionPlan",
    "plan_resolution",
    "VersionResolver",
]
