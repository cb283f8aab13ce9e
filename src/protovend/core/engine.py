"""Vendoring engine.

Reconciles the lockfile and ``vendor/proto`` with the manifest. Each run
stages every dependency into a scratch directory first; the new lockfile and
vendor tree are published only once every dependency has been staged, so a
failed run leaves both exactly as they were.
"""
from __future__ import annotations

import concurrent.futures
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

from protovend.core.cache import CachedRepository, RepositoryCache
from protovend.core.exceptions import (
    DependencyNotFoundError,
    DuplicateEntryError,
    FilesystemError,
    PathNotFoundError,
    ProtovendError,
)
from protovend.core.git_url import parse_repository, remote_url_for
from protovend.core.lint import (
    PROTOS_DIRECTORY,
    PROTO_SUFFIX,
    check_published_files,
    check_vendor_tree,
    report,
)
from protovend.core.lock import LOCKFILE_FILENAME, Lockfile, LockfileStore
from protovend.core.manifest import MANIFEST_FILENAME, Manifest, ManifestStore
from protovend.core.models import (
    Dependency,
    DependencyOutcome,
    DependencyState,
    ReconcileResult,
    ResolvedImport,
)
from protovend.core.remote import GitRemoteClient, RemoteSourceClient
from protovend.core.resolver import ReconcileMode, VersionResolver
from protovend.core.settings import ProtovendSettings
from protovend.core.utils.io import restore_directory, swap_directory

logger = logging.getLogger(__name__)

VENDOR_DIRECTORY = "vendor"
STAGING_PREFIX = ".protovend-staging-"

ModeSelector = Callable[[Dependency], ReconcileMode]


def next_steps_message() -> str:
    vendored = Path(VENDOR_DIRECTORY) / PROTOS_DIRECTORY
    return (
        "Next Steps:\n"
        "Check the following protovend generated files and vendored proto directory "
        "(containing .proto files) into source control\n"
        f"  - {MANIFEST_FILENAME}\n"
        f"  - {LOCKFILE_FILENAME}\n"
        f"  - {vendored.as_posix()}"
    )


class VendoringEngine:
    """Runs install and update for one project.

    Args:
        repo_root: Project directory holding the manifest
        settings: Resolved settings (loaded from the environment if omitted)
        client: Remote client (``git`` based if omitted)
        cache: Repository cache (built from ``settings.cache_dir`` if omitted)
    """

    def __init__(
        self,
        repo_root: Path,
        settings: Optional[ProtovendSettings] = None,
        *,
        client: Optional[RemoteSourceClient] = None,
        cache: Optional[RepositoryCache] = None,
    ) -> None:
        self.repo_root = Path(repo_root)
        self.settings = settings or ProtovendSettings.load()
        self.client = client or GitRemoteClient(timeout=self.settings.git_timeout)
        self.cache = cache or RepositoryCache(
            self.settings.cache_dir, self.client, timeout=self.settings.git_timeout
        )
        self.resolver = VersionResolver(self.client)
        self.manifest_store = ManifestStore(self.repo_root)
        self.lock_store = LockfileStore(self.repo_root)

    @property
    def vendor_root(self) -> Path:
        return self.repo_root / VENDOR_DIRECTORY

    @property
    def vendor_dir(self) -> Path:
        return self.vendor_root / PROTOS_DIRECTORY

    def remote_url(self, dependency: Dependency) -> str:
        return remote_url_for(
            dependency.repo,
            url=dependency.url,
            host=self.settings.default_host,
            url_template=self.settings.url_template,
        )

    # --- public operations -----------------------------------------------

    def install(self) -> ReconcileResult:
        """Vendor every dependency, keeping existing pins whose branch is unchanged."""
        manifest = self.manifest_store.load()
        return self._reconcile(manifest, lambda _dep: ReconcileMode.INSTALL, label="install")

    def update(self, repository: Optional[str] = None) -> ReconcileResult:
        """Re-resolve ``repository`` (or every dependency) to its branch head.

        Other dependencies keep their pins as in :meth:`install`.

        Raises:
            DependencyNotFoundError: If ``repository`` is not declared
        """
        manifest = self.manifest_store.load()
        if repository is None:
            return self._reconcile(manifest, lambda _dep: ReconcileMode.UPDATE, label="update")

        repo, _ = parse_repository(repository)
        target = manifest.get(repo)
        if target is None:
            raise DependencyNotFoundError(
                f"{repo} is not declared in {MANIFEST_FILENAME}",
                context={"repository": repo},
            )

        def _mode(dep: Dependency) -> ReconcileMode:
            return ReconcileMode.UPDATE if dep.key == target.key else ReconcileMode.INSTALL

        return self._reconcile(manifest, _mode, label="update")

    # --- reconciliation --------------------------------------------------

    def _reconcile(self, manifest: Manifest, mode_for: ModeSelector, *, label: str) -> ReconcileResult:
        lockfile = self.lock_store.load()
        _check_vendor_paths(manifest)

        outcomes: List[DependencyOutcome] = []
        for dep in manifest.vendor:
            existing = lockfile.get(dep.repo)
            outcomes.append(
                DependencyOutcome(
                    dependency=dep,
                    previous_commit=existing.commit if existing is not None else None,
                )
            )
        declared = {dep.key for dep in manifest.vendor}
        removed = tuple(entry.repo for entry in lockfile.imports if entry.key not in declared)

        logger.info("Running protovend %s for %d repositories", label, len(outcomes))
        created_root = not self.vendor_root.exists()
        staging = self._make_staging_dir()
        try:
            staged_tree = staging / PROTOS_DIRECTORY
            staged_tree.mkdir()
            self._stage_all(outcomes, lockfile, mode_for, staged_tree)

            # Outcomes are already in manifest order; completion order is irrelevant.
            imports = [ResolvedImport.for_dependency(o.dependency, _commit(o)) for o in outcomes]
            published = self._publish(staged_tree, lockfile.with_imports(imports))
        except BaseException:
            for outcome in outcomes:
                if outcome.state is not DependencyState.COMMITTED:
                    outcome.state = DependencyState.ABORTED
            raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)
            if created_root and self.vendor_root.is_dir() and not any(self.vendor_root.iterdir()):
                self.vendor_root.rmdir()

        for outcome in outcomes:
            outcome.state = DependencyState.COMMITTED
            _log_outcome(outcome)
        for repo in removed:
            logger.info("Removed %s from %s", repo, LOCKFILE_FILENAME)

        # Layout findings were reported while staging; they are always returned.
        findings: List[str] = [f for outcome in outcomes for f in outcome.findings]
        if self.settings.lint_after_vendor:
            lint = check_vendor_tree(self.vendor_dir, published.imports)
            report(lint)
            findings.extend(str(f) for f in lint)

        logger.info(next_steps_message())
        return ReconcileResult(
            mode=label,
            outcomes=tuple(outcomes),
            removed=removed,
            lint_findings=tuple(findings),
        )

    def _make_staging_dir(self) -> Path:
        try:
            self.vendor_root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=str(self.vendor_root)))
        except OSError as exc:
            raise FilesystemError(
                f"Unable to create staging directory in {self.vendor_root}",
                context={"path": str(self.vendor_root), "cause": str(exc)},
            ) from exc

    def _stage_all(
        self,
        outcomes: List[DependencyOutcome],
        lockfile: Lockfile,
        mode_for: ModeSelector,
        staged_tree: Path,
    ) -> None:
        if not outcomes:
            return
        workers = min(self.settings.max_workers, len(outcomes))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures: Dict[concurrent.futures.Future, DependencyOutcome] = {
                executor.submit(
                    self._stage_one,
                    outcome,
                    lockfile.get(outcome.dependency.repo),
                    mode_for(outcome.dependency),
                    staged_tree,
                ): outcome
                for outcome in outcomes
            }
            try:
                for future in concurrent.futures.as_completed(futures):
                    future.result()
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise

    def _stage_one(
        self,
        outcome: DependencyOutcome,
        existing: Optional[ResolvedImport],
        mode: ReconcileMode,
        staged_tree: Path,
    ) -> None:
        dep = outcome.dependency
        try:
            url = self.remote_url(dep)
            handle = self.cache.get(url)
            outcome.state = DependencyState.CACHED
            with self.cache.locked(handle):
                self.cache.ensure_fresh(handle, dep.branch)
                commit = self.resolver.resolve(dep, existing, mode, url=url)
                self.cache.ensure_commit(handle, commit)
                outcome.commit = commit
                outcome.state = DependencyState.RESOLVED
                outcome.files = self._copy_protos(handle, dep, commit, staged_tree, outcome)
            outcome.state = DependencyState.STAGED
        except ProtovendError as exc:
            outcome.error = str(exc)
            raise exc.with_context(repository=dep.repo, branch=dep.branch, commit=outcome.commit)
        except OSError as exc:
            outcome.error = str(exc)
            raise FilesystemError(
                f"Unable to stage {dep.repo}",
                context={"repository": dep.repo, "branch": dep.branch, "cause": str(exc)},
            ) from exc

    def _copy_protos(
        self,
        handle: CachedRepository,
        dep: Dependency,
        commit: str,
        staged_tree: Path,
        outcome: DependencyOutcome,
    ) -> int:
        try:
            published = self.cache.files_at(handle, commit, PROTOS_DIRECTORY)
        except PathNotFoundError:
            published = None

        findings = check_published_files(
            published.paths if published is not None else [],
            dep.repo,
            location=f"{dep.repo}@{commit[:12]}",
        )
        report(findings)
        outcome.findings = tuple(str(f) for f in findings)

        files = published.under(dep.vendor_path) if published is not None else None
        if files is None:
            logger.warning(
                "%s has no %s/%s directory at %s; nothing to vendor",
                dep.repo,
                PROTOS_DIRECTORY,
                dep.vendor_path,
                commit[:12],
            )
            outcome.proto_dir_found = False
            return 0

        target_root = staged_tree / dep.vendor_path
        count = 0
        for rel, content in files:
            if not rel.endswith(PROTO_SUFFIX):
                continue
            target = target_root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            logger.debug("Staged %s", target.relative_to(staged_tree))
            count += 1
        return count

    def _publish(self, staged_tree: Path, lockfile: Lockfile) -> Lockfile:
        """Swap the staged tree into ``vendor/proto`` and replace the lockfile."""
        stamped, lock_tmp = self.lock_store.stage(lockfile)
        try:
            backup = swap_directory(staged_tree, self.vendor_dir)
            try:
                os.replace(str(lock_tmp), str(self.lock_store.path))
            except OSError:
                restore_directory(backup, self.vendor_dir)
                raise
        except OSError as exc:
            raise FilesystemError(
                "Unable to publish the vendor tree and lockfile",
                context={"path": str(self.vendor_dir), "cause": str(exc)},
            ) from exc
        finally:
            if lock_tmp.exists():
                lock_tmp.unlink()

        if backup is not None:
            try:
                shutil.rmtree(backup)
            except OSError as exc:
                logger.warning("Unable to delete previous vendor tree %s: %s", backup, exc)
        return stamped


def _commit(outcome: DependencyOutcome) -> str:
    assert outcome.commit is not None
    return outcome.commit


def _check_vendor_paths(manifest: Manifest) -> None:
    seen: Dict[str, str] = {}
    for dep in manifest.vendor:
        other = seen.get(dep.vendor_path)
        if other is not None:
            raise DuplicateEntryError(
                f"{dep.repo} and {other} would both be vendored to {dep.vendor_path}",
                context={"repository": dep.repo},
            )
        seen[dep.vendor_path] = dep.repo


def _log_outcome(outcome: DependencyOutcome) -> None:
    dep = outcome.dependency
    commit = _commit(outcome)
    if outcome.previous_commit is None:
        logger.info("Vendored %s (%s) at %s, %d files", dep.repo, dep.branch, commit[:12], outcome.files)
    elif outcome.changed:
        logger.info(
            "Updated %s (%s) %s -> %s, %d files",
            dep.repo,
            dep.branch,
            outcome.previous_commit[:12],
            commit[:12],
            outcome.files,
        )
    else:
        logger.info("%s (%s) unchanged at %s", dep.repo, dep.branch, commit[:12])


__all__ = ["VendoringEngine", "VENDOR_DIRECTORY", "next_steps_message"]
