"""Repository cache.

Keeps one bare clone per upstream repository under the cache root, laid out
as ``<cache_dir>/<alphanumeric host>/<owner>/<name>``. Clones are created
empty and filled by the remote client; they are reused across runs and only
removed by :meth:`RepositoryCache.cleanup`.

A ``RepositoryCache`` instance corresponds to one run: each repository is
fetched at most once per instance, however many dependencies reference it.
"""
from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple

from protovend.core.exceptions import (
    CacheCleanupError,
    CommitNotFoundError,
    FilesystemError,
    PathNotFoundError,
)
from protovend.core.git_url import GitUrl
from protovend.core.models import CleanupResult
from protovend.core.remote import RemoteSourceClient, run_git

logger = logging.getLogger(__name__)

_SYMLINK_MODE = "120000"
COMMIT_ID_PATTERN = re.compile(r"^[0-9a-f]{40}(?:[0-9a-f]{24})?$")


@dataclass(frozen=True, slots=True)
class CachedRepository:
    """Handle to a cached bare clone.

    Attributes:
        key: ``<host>/<owner>/<name>`` identifier of the clone
        path: Location of the bare repository
        url: Remote the clone is fetched from
    """

    key: str
    path: Path
    url: str


class CommitFiles:
    """Files under a subdirectory at one commit.

    Iterating yields ``(relative path, content bytes)`` pairs in path order.
    The listing is taken once; contents are read lazily on every iteration,
    so the object can be iterated any number of times. Paths that are not
    valid UTF-8 are decoded with ``os.fsdecode`` and round-trip to the
    original bytes when written to disk.
    """

    def __init__(
        self,
        cache: "RepositoryCache",
        handle: CachedRepository,
        commit: str,
        entries: List[Tuple[str, str]],
    ) -> None:
        self._cache = cache
        self._handle = handle
        self.commit = commit
        self._entries = entries

    @property
    def paths(self) -> List[str]:
        return [rel for rel, _ in self._entries]

    def under(self, subdir: str) -> Optional["CommitFiles"]:
        """The files below ``subdir``, relative to it; None if there are none."""
        prefix = subdir.strip("/") + "/"
        entries = [(rel[len(prefix):], blob) for rel, blob in self._entries if rel.startswith(prefix)]
        if not entries:
            return None
        return CommitFiles(self._cache, self._handle, self.commit, entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[str, bytes]]:
        for rel, blob in self._entries:
            yield rel, self._cache.read_blob(self._handle, blob)


class RepositoryCache:
    """Manages bare clones for upstream repositories.

    Args:
        root: Cache directory
        client: Remote client used to fill and refresh clones
        timeout: Seconds before a local git invocation is abandoned
    """

    def __init__(
        self,
        root: Path,
        client: RemoteSourceClient,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        self.root = Path(root)
        self.client = client
        self.timeout = timeout
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._fetched: Set[str] = set()

    # --- handles ---------------------------------------------------------

    def key_for(self, url: str) -> str:
        parsed = GitUrl.parse(url)
        host = "".join(c for c in parsed.host if c.isalnum())
        return f"{host}/{parsed.sanitised_path}"

    def path_for(self, url: str) -> Path:
        return self.root / self.key_for(url)

    def _mutex(self, key: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks.setdefault(key, threading.RLock())
            return lock

    @contextmanager
    def locked(self, handle: CachedRepository) -> Iterator[CachedRepository]:
        """Hold the per-repository critical section for ``handle``."""
        with self._mutex(handle.key):
            yield handle

    def get(self, url: str) -> CachedRepository:
        """Return a handle to the clone for ``url``, creating an empty one if needed.

        Raises:
            InvalidRepositoryError: If ``url`` cannot be parsed
            FilesystemError: If the clone directory cannot be created
        """
        key = self.key_for(url)
        path = self.root / key
        handle = CachedRepository(key=key, path=path, url=url)
        with self._mutex(key):
            if (path / "HEAD").is_file():
                return handle
            if path.exists():
                logger.warning("Replacing incomplete cache entry %s", path)
                try:
                    shutil.rmtree(path)
                except OSError as exc:
                    raise FilesystemError(
                        f"Unable to replace cache entry {path}",
                        context={"path": str(path), "cause": str(exc)},
                    ) from exc
            self._create(path)
        logger.debug("Created cache entry %s", path)
        return handle

    def _create(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = Path(tempfile.mkdtemp(prefix=f".{path.name}-", dir=str(path.parent)))
        except OSError as exc:
            raise FilesystemError(
                f"Unable to create cache directory {path.parent}",
                context={"path": str(path), "cause": str(exc)},
            ) from exc
        try:
            run_git(
                ["init", "--bare", "--quiet", str(tmp)],
                timeout=self.timeout,
                error=FilesystemError,
                classify=False,
            )
            os.replace(str(tmp), str(path))
        except BaseException:
            shutil.rmtree(tmp, ignore_errors=True)
            raise

    # --- freshness -------------------------------------------------------

    def ensure_fresh(self, handle: CachedRepository, branch: str) -> bool:
        """Fetch ``handle`` from its remote unless already done during this run.

        Every branch is fetched at once, so different branches of one
        repository share a single fetch. Returns True if a fetch happened.
        """
        with self._mutex(handle.key):
            if handle.key in self._fetched:
                logger.debug("%s already fetched this run (branch %s)", handle.key, branch)
                return False
            self.client.fetch_into(handle, handle.url)
            self._fetched.add(handle.key)
            return True

    def has_commit(self, handle: CachedRepository, commit: str) -> bool:
        if not COMMIT_ID_PATTERN.match(commit):
            return False
        try:
            run_git(
                ["cat-file", "-e", f"{commit}^{{commit}}"],
                cwd=handle.path,
                timeout=self.timeout,
                error=CommitNotFoundError,
                classify=False,
            )
        except CommitNotFoundError:
            return False
        return True

    def ensure_commit(self, handle: CachedRepository, commit: str) -> None:
        """Make sure ``commit`` is present, fetching it directly if needed.

        Pinned commits can fall out of every branch after a force-push; those
        are requested from the remote by id.

        Raises:
            CommitNotFoundError: If the commit cannot be obtained
        """
        if not COMMIT_ID_PATTERN.match(commit):
            raise CommitNotFoundError(
                f"{commit} is not a full commit hash",
                context={"commit": commit},
            )
        with self._mutex(handle.key):
            if self.has_commit(handle, commit):
                return
            try:
                self.client.fetch_commit(handle, handle.url, commit)
            except CommitNotFoundError as exc:
                raise exc.with_context(commit=commit)
            if not self.has_commit(handle, commit):
                raise CommitNotFoundError(
                    f"Commit {commit} not found",
                    context={"commit": commit},
                )

    # --- content ---------------------------------------------------------

    def files_at(self, handle: CachedRepository, commit: str, subpath: str) -> CommitFiles:
        """List regular files under ``subpath`` at ``commit``.

        Raises:
            CommitNotFoundError: If the commit is not in the clone
            PathNotFoundError: If ``subpath`` is not a directory at that commit
        """
        if not self.has_commit(handle, commit):
            raise CommitNotFoundError(f"Commit {commit} not found", context={"commit": commit})
        prefix = subpath.strip("/")
        result = run_git(
            ["ls-tree", "-r", "-z", commit, "--", f"{prefix}/"],
            cwd=handle.path,
            timeout=self.timeout,
            text=False,
            error=FilesystemError,
            classify=False,
        )
        entries: List[Tuple[str, str]] = []
        for record in result.stdout.split(b"\0"):
            if not record:
                continue
            meta, _, raw_name = record.partition(b"\t")
            mode, kind, blob = meta.decode("ascii").split()
            name = os.fsdecode(raw_name)
            if kind != "blob":
                continue
            if mode == _SYMLINK_MODE:
                logger.debug("Skipping symlink %s at %s", name, commit[:12])
                continue
            if not name.startswith(f"{prefix}/"):
                continue
            entries.append((name[len(prefix) + 1:], blob))
        if not entries:
            raise PathNotFoundError(
                f"{prefix} not found at {commit[:12]}",
                context={"commit": commit, "path": prefix},
            )
        entries.sort()
        return CommitFiles(self, handle, commit, entries)

    def read_blob(self, handle: CachedRepository, blob: str) -> bytes:
        result = run_git(
            ["cat-file", "blob", blob],
            cwd=handle.path,
            timeout=self.timeout,
            text=False,
            error=FilesystemError,
            classify=False,
        )
        return result.stdout

    # --- cleanup ---------------------------------------------------------

    def entries(self) -> List[Path]:
        """Existing clone directories (including interrupted creations)."""
        if not self.root.is_dir():
            return []
        return sorted(p for p in self.root.glob("*/*/*") if p.is_dir())

    def cleanup(self) -> CleanupResult:
        """Delete every cached clone.

        Every entry is attempted even if earlier deletions fail.

        Raises:
            CacheCleanupError: Listing every entry that could not be deleted
        """
        removed: List[str] = []
        failures: Dict[str, str] = {}
        for entry in self.entries():
            rel = entry.relative_to(self.root).as_posix()
            try:
                shutil.rmtree(entry)
            except OSError as exc:
                logger.error("Unable to delete %s: %s", entry, exc)
                failures[rel] = str(exc)
                continue
            logger.debug("Deleted %s", entry)
            removed.append(rel)

        if not failures and self.root.exists():
            try:
                shutil.rmtree(self.root)
            except OSError as exc:
                failures[str(self.root)] = str(exc)

        with self._registry_lock:
            self._fetched.clear()

        if failures:
            raise CacheCleanupError(
                f"Failed to delete {len(failures)} cache entr{'y' if len(failures) == 1 else 'ies'}",
                failures=failures,
                context={"path": str(self.root), "removed": removed},
            )
        logger.info("Removed %d cached repositories from %s", len(removed), self.root)
        return CleanupResult(removed=tuple(removed))


__all__ = ["CachedRepository", "CommitFiles", "RepositoryCache"]
