"""Remote source client.

Talks to upstream hosts through the ``git`` executable. The client keeps no
state of its own: every operation either returns data or mutates the bare
repository handed to it by the cache.
"""
from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Sequence, Type

from protovend.core.exceptions import (
    AuthError,
    BranchNotFoundError,
    CommitNotFoundError,
    NetworkError,
    ProtovendError,
    RepositoryNotFoundError,
)
from protovend.core.redaction import redact_git_args, redact_text_credentials, redact_url_credentials

logger = logging.getLogger(__name__)

_MISSING_OBJECT_MARKERS = (
    "not our ref",
    "unadvertised object",
    "no such remote ref",
    "couldn't find remote ref",
    "bad object",
)
_NOT_FOUND_MARKERS = (
    "repository not found",
    "does not appear to be a git repository",
    "not found",
)
_AUTH_MARKERS = (
    "authentication failed",
    "permission denied",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "access denied",
    "error: 403",
)
_NETWORK_MARKERS = (
    "could not resolve host",
    "connection refused",
    "connection timed out",
    "network is unreachable",
    "operation timed out",
    "connection reset",
    "the remote end hung up unexpectedly",
)


class RepositoryHandle(Protocol):
    """Anything exposing the path of a local bare repository."""

    path: Path


class RemoteSourceClient(Protocol):
    """Capabilities the cache and resolver need from an upstream host."""

    def resolve_latest_commit(self, url: str, branch: str) -> str: ...

    def fetch_into(self, handle: RepositoryHandle, url: str) -> None: ...

    def fetch_commit(self, handle: RepositoryHandle, url: str, commit: str) -> None: ...


def classify_git_failure(stderr: str, default: Type[ProtovendError]) -> Type[ProtovendError]:
    """Map git stderr to the error class that best describes it."""
    lowered = stderr.lower()
    if any(marker in lowered for marker in _MISSING_OBJECT_MARKERS):
        return CommitNotFoundError
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthError
    if any(marker in lowered for marker in _NETWORK_MARKERS):
        return NetworkError
    if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        return RepositoryNotFoundError
    return default


def run_git(
    args: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    text: bool = True,
    error: Type[ProtovendError] = NetworkError,
    classify: bool = True,
) -> subprocess.CompletedProcess:
    """Run git and return the completed process.

    Args:
        args: Arguments after ``git``
        cwd: Working directory
        timeout: Seconds before the command is abandoned
        text: Decode stdout/stderr as text
        error: Error class raised when git fails and stderr is not recognised
        classify: Map recognised stderr to auth/network/not-found errors

    Raises:
        NetworkError: On timeout
        ProtovendError: ``error`` (or a classified subclass) when git exits non-zero
    """
    safe_cmd = "git " + " ".join(redact_git_args(list(args)))
    logger.debug("Running %s", safe_cmd)
    env = os.environ.copy()
    # Never block on an interactive credential prompt.
    env["GIT_TERMINAL_PROMPT"] = "0"
    try:
        return subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=text,
            errors="surrogateescape" if text else None,
            check=True,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired as e:
        raise NetworkError(
            f"Git command timed out after {timeout:g}s: {safe_cmd}",
            context={"command": safe_cmd},
        ) from e
    except subprocess.CalledProcessError as e:
        raw = e.stderr or e.stdout or str(e)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        safe_output = redact_text_credentials(raw).strip()
        error_cls = classify_git_failure(safe_output, error) if classify else error
        raise error_cls(
            f"Git command failed: {safe_cmd}",
            context={"command": safe_cmd, "stderr": safe_output},
        ) from e
    except FileNotFoundError as e:
        raise ProtovendError(
            "git executable not found on PATH",
            context={"command": safe_cmd},
        ) from e


class GitRemoteClient:
    """:class:`RemoteSourceClient` backed by the ``git`` executable.

    Args:
        timeout: Seconds before any single git invocation is abandoned
    """

    def __init__(self, timeout: Optional[float] = 300.0) -> None:
        self.timeout = timeout

    def resolve_latest_commit(self, url: str, branch: str) -> str:
        """Return the head commit of ``branch`` on the remote.

        Raises:
            RepositoryNotFoundError: If the remote repository does not exist
            BranchNotFoundError: If the branch does not exist
            AuthError: If the remote rejects our credentials
            NetworkError: On connectivity failures
        """
        ref = f"refs/heads/{branch}"
        result = run_git(["ls-remote", "--heads", "--", url, ref], timeout=self.timeout)
        for line in result.stdout.splitlines():
            commit, _, name = line.partition("\t")
            if name.strip() == ref:
                logger.debug("%s %s is at %s", redact_url_credentials(url), branch, commit)
                return commit.strip()
        raise BranchNotFoundError(
            f"Branch '{branch}' not found",
            context={"branch": branch, "url": redact_url_credentials(url)},
        )

    def fetch_into(self, handle: RepositoryHandle, url: str) -> None:
        """Fetch every branch of ``url`` into the bare repository at ``handle.path``."""
        logger.info("Fetching %s", redact_url_credentials(url))
        run_git(
            [
                "fetch",
                "--prune",
                "--no-tags",
                "--quiet",
                "--",
                url,
                "+refs/heads/*:refs/remotes/origin/*",
            ],
            cwd=handle.path,
            timeout=self.timeout,
        )

    def fetch_commit(self, handle: RepositoryHandle, url: str, commit: str) -> None:
        """Fetch a single commit that is no longer reachable from any branch.

        Raises:
            CommitNotFoundError: If the remote will not serve the commit
        """
        logger.info("Fetching commit %s from %s", commit[:12], redact_url_credentials(url))
        run_git(
            ["fetch", "--no-tags", "--quiet", "--", url, commit],
            cwd=handle.path,
            timeout=self.timeout,
            error=CommitNotFoundError,
        )


__all__ = [
    "RepositoryHandle",
    "RemoteSourceClient",
    "GitRemoteClient",
    "classify_git_failure",
    "run_git",
]
