"""Repository identifiers and git URLs.

Dependencies are declared either as an ``owner/name`` identifier, resolved
against the configured host, or as an explicit git URL. Both forms reduce to
the same repository identifier, which names the vendor directory and the
cache entry for that repository.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import urlsplit

from protovend.core.exceptions import InvalidRepositoryError

REPOSITORY_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
GIT_URL_PATTERN = re.compile(
    r"^(?:git|ssh|https?)(://|@)(.*)[:/]((.*)/(.*))(\.git)(/?|#[-\w.]+?)$"
)


def sanitise_path(path: str) -> str:
    """Lower-case ``path`` and keep only alphanumerics and ``/``.

    ``Test-Python1/a-repo-name`` becomes ``testpython1/areponame``.
    """
    return "".join(c for c in path.lower() if c.isalnum() or c == "/")


def repository_key(repo: str) -> str:
    """Comparison key for repository identifiers (hosts treat them case-insensitively)."""
    return repo.strip().lower()


def is_repository_id(value: str) -> bool:
    return bool(REPOSITORY_ID_PATTERN.fullmatch(value.strip()))


def is_local_url(value: str) -> bool:
    return value.startswith("file://") or value.startswith("/")


@dataclass(frozen=True, slots=True)
class GitUrl:
    """A remote git URL (scp-style, ssh, git, http(s), or a local mirror path)."""

    url: str

    @classmethod
    def parse(cls, value: str) -> GitUrl:
        raw = value.strip()
        if GIT_URL_PATTERN.fullmatch(raw) or is_local_url(raw):
            return cls(raw)
        raise InvalidRepositoryError(
            f"Invalid Git URL: {raw}",
            context={"value": raw},
        )

    @property
    def is_local(self) -> bool:
        return is_local_url(self.url)

    @property
    def host(self) -> str:
        if self.is_local:
            return "local"
        match = GIT_URL_PATTERN.fullmatch(self.url)
        assert match is not None
        host = match.group(2)
        # user@host, host:port
        host = host.rsplit("@", 1)[-1].split(":", 1)[0]
        return host

    @property
    def path(self) -> str:
        if self.is_local:
            raw = urlsplit(self.url).path if self.url.startswith("file://") else self.url
            parts = PurePosixPath(raw.rstrip("/")).parts
            name = parts[-1][:-4] if parts[-1].endswith(".git") else parts[-1]
            owner = parts[-2] if len(parts) >= 3 else "local"
            return f"{owner}/{name}"
        match = GIT_URL_PATTERN.fullmatch(self.url)
        assert match is not None
        return match.group(3)

    @property
    def repository(self) -> str:
        """``owner/name`` identifier derived from the URL path."""
        path = self.path.lstrip("~/")
        owner, _, name = path.rpartition("/")
        owner = owner.rsplit("/", 1)[-1] or "local"
        return f"{owner}/{name}"

    @property
    def sanitised_path(self) -> str:
        return sanitise_path(self.repository)

    def __str__(self) -> str:
        return self.url


def parse_repository(value: str) -> tuple[str, str | None]:
    """Split user input into ``(repository id, explicit url or None)``.

    Raises:
        InvalidRepositoryError: If ``value`` is neither an ``owner/name``
            identifier nor a recognised git URL.
    """
    raw = value.strip()
    if not raw:
        raise InvalidRepositoryError("Repository must not be empty.")
    if is_repository_id(raw):
        return raw, None
    url = GitUrl.parse(raw)
    return url.repository, url.url


def remote_url_for(repo: str, *, url: str | None, host: str, url_template: str) -> str:
    """Return the URL to fetch ``repo`` from: the explicit one or the templated default."""
    if url:
        return url
    return url_template.format(host=host, repo=repo)


__all__ = [
    "GitUrl",
    "sanitise_path",
    "repository_key",
    "is_repository_id",
    "is_local_url",
    "parse_repository",
    "remote_url_for",
]
