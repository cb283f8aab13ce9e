"""Redaction helpers for repository URLs and git error output.

This module exists to prevent accidental credential leakage when users provide
credential-bearing Git URLs (e.g., https://token@host/repo.git).
"""
from __future__ import annotations

import re
from urllib.parse import urlsplit, urlunsplit

_SCHEME_CRED_RE = re.compile(r"([a-zA-Z][a-zA-Z0-9+.-]*://)([^\s/@]+(:[^\s/@]*)?@)")
_SCP_STYLE_RE = re.compile(r"\b(?!git@)([^\s@]+)@([^\s:]+):")
_USER_SCHEMES = frozenset({"ssh", "git+ssh", "ssh+git"})


def redact_url_credentials(url: str) -> str:
    """Return a URL with any embedded credentials removed.

    Passwords are always dropped. A bare user name is kept for ssh URLs and
    scp-style ``user@host:path``; over http(s) it is treated as a token.
    """
    raw = str(url)
    if "://" in raw:
        try:
            parts = urlsplit(raw)
            username, password = parts.username, parts.password
            host = parts.hostname or ""
            port = f":{parts.port}" if parts.port else ""
        except ValueError:
            return _SCHEME_CRED_RE.sub(r"\1", raw)
        if username is None and password is None:
            return raw
        if password is None and parts.scheme in _USER_SCHEMES:
            return raw
        netloc = f"{host}{port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return raw


def redact_text_credentials(text: str) -> str:
    """Redact credential-bearing URL fragments from arbitrary text."""
    s = str(text)
    s = _SCHEME_CRED_RE.sub(r"\1<redacted>@", s)
    s = _SCP_STYLE_RE.sub(r"<redacted>@\2:", s)
    return s


def redact_git_args(args: list[str]) -> list[str]:
    """Redact credentials from git argv for safe logging."""
    return [redact_url_credentials(a) for a in args]


__all__ = ["redact_url_credentials", "redact_text_credentials", "redact_git_args"]
