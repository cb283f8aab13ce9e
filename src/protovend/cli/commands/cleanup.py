"""
Protovend cleanup command.

SUMMARY: Delete every cached repository clone
"""
from __future__ import annotations

import argparse

from protovend.cli import OutputFormatter, add_json_flag
from protovend.core.exceptions import CacheCleanupError, ProtovendError

SUMMARY = "Delete every cached repository clone"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_json_flag(parser)


def main(args: argparse.Namespace) -> int:
    """Empty the repository cache."""
    from protovend.core.cache import RepositoryCache
    from protovend.core.remote import GitRemoteClient
    from protovend.core.settings import ProtovendSettings

    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        settings = ProtovendSettings.load()
        cache = RepositoryCache(
            settings.cache_dir,
            GitRemoteClient(timeout=settings.git_timeout),
            timeout=settings.git_timeout,
        )
        result = cache.cleanup()
    except CacheCleanupError as e:
        for entry, reason in sorted(e.failures.items()):
            formatter.text(f"  - {entry}: {reason}")
        formatter.error(e, error_code="cleanup_error")
        return 1
    except ProtovendError as e:
        formatter.error(e, error_code="cleanup_error")
        return 1

    formatter.success(
        {"cache_dir": str(cache.root), "removed": list(result.removed)},
        f"Removed {len(result.removed)} cached repositories from {cache.root}",
    )
    return 0
