"""
Protovend init command.

SUMMARY: Create an empty .protovend.yml and .protovend.lock
"""
from __future__ import annotations

import argparse

from protovend.cli import OutputFormatter, add_standard_flags, get_repo_root
from protovend.core.exceptions import ProtovendError

SUMMARY = "Create an empty .protovend.yml and .protovend.lock"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    """Initialise protovend metadata in the project."""
    from protovend.core.lock import LockfileStore
    from protovend.core.manifest import ManifestStore

    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        repo_root = get_repo_root(args)
        manifest_created = ManifestStore(repo_root).init()
        lock_created = LockfileStore(repo_root).init()
    except (ProtovendError, OSError) as e:
        formatter.error(e, error_code="init_error")
        return 1

    formatter.success(
        {"manifest_created": manifest_created, "lockfile_created": lock_created},
        "Initialised protovend metadata" if manifest_created or lock_created else "Nothing to do",
    )
    return 0

