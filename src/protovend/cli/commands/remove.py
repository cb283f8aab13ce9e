"""
Protovend remove command.

SUMMARY: Remove an upstream repository from .protovend.yml
"""
from __future__ import annotations

import argparse

from protovend.cli import OutputFormatter, add_repository_arg, add_standard_flags, get_repo_root
from protovend.core.exceptions import ProtovendError

SUMMARY = "Remove an upstream repository from .protovend.yml"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_repository_arg(parser)
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    """Remove a dependency. Its import is dropped by the next install."""
    from protovend.core.manifest import ManifestStore

    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        removed = ManifestStore(get_repo_root(args)).remove_entry(args.repository)
    except ProtovendError as e:
        formatter.error(e, error_code="remove_error")
        return 1

    formatter.success(
        {"dependency": removed.to_dict()},
        f"{removed.repo} removed; run 'protovend install' to update the vendor tree",
    )
    return 0
