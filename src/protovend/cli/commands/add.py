"""
Protovend add command.

SUMMARY: Declare an upstream repository in .protovend.yml
"""
from __future__ import annotations

import argparse
import logging

from protovend.cli import OutputFormatter, add_repository_arg, add_standard_flags, get_repo_root
from protovend.core.exceptions import DuplicateEntryError, ProtovendError

SUMMARY = "Declare an upstream repository in .protovend.yml"

logger = logging.getLogger(__name__)


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_repository_arg(parser)
    parser.add_argument(
        "--branch",
        default="main",
        help="Branch to track (default: main)",
    )
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    """Add a dependency, or switch the branch of one already declared."""
    from protovend.core.manifest import MANIFEST_FILENAME, ManifestStore

    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        store = ManifestStore(get_repo_root(args))
        action = "added"
        try:
            dependency = store.add_entry(args.repository, args.branch)
        except DuplicateEntryError as e:
            if e.context.get("existing_branch") == args.branch:
                logger.info("%s has already been added to %s", e.context["repository"], MANIFEST_FILENAME)
                dependency = store.load().get(e.context["repository"])
                action = "unchanged"
            else:
                dependency = store.update_branch(args.repository, args.branch)
                action = "updated"
    except ProtovendError as e:
        formatter.error(e, error_code="add_error")
        return 1

    assert dependency is not None
    formatter.success(
        {"action": action, "dependency": dependency.to_dict()},
        f"{dependency.repo} ({dependency.branch}) {action}",
    )
    return 0
