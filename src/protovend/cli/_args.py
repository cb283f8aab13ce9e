"""Common CLI argument registration utilities."""
from __future__ import annotations

import argparse


def add_json_flag(parser: argparse.ArgumentParser) -> None:
    """Add --json flag for JSON output mode."""
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )


def add_repo_root_flag(parser: argparse.ArgumentParser) -> None:
    """Add --repo-root flag for project directory override."""
    parser.add_argument(
        "--repo-root",
        type=str,
        help="Project directory holding .protovend.yml (defaults to the current directory)",
    )


def add_repository_arg(
    parser: argparse.ArgumentParser,
    *,
    required: bool = True,
    help_text: str = "Repository as owner/name or a git URL",
) -> None:
    """Add the positional repository argument."""
    if required:
        parser.add_argument("repository", help=help_text)
    else:
        parser.add_argument("repository", nargs="?", help=help_text)


def add_standard_flags(parser: argparse.ArgumentParser) -> None:
    """Add the flags every project command takes."""
    add_json_flag(parser)
    add_repo_root_flag(parser)


__all__ = [
    "add_json_flag",
    "add_repo_root_flag",
    "add_repository_arg",
    "add_standard_flags",
]
