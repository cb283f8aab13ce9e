"""
Protovend update command.

SUMMARY: Re-resolve one or all repositories to their branch head
"""
from __future__ import annotations

import argparse

from protovend.cli import (
    OutputFormatter,
    add_repository_arg,
    add_standard_flags,
    build_engine,
    reconcile_payload,
)
from protovend.core.exceptions import ProtovendError

SUMMARY = "Re-resolve one or all repositories to their branch head"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_repository_arg(
        parser,
        required=False,
        help_text="Only update this repository (owner/name or git URL); others keep their pins",
    )
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    """Run reconciliation in update mode."""
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        result = build_engine(args).update(args.repository)
    except ProtovendError as e:
        formatter.error(e, error_code="update_error")
        return 1

    formatter.success(reconcile_payload(result))
    return 0
