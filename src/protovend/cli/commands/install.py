"""
Protovend install command.

SUMMARY: Vendor every declared repository, keeping existing pins
"""
from __future__ import annotations

import argparse

from protovend.cli import OutputFormatter, add_standard_flags, build_engine, reconcile_payload
from protovend.core.exceptions import ProtovendError

SUMMARY = "Vendor every declared repository, keeping existing pins"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    """Run reconciliation in install mode."""
    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        result = build_engine(args).install()
    except ProtovendError as e:
        formatter.error(e, error_code="install_error")
        return 1

    formatter.success(reconcile_payload(result))
    return 0
