"""
Protovend lint command.

SUMMARY: Check the vendor tree and this repository's proto layout
"""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import List

from protovend.cli import OutputFormatter, add_standard_flags, get_repo_root
from protovend.core.exceptions import ConfigError, LintError, ProtovendError

SUMMARY = "Check the vendor tree and this repository's proto layout"


def register_args(parser: argparse.ArgumentParser) -> None:
    """Register command-specific arguments."""
    parser.add_argument(
        "--repo",
        help="This repository as owner/name (defaults to the origin remote)",
    )
    add_standard_flags(parser)


def _detect_repository(repo_root: Path) -> str:
    from protovend.core.git_url import GitUrl
    from protovend.core.remote import run_git

    try:
        result = run_git(["remote", "get-url", "origin"], cwd=repo_root, error=ConfigError, classify=False)
    except ConfigError as e:
        raise ConfigError(
            "Unable to determine this repository's name; pass --repo owner/name",
            context={"path": str(repo_root), "cause": e.context.get("stderr", "")},
        ) from e
    return GitUrl.parse(result.stdout.strip()).repository


def main(args: argparse.Namespace) -> int:
    """Run lint checks; exits non-zero when any check fails."""
    from protovend.core.engine import VENDOR_DIRECTORY
    from protovend.core.lint import (
        PROTOS_DIRECTORY,
        LintFinding,
        check_publisher_layout,
        check_vendor_tree,
        report,
    )
    from protovend.core.lock import LockfileStore

    formatter = OutputFormatter(json_mode=getattr(args, "json", False))

    try:
        repo_root = get_repo_root(args)
        findings: List[LintFinding] = []

        lock_store = LockfileStore(repo_root)
        vendor_dir = repo_root / VENDOR_DIRECTORY / PROTOS_DIRECTORY
        if lock_store.exists() or vendor_dir.exists():
            findings.extend(check_vendor_tree(vendor_dir, lock_store.load().imports))

        if (repo_root / PROTOS_DIRECTORY).is_dir():
            repository = args.repo or _detect_repository(repo_root)
            findings.extend(check_publisher_layout(repo_root, repository))

        report(findings)
        if findings:
            raise LintError(
                "Validation errors reported",
                context={"findings": [f.to_dict() for f in findings]},
            )
    except LintError as e:
        formatter.error(e, error_code="lint_failed")
        return 1
    except ProtovendError as e:
        formatter.error(e, error_code="lint_error")
        return 1

    formatter.success({"findings": []}, "No lint findings")
    return 0
