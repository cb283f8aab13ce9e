"""Shared CLI utilities."""
from __future__ import annotations

import argparse
from pathlib import Path

from protovend.core.engine import VendoringEngine
from protovend.core.models import ReconcileResult
from protovend.core.settings import ProtovendSettings


def get_repo_root(args: argparse.Namespace) -> Path:
    """Project directory from ``--repo-root``, else the current directory."""
    if getattr(args, "repo_root", None):
        return Path(args.repo_root).resolve()
    return Path.cwd()


def build_engine(args: argparse.Namespace) -> VendoringEngine:
    """Vendoring engine for the project selected by ``args``."""
    return VendoringEngine(get_repo_root(args), ProtovendSettings.load())


def reconcile_payload(result: ReconcileResult) -> dict:
    """JSON payload for an install/update result."""
    return {
        "mode": result.mode,
        "changed": result.changed,
        "imports": [outcome.to_dict() for outcome in result.outcomes],
        "removed": list(result.removed),
        "lint_findings": list(result.lint_findings),
    }


__all__ = ["get_repo_root", "build_engine", "reconcile_payload"]
