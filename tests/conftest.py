import logging
import os
import sys
from pathlib import Path

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'protovend'
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


from helpers.env import UpstreamRepo  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep settings hermetic: no PROTOVEND_* leakage, private cache and config home."""
    for key in list(os.environ):
        if key.startswith("PROTOVEND_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("PROTOVEND_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")

    from protovend.data import clear_caches

    clear_caches()
    yield
    from protovend.cli._logging import reset_cli_logging_for_tests

    reset_cli_logging_for_tests()


@pytest.fixture
def settings(tmp_path: Path):
    from protovend.core.settings import ProtovendSettings

    return ProtovendSettings.from_mapping(
        {
            "cache_dir": str(tmp_path / "cache"),
            "max_workers": 4,
            "git_timeout": 60,
            "lint_after_vendor": True,
        }
    )


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Consumer project with an empty manifest and lockfile."""
    from protovend.core.lock import LockfileStore
    from protovend.core.manifest import ManifestStore

    root = tmp_path / "project"
    root.mkdir()
    ManifestStore(root).init()
    LockfileStore(root).init()
    return root


@pytest.fixture
def upstream_factory(tmp_path: Path):
    """Create upstream repositories under a shared root."""
    root = tmp_path / "upstreams"

    def _make(repo: str = "org/svc", *, branch: str = "main") -> UpstreamRepo:
        return UpstreamRepo(root, repo, branch=branch)

    return _make


@pytest.fixture
def upstream(upstream_factory) -> UpstreamRepo:
    """``org/svc`` publishing two protos on ``main``."""
    repo = upstream_factory("org/svc")
    repo.write_proto("service.proto")
    repo.write_proto("nested/types.proto")
    repo.write(f"{repo.proto_dir}/README.md", "not a schema\n")
    repo.write("proto/stray.proto", 'syntax = "proto3";\n')
    repo.commit("initial schemas")
    return repo


@pytest.fixture
def caplog_info(caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.INFO, logger="protovend")
    return caplog
