"""End-to-end tests for install and update against local upstream repositories."""
from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Dict

import pytest

from protovend import __version__
from protovend.core.engine import STAGING_PREFIX, VendoringEngine, next_steps_message
from protovend.core.exceptions import (
    BranchNotFoundError,
    DependencyNotFoundError,
    DuplicateEntryError,
    FilesystemError,
)
from protovend.core.lock import LockfileStore
from protovend.core.manifest import ManifestStore
from protovend.core.models import DependencyState


def tree(root: Path) -> Dict[str, bytes]:
    if not root.exists():
        return {}
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()}


def lock_commits(project: Path) -> Dict[str, str]:
    return {entry.repo: entry.commit for entry in LockfileStore(project).load().imports}


@pytest.fixture
def engine(project: Path, settings) -> VendoringEngine:
    return VendoringEngine(project, settings)


@pytest.fixture
def declared(project: Path, upstream):
    ManifestStore(project).add_entry(upstream.url, "main")
    return upstream


class TestInstall:
    def test_first_install_vendors_protos_and_pins_head(self, engine, project, declared) -> None:
        result = engine.install()

        assert lock_commits(project) == {"org/svc": declared.head()}
        assert tree(project / "vendor" / "proto") == {
            "org/svc/nested/types.proto": b'syntax = "proto3";\n// nested/types.proto\n',
            "org/svc/service.proto": b'syntax = "proto3";\n// service.proto\n',
        }
        (outcome,) = result.outcomes
        assert outcome.state is DependencyState.COMMITTED
        assert outcome.files == 2
        assert outcome.previous_commit is None
        assert result.changed

    def test_lockfile_records_url_and_version(self, engine, project, declared) -> None:
        engine.install()

        lock = LockfileStore(project).load()
        (entry,) = lock.imports
        assert entry.url == declared.url
        assert entry.branch == "main"
        assert lock.updated is not None
        assert lock.min_protovend_version == __version__

    def test_install_keeps_existing_pins(self, engine, project, declared) -> None:
        engine.install()
        pinned = declared.head()
        declared.write_proto("service.proto", "changed upstream\n")
        declared.commit("move ahead")

        result = VendoringEngine(project, engine.settings).install()

        assert lock_commits(project) == {"org/svc": pinned}
        assert b"changed upstream" not in (project / "vendor/proto/org/svc/service.proto").read_bytes()
        assert not result.changed

    def test_install_is_idempotent(self, engine, project, declared) -> None:
        engine.install()
        before_tree = tree(project / "vendor")
        before_lock = LockfileStore(project).load()

        VendoringEngine(project, engine.settings).install()

        assert tree(project / "vendor") == before_tree
        assert LockfileStore(project).load().imports == before_lock.imports

    def test_install_overwrites_local_edits_in_vendor_tree(self, engine, project, declared) -> None:
        engine.install()
        vendored = project / "vendor/proto/org/svc/service.proto"
        vendored.write_text("hand edited\n", encoding="utf-8")
        (project / "vendor/proto/org/svc/extra.proto").write_text("junk\n", encoding="utf-8")

        VendoringEngine(project, engine.settings).install()

        assert vendored.read_bytes() == b'syntax = "proto3";\n// service.proto\n'
        assert not (project / "vendor/proto/org/svc/extra.proto").exists()

    def test_changed_branch_is_re_resolved(self, engine, project, declared) -> None:
        engine.install()
        declared.checkout("develop", create=True)
        declared.write_proto("develop.proto")
        develop_head = declared.commit("develop only")
        ManifestStore(project).update_branch("org/svc", "develop")

        VendoringEngine(project, engine.settings).install()

        assert lock_commits(project) == {"org/svc": develop_head}
        assert (project / "vendor/proto/org/svc/develop.proto").is_file()

    def test_removed_dependency_is_dropped(self, engine, project, declared, upstream_factory) -> None:
        other = upstream_factory("org/other")
        other.write_proto("other.proto")
        other.commit()
        ManifestStore(project).add_entry(other.url, "main")
        engine.install()
        assert (project / "vendor/proto/org/other/other.proto").is_file()

        ManifestStore(project).remove_entry("org/other")
        result = VendoringEngine(project, engine.settings).install()

        assert result.removed == ("org/other",)
        assert set(lock_commits(project)) == {"org/svc"}
        assert not (project / "vendor/proto/org/other").exists()

    def test_lockfile_follows_manifest_order(self, engine, project, upstream_factory) -> None:
        names = ["zeta/one", "alpha/two", "mid/three", "beta/four", "omega/five"]
        for name in names:
            repo = upstream_factory(name)
            repo.write_proto("a.proto")
            repo.commit()
            ManifestStore(project).add_entry(repo.url, "main")

        result = engine.install()

        assert [o.dependency.repo for o in result.outcomes] == names
        assert [entry.repo for entry in LockfileStore(project).load().imports] == names

    def test_repository_is_fetched_once_per_run(self, project, settings, declared, monkeypatch) -> None:
        engine = VendoringEngine(project, settings)
        calls = []
        original = engine.client.fetch_into

        def counting_fetch(handle, url):
            calls.append(url)
            original(handle, url)

        monkeypatch.setattr(engine.client, "fetch_into", counting_fetch)
        engine.install()

        assert calls == [declared.url]

    def test_recovers_pinned_commit_after_force_push(self, engine, project, declared) -> None:
        base = declared.head()
        declared.write_proto("later.proto")
        pinned = declared.commit("later")
        engine.install()
        declared.reset_hard(base)
        engine.cache.cleanup()

        VendoringEngine(project, engine.settings).install()

        assert lock_commits(project) == {"org/svc": pinned}
        assert (project / "vendor/proto/org/svc/later.proto").is_file()

    def test_missing_proto_directory_vendors_nothing(self, engine, project, upstream_factory) -> None:
        bare = upstream_factory("org/empty")
        bare.write("README.md", "no schemas here\n")
        bare.commit()
        ManifestStore(project).add_entry(bare.url, "main")

        result = engine.install()

        (outcome,) = result.outcomes
        assert outcome.files == 0
        assert outcome.proto_dir_found is False
        assert lock_commits(project) == {"org/empty": bare.head()}
        assert any("P003" in finding for finding in result.lint_findings)
        assert any("P002" in finding for finding in outcome.findings)

    def test_protos_outside_repository_directory_are_reported(
        self, engine, project, upstream_factory, caplog_info
    ) -> None:
        misplaced = upstream_factory("org/svc")
        misplaced.write("proto/api.proto", 'syntax = "proto3";\n')
        misplaced.write("proto/v1/types.proto", 'syntax = "proto3";\n')
        commit = misplaced.commit()
        ManifestStore(project).add_entry(misplaced.url, "main")

        result = engine.install()

        (outcome,) = result.outcomes
        assert outcome.files == 0
        location = f"org/svc@{commit[:12]}/proto"
        assert [f.split(":")[0] for f in outcome.findings] == [
            location,
            f"{location}/api.proto",
            f"{location}/v1/types.proto",
        ]
        assert [f.split(" ")[1] for f in outcome.findings] == ["P002", "P001", "P001"]
        assert set(outcome.findings) <= set(result.lint_findings)
        assert f"{location}/api.proto: P001" in caplog_info.text
        assert f"{location}/v1/types.proto: P001" in caplog_info.text

    def test_root_level_proto_next_to_vendored_directory_is_reported(self, engine, declared) -> None:
        result = engine.install()

        (outcome,) = result.outcomes
        assert outcome.files == 2
        assert outcome.findings == (
            f"org/svc@{declared.head()[:12]}/proto/stray.proto: P001 "
            ".proto files should not be stored in the root /proto folder; they should be "
            "moved to org/svc. If source is from another repo please ask the owners to update",
        )
        assert outcome.findings[0] in result.lint_findings

    def test_layout_findings_are_returned_without_vendor_lint(self, project, settings, declared) -> None:
        quiet = dataclasses.replace(settings, lint_after_vendor=False)

        result = VendoringEngine(project, quiet).install()

        assert [f.split(" ")[1] for f in result.lint_findings] == ["P001"]

    def test_non_utf8_file_names_are_vendored(self, engine, project, declared) -> None:
        odd_name = os.fsdecode(b"bad\xff.proto")
        declared.write_proto(odd_name, 'syntax = "proto3";\n')
        declared.commit("odd file name")

        result = engine.install()

        assert result.outcomes[0].files == 3
        vendored = project / "vendor" / "proto" / "org" / "svc" / odd_name
        assert vendored.read_bytes() == b'syntax = "proto3";\n'
        assert os.fsencode(vendored.name) == b"bad\xff.proto"

    def test_colliding_vendor_paths_are_rejected(self, engine, project, upstream_factory) -> None:
        first = upstream_factory("org/my-svc")
        first.commit()
        second = upstream_factory("org/mysvc")
        second.commit()
        ManifestStore(project).add_entry(first.url, "main")
        ManifestStore(project).add_entry(second.url, "main")

        with pytest.raises(DuplicateEntryError):
            engine.install()
        assert not (project / "vendor").exists()

    def test_logs_next_steps(self, engine, declared, caplog_info) -> None:
        engine.install()

        assert next_steps_message() in caplog_info.text
        assert "  - vendor/proto" in next_steps_message()


class TestUpdate:
    @pytest.fixture
    def two_deps(self, project, declared, upstream_factory):
        other = upstream_factory("org/other")
        other.write_proto("other.proto")
        other.commit()
        ManifestStore(project).add_entry(other.url, "main")
        return declared, other

    def test_update_all_moves_every_pin(self, engine, project, two_deps) -> None:
        svc, other = two_deps
        engine.install()
        svc.write_proto("new.proto")
        svc.commit()
        other.write_proto("new.proto")
        other.commit()

        result = VendoringEngine(project, engine.settings).update()

        assert lock_commits(project) == {"org/svc": svc.head(), "org/other": other.head()}
        assert all(o.changed for o in result.outcomes)
        assert (project / "vendor/proto/org/other/new.proto").is_file()

    def test_update_single_repository_leaves_others_pinned(self, engine, project, two_deps) -> None:
        svc, other = two_deps
        engine.install()
        other_pin = other.head()
        svc.write_proto("new.proto")
        svc.commit()
        other.write_proto("new.proto")
        other.commit()

        VendoringEngine(project, engine.settings).update("org/svc")

        assert lock_commits(project) == {"org/svc": svc.head(), "org/other": other_pin}
        assert not (project / "vendor/proto/org/other/new.proto").exists()

    def test_update_accepts_a_url(self, engine, project, declared) -> None:
        engine.install()
        declared.write_proto("new.proto")
        declared.commit()

        VendoringEngine(project, engine.settings).update(declared.url)

        assert lock_commits(project) == {"org/svc": declared.head()}

    def test_update_of_undeclared_repository(self, engine, declared) -> None:
        with pytest.raises(DependencyNotFoundError):
            engine.update("org/unknown")

    def test_update_at_head_changes_nothing(self, engine, project, declared) -> None:
        engine.install()

        result = VendoringEngine(project, engine.settings).update()

        assert not result.changed


class TestAtomicity:
    def test_failed_run_leaves_lockfile_and_vendor_tree_untouched(
        self, engine, project, declared, upstream_factory
    ) -> None:
        engine.install()
        lock_before = (project / ".protovend.lock").read_bytes()
        vendor_before = tree(project / "vendor")
        declared.write_proto("service.proto", "moved\n")
        declared.commit()
        broken = upstream_factory("org/broken")
        broken.commit()
        ManifestStore(project).add_entry(broken.url, "no-such-branch")

        with pytest.raises(BranchNotFoundError) as excinfo:
            VendoringEngine(project, engine.settings).update()

        assert excinfo.value.context["repository"] == "org/broken"
        assert (project / ".protovend.lock").read_bytes() == lock_before
        assert tree(project / "vendor") == vendor_before
        assert not any(p.name.startswith(STAGING_PREFIX) for p in (project / "vendor").iterdir())

    def test_failed_first_run_leaves_no_vendor_directory(self, engine, project, upstream_factory) -> None:
        broken = upstream_factory("org/broken")
        broken.commit()
        ManifestStore(project).add_entry(broken.url, "no-such-branch")
        lock_before = (project / ".protovend.lock").read_bytes()

        with pytest.raises(BranchNotFoundError):
            engine.install()

        assert not (project / "vendor").exists()
        assert (project / ".protovend.lock").read_bytes() == lock_before

    def test_aborted_outcomes_are_not_committed(self, engine, project, upstream_factory, caplog) -> None:
        broken = upstream_factory("org/broken")
        broken.commit()
        ManifestStore(project).add_entry(broken.url, "no-such-branch")
        caplog.set_level(logging.INFO, logger="protovend")

        with pytest.raises(BranchNotFoundError):
            engine.install()

        assert "Next Steps" not in caplog.text

    def test_lockfile_replace_failure_restores_vendor_tree(
        self, engine, project, declared, monkeypatch
    ) -> None:
        engine.install()
        lock_before = (project / ".protovend.lock").read_bytes()
        vendor_before = tree(project / "vendor")
        declared.write_proto("service.proto", "moved\n")
        declared.commit()

        real_replace = os.replace

        def replace_except_lockfile(src, dst, *args, **kwargs):
            if Path(dst).name == ".protovend.lock":
                raise PermissionError(f"read-only: {dst}")
            return real_replace(src, dst, *args, **kwargs)

        monkeypatch.setattr(os, "replace", replace_except_lockfile)

        with pytest.raises(FilesystemError) as excinfo:
            VendoringEngine(project, engine.settings).update()

        assert "read-only" in excinfo.value.context["cause"]
        assert (project / ".protovend.lock").read_bytes() == lock_before
        assert tree(project / "vendor") == vendor_before
        assert sorted(p.name for p in (project / "vendor").iterdir()) == ["proto"]
        assert sorted(p.name for p in project.iterdir()) == [".protovend.lock", ".protovend.yml", "vendor"]
