"""Tests for the repository cache."""
from __future__ import annotations

import os
import shutil
import threading
from pathlib import Path

import pytest

from protovend.core.cache import RepositoryCache
from protovend.core.exceptions import CacheCleanupError, CommitNotFoundError, PathNotFoundError
from protovend.core.remote import GitRemoteClient


class CountingClient(GitRemoteClient):
    """Real git client that counts network fetches."""

    def __init__(self) -> None:
        super().__init__(timeout=60)
        self.fetches = 0
        self.commit_fetches = 0
        self._lock = threading.Lock()

    def fetch_into(self, handle, url):
        with self._lock:
            self.fetches += 1
        super().fetch_into(handle, url)

    def fetch_commit(self, handle, url, commit):
        with self._lock:
            self.commit_fetches += 1
        super().fetch_commit(handle, url, commit)


@pytest.fixture
def client() -> CountingClient:
    return CountingClient()


@pytest.fixture
def cache(tmp_path: Path, client: CountingClient) -> RepositoryCache:
    return RepositoryCache(tmp_path / "cache", client, timeout=60)


class TestHandles:
    def test_layout_uses_alphanumeric_host_and_sanitised_path(self, cache: RepositoryCache) -> None:
        assert cache.key_for("git@github.com:My-Org/Svc.API.git") == "githubcom/myorg/svcapi"
        assert cache.path_for("https://github.com/org/svc.git") == cache.root / "githubcom" / "org" / "svc"

    def test_get_creates_empty_bare_clone(self, cache: RepositoryCache, upstream) -> None:
        handle = cache.get(upstream.url)

        assert handle.key == "local/org/svc"
        assert (handle.path / "HEAD").is_file()
        # Nothing but the clone itself in the owner directory.
        assert [p.name for p in handle.path.parent.iterdir()] == ["svc"]

    def test_get_reuses_existing_clone(self, cache: RepositoryCache, upstream) -> None:
        first = cache.get(upstream.url)
        (first.path / "marker").write_text("x", encoding="utf-8")

        second = cache.get(upstream.url)

        assert second == first
        assert (second.path / "marker").exists()

    def test_get_replaces_half_created_entry(self, cache: RepositoryCache, upstream) -> None:
        broken = cache.path_for(upstream.url)
        broken.mkdir(parents=True)
        (broken / "junk").write_text("x", encoding="utf-8")

        handle = cache.get(upstream.url)

        assert (handle.path / "HEAD").is_file()
        assert not (handle.path / "junk").exists()


class TestFreshness:
    def test_ensure_fresh_fetches_once_per_run(self, cache, client, upstream) -> None:
        handle = cache.get(upstream.url)

        assert cache.ensure_fresh(handle, "main") is True
        assert cache.ensure_fresh(handle, "main") is False
        assert cache.ensure_fresh(handle, "develop") is False
        assert client.fetches == 1

    def test_new_cache_instance_fetches_again(self, tmp_path, client, upstream) -> None:
        first = RepositoryCache(tmp_path / "cache", client)
        first.ensure_fresh(first.get(upstream.url), "main")
        second = RepositoryCache(tmp_path / "cache", client)
        second.ensure_fresh(second.get(upstream.url), "main")

        assert client.fetches == 2

    def test_concurrent_ensure_fresh_fetches_once(self, cache, client, upstream) -> None:
        handle = cache.get(upstream.url)
        threads = [threading.Thread(target=cache.ensure_fresh, args=(handle, "main")) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert client.fetches == 1

    def test_ensure_commit_recovers_force_pushed_commit(self, cache, client, upstream) -> None:
        base = upstream.head()
        upstream.write_proto("extra.proto")
        dropped = upstream.commit("later rewritten")
        upstream.reset_hard(base)
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        assert not cache.has_commit(handle, dropped)
        cache.ensure_commit(handle, dropped)

        assert cache.has_commit(handle, dropped)
        assert client.commit_fetches == 1

    def test_ensure_commit_is_local_when_present(self, cache, client, upstream) -> None:
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        cache.ensure_commit(handle, upstream.head())

        assert client.commit_fetches == 0

    def test_ensure_commit_unknown(self, cache, upstream) -> None:
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        with pytest.raises(CommitNotFoundError) as excinfo:
            cache.ensure_commit(handle, "deadbeef" * 5)
        assert excinfo.value.context["commit"] == "deadbeef" * 5

    def test_ensure_commit_rejects_non_hash_references(self, cache, client, upstream) -> None:
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        assert not cache.has_commit(handle, "origin/main")
        with pytest.raises(CommitNotFoundError, match="not a full commit hash"):
            cache.ensure_commit(handle, "main")
        assert client.commit_fetches == 0


class TestFilesAt:
    def test_lists_files_under_subpath_with_contents(self, cache, upstream) -> None:
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        files = cache.files_at(handle, upstream.head(), upstream.proto_dir)

        assert files.paths == ["README.md", "nested/types.proto", "service.proto"]
        contents = dict(files)
        assert contents["service.proto"] == b'syntax = "proto3";\n// service.proto\n'

    def test_is_restartable(self, cache, upstream) -> None:
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")
        files = cache.files_at(handle, upstream.head(), upstream.proto_dir)

        assert list(files) == list(files)
        assert len(files) == 3

    def test_reads_the_requested_commit(self, cache, upstream) -> None:
        first = upstream.head()
        upstream.write_proto("service.proto", "changed\n")
        upstream.commit("change")
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        old = dict(cache.files_at(handle, first, upstream.proto_dir))
        new = dict(cache.files_at(handle, upstream.head(), upstream.proto_dir))

        assert old["service.proto"] != b"changed\n"
        assert new["service.proto"] == b"changed\n"

    def test_under_narrows_to_a_subdirectory(self, cache, upstream) -> None:
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")
        files = cache.files_at(handle, upstream.head(), "proto")

        assert files.paths == [
            "org/svc/README.md",
            "org/svc/nested/types.proto",
            "org/svc/service.proto",
            "stray.proto",
        ]
        assert files.under("org/svc").paths == ["README.md", "nested/types.proto", "service.proto"]
        assert files.under("org/other") is None

    def test_non_utf8_names_round_trip(self, cache, upstream) -> None:
        upstream.write_proto(os.fsdecode(b"caf\xe9.proto"), "latin-1 name\n")
        upstream.commit("odd name")
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        files = dict(cache.files_at(handle, upstream.head(), upstream.proto_dir))

        assert files[os.fsdecode(b"caf\xe9.proto")] == b"latin-1 name\n"

    def test_missing_subpath(self, cache, upstream) -> None:
        handle = cache.get(upstream.url)
        cache.ensure_fresh(handle, "main")

        with pytest.raises(PathNotFoundError):
            cache.files_at(handle, upstream.head(), "proto/other/repo")

    def test_missing_commit(self, cache, upstream) -> None:
        handle = cache.get(upstream.url)

        with pytest.raises(CommitNotFoundError):
            cache.files_at(handle, upstream.head(), upstream.proto_dir)


class TestCleanup:
    def test_cleanup_removes_every_clone(self, cache, upstream_factory) -> None:
        for name in ("org/a", "org/b", "other/c"):
            repo = upstream_factory(name)
            repo.commit("init")
            cache.get(repo.url)

        result = cache.cleanup()

        assert sorted(result.removed) == ["local/org/a", "local/org/b", "local/other/c"]
        assert not cache.root.exists()

    def test_cleanup_of_missing_cache_is_a_no_op(self, cache) -> None:
        assert cache.cleanup().removed == ()

    def test_cleanup_continues_past_failures_and_reports_all(
        self, cache, upstream_factory, monkeypatch
    ) -> None:
        for name in ("org/a", "org/b", "org/c"):
            repo = upstream_factory(name)
            repo.commit("init")
            cache.get(repo.url)

        real_rmtree = shutil.rmtree
        attempted = []

        def flaky_rmtree(path, *args, **kwargs):
            attempted.append(Path(path).name)
            if Path(path).name in {"a", "c"}:
                raise PermissionError(f"cannot delete {path}")
            return real_rmtree(path, *args, **kwargs)

        monkeypatch.setattr("protovend.core.cache.shutil.rmtree", flaky_rmtree)

        with pytest.raises(CacheCleanupError) as excinfo:
            cache.cleanup()

        assert attempted == ["a", "b", "c"]
        assert sorted(excinfo.value.failures) == ["local/org/a", "local/org/c"]
        assert not (cache.root / "local" / "org" / "b").exists()
        assert (cache.root / "local" / "org" / "a").exists()
