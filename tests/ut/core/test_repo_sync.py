"""RepoSynchronizer 单元测试：文件清扫 / 记录过期判断 / 数据库批次"""

from __future__ import annotations

import os
from pathlib import Path

from autorepo.core.models import DbRecord
from autorepo.core.repo_sync import RepoSynchronizer, is_stale, record_path
from conftest import ARCH, PKGEXT, FakeArchives, make_source, write_artifact


def _aged(path: Path, mtime: int) -> Path:
    os.utime(path, (mtime, mtime))
    return path


class TestRecordPath:
    def test_prefers_current_arch(self, target: Path) -> None:
        write_artifact(target, f"foo-1.0-1-{ARCH}{PKGEXT}")
        rec = DbRecord("foo", "1.0-1", 0)
        assert record_path(rec, target, ARCH, PKGEXT).name == f"foo-1.0-1-{ARCH}{PKGEXT}"

    def test_falls_back_to_any(self, target: Path) -> None:
        rec = DbRecord("foo", "1.0-1", 0)
        assert record_path(rec, target, ARCH, PKGEXT).name == f"foo-1.0-1-any{PKGEXT}"


class TestIsStale:
    def test_missing_file(self, target: Path) -> None:
        assert is_stale(DbRecord("foo", "1", 100), target / "nope")

    def test_newer_file(self, target: Path) -> None:
        path = _aged(write_artifact(target, "f"), 200)
        assert is_stale(DbRecord("foo", "1", 100), path)

    def test_same_or_older_file(self, target: Path) -> None:
        path = _aged(write_artifact(target, "f"), 100)
        assert not is_stale(DbRecord("foo", "1", 100), path)
        assert not is_stale(DbRecord("foo", "1", 150), path)


class TestSweepFiles:
    def test_removes_unexpected_packages_only(self, make_ctx, target: Path) -> None:  # type: ignore[no-untyped-def]
        ctx = make_ctx([make_source("foo")])
        valid = write_artifact(target, ctx.registry.path_of("foo").name)
        old = write_artifact(target, f"foo-0.9-1-{ARCH}{PKGEXT}")
        write_artifact(target, old.name + ".sig")
        unrelated = write_artifact(target, "notes.txt")
        other_ext = write_artifact(target, "bar-1-1-any.pkg.tar.xz")

        sync = RepoSynchronizer(ctx)
        deleted = sync.sweep_files(sync.valid_files())

        assert deleted == [old.name]
        assert sorted(p.name for p in target.iterdir()) == sorted(
            [valid.name, unrelated.name, other_ext.name],
        )

    def test_debug_kept_only_when_present(self, make_ctx, target: Path) -> None:  # type: ignore[no-untyped-def]
        ctx = make_ctx([make_source("foo")])
        sync = RepoSynchronizer(ctx)
        assert sync.valid_files() == [ctx.registry.path_of("foo").name]

        write_artifact(target, ctx.registry.debug_path_of("foo").name)
        assert sync.valid_files() == [
            ctx.registry.path_of("foo").name, ctx.registry.debug_path_of("foo").name,
        ]


class TestSync:
    def test_up_to_date_issues_no_commands(self, make_ctx, target: Path) -> None:  # type: ignore[no-untyped-def]
        archives = FakeArchives()
        ctx = make_ctx([make_source("foo")], archives=archives)
        _aged(write_artifact(target, ctx.registry.path_of("foo").name), 1000)
        archives.records = [DbRecord("foo", "1.0-1", 1000)]

        result = RepoSynchronizer(ctx).sync()
        assert not result.changed
        ctx.pacman.repo_remove.assert_not_called()
        ctx.pacman.repo_add.assert_not_called()

    def test_rebuilt_package_replaced(self, make_ctx, config, target: Path) -> None:  # type: ignore[no-untyped-def]
        archives = FakeArchives()
        ctx = make_ctx([make_source("foo"), make_source("gone")], archives=archives)
        foo = _aged(write_artifact(target, ctx.registry.path_of("foo").name), 2000)
        archives.records = [DbRecord("foo", "1.0-1", 1000), DbRecord("dropped", "3-1", 1000)]

        result = RepoSynchronizer(ctx).sync()

        assert result.removed_records == ["foo", "dropped"]
        assert result.added_files == [foo.name]
        ctx.pacman.repo_remove.assert_called_once_with(config.db_path, ["foo", "dropped"])
        ctx.pacman.repo_add.assert_called_once_with(config.db_path, [foo], sign=False, key="")

    def test_remove_before_add(self, make_ctx, target: Path) -> None:  # type: ignore[no-untyped-def]
        archives = FakeArchives()
        ctx = make_ctx([make_source("foo")], archives=archives)
        write_artifact(target, ctx.registry.path_of("foo").name)
        archives.records = [DbRecord("foo", "0.9-1", 1)]

        RepoSynchronizer(ctx).sync()
        names = [c[0] for c in ctx.pacman.method_calls]
        assert names.index("repo_remove") < names.index("repo_add")

    def test_derived_index_dropped_on_change(self, make_ctx, config, target: Path) -> None:  # type: ignore[no-untyped-def]
        ctx = make_ctx([make_source("foo")])
        write_artifact(target, ctx.registry.path_of("foo").name)
        config.db_path.write_bytes(b"db")
        config.db_link_path.symlink_to(config.db_path.name)

        RepoSynchronizer(ctx).sync()
        assert not config.db_link_path.is_symlink()
        assert config.db_path.exists()

    def test_signing_passed_to_repo_add(self, make_ctx, config, target: Path) -> None:  # type: ignore[no-untyped-def]
        config.sign = True
        config.sign_key = "KEY"
        ctx = make_ctx([make_source("foo")])
        path = write_artifact(target, ctx.registry.path_of("foo").name)
        RepoSynchronizer(ctx).sync()
        ctx.pacman.repo_add.assert_called_once_with(config.db_path, [path], sign=True, key="KEY")
