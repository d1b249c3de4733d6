"""ArchiveReader 单元测试：.PKGINFO / desc 解析与数据库读取"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from autorepo.core.archive import ArchiveReader, parse_desc, parse_pkginfo_depends
from autorepo.core.exceptions import ExternalToolError
from autorepo.utils.shell import CommandResult
from conftest import FakeExecutor

PKGINFO_TEXT = """\
# Generated by makepkg
pkgname = foo
pkgver = 1.0-1
depend = glibc
depend = libbar>=2
depend = glibc
makedepend = cmake
optdepend = python: scripts
"""


def _extract_into(entries: dict[str, tuple[str, int]]):  # type: ignore[no-untyped-def]
    """模拟 bsdtar -xf db -C dir：写出 {目录: (desc 内容, mtime)}"""

    def handler(cmd: list[str]) -> CommandResult:
        dest = Path(cmd[cmd.index("-C") + 1])
        for entry, (desc, mtime) in entries.items():
            d = dest / entry
            d.mkdir()
            (d / "desc").write_text(desc)
            os.utime(d / "desc", (mtime, mtime))
        return CommandResult(0, "", "")

    return handler


class TestParsers:
    def test_pkginfo_depends(self) -> None:
        assert parse_pkginfo_depends(PKGINFO_TEXT) == ["glibc", "libbar"]

    def test_desc(self) -> None:
        fields = parse_desc("%NAME%\nfoo\n\n%VERSION%\n1.0-1\n\n%DEPENDS%\na\nb\n")
        assert fields == {"NAME": ["foo"], "VERSION": ["1.0-1"], "DEPENDS": ["a", "b"]}


class TestDependsOf:
    def test_cached(self, tmp_path: Path) -> None:
        ex = FakeExecutor()
        ex.on(("bsdtar", "-xOqf"), CommandResult(0, PKGINFO_TEXT, ""))
        reader = ArchiveReader(ex)
        path = tmp_path / "foo-1.0-1-any.pkg.tar.zst"

        assert reader.depends_of(path) == ["glibc", "libbar"]
        assert reader.depends_of(path) == ["glibc", "libbar"]
        assert ex.calls == [["bsdtar", "-xOqf", str(path), ".PKGINFO"]]

    def test_unreadable(self, tmp_path: Path) -> None:
        ex = FakeExecutor()
        ex.on(("bsdtar",), CommandResult(1, "", "Unrecognized archive format"))
        with pytest.raises(ExternalToolError, match="bsdtar"):
            ArchiveReader(ex).depends_of(tmp_path / "broken.pkg.tar.zst")


class TestReadDb:
    def test_missing_db(self, tmp_path: Path) -> None:
        ex = FakeExecutor()
        assert ArchiveReader(ex).read_db(tmp_path / "custom.db.tar.gz") == []
        assert ex.calls == []

    def test_records(self, tmp_path: Path) -> None:
        db = tmp_path / "custom.db.tar.gz"
        db.write_bytes(b"db")
        ex = FakeExecutor()
        ex.on(("bsdtar", "-xf"), _extract_into({
            "foo-1.0-1": ("%FILENAME%\nfoo-1.0-1-any.pkg.tar.zst\n\n%NAME%\nfoo\n\n%VERSION%\n1.0-1\n", 1000),
            "bar-1:2-3": ("%NAME%\nbar\n\n%VERSION%\n1:2-3\n", 2000),
            "broken-1": ("%NAME%\nbroken\n", 3000),
        }))

        records = ArchiveReader(ex).read_db(db)
        assert [(r.name, r.version, r.mtime) for r in records] == [
            ("bar", "1:2-3", 2000),
            ("foo", "1.0-1", 1000),
        ]
        assert records[1].key == "foo-1.0-1"
