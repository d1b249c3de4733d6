"""models 单元测试：文件名计算 / 版本限定去除 / 架构判断"""

from __future__ import annotations

import pytest

from autorepo.core.models import (
    ExpectedArtifact,
    artifact_filename,
    full_version,
    strip_version,
)
from conftest import make_source


class TestStripVersion:
    @pytest.mark.parametrize("raw,expected", [
        ("foo", "foo"),
        ("foo>=1.2", "foo"),
        ("foo<2", "foo"),
        ("foo=1:2.0-1", "foo"),
        ("libfoo.so=1-64", "libfoo.so"),
        ("  bar  ", "bar"),
    ])
    def test_strip(self, raw: str, expected: str) -> None:
        assert strip_version(raw) == expected


class TestArtifactFilename:
    def test_without_epoch(self) -> None:
        version = full_version("1.2", "3")
        assert artifact_filename("foo", version, "any", ".pkg.tar.zst") == "foo-1.2-3-any.pkg.tar.zst"

    def test_with_epoch(self) -> None:
        version = full_version("1.2", "3", "2")
        assert artifact_filename("foo", version, "any", ".pkg.tar.zst") == "foo-2:1.2-3-any.pkg.tar.zst"

    def test_zero_epoch_omitted(self) -> None:
        assert full_version("1.2", "3", "0") == "1.2-3"

    def test_debug_filename_uses_pkgbase(self) -> None:
        art = ExpectedArtifact(
            name="foo-docs", base="foo", version="1.0-1", arch="x86_64", pkgext=".pkg.tar.zst",
        )
        assert art.filename == "foo-docs-1.0-1-x86_64.pkg.tar.zst"
        assert art.debug_filename == "foo-debug-1.0-1-x86_64.pkg.tar.zst"


class TestPackageSourceArch:
    def test_supports_current_arch(self) -> None:
        assert make_source("foo", arch=["x86_64"]).supports("x86_64")

    def test_supports_any(self) -> None:
        assert make_source("foo", arch=["any"]).supports("aarch64")

    def test_unsupported(self) -> None:
        assert not make_source("foo", arch=["aarch64"]).supports("x86_64")

    def test_package_override_enables_support(self) -> None:
        src = make_source("foo", names=["foo", "foo-data"], arch=["aarch64"])
        src.package_arch["foo-data"] = ["any"]
        assert src.supports("x86_64")
        assert src.resolved_arch("foo-data", "x86_64") == "any"
        assert src.resolved_arch("foo", "x86_64") == "x86_64"
