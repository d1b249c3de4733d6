"""核心数据模型

所有模型在一次运行内构建，构建后只读；运行之间除 .SRCINFO 缓存和仓库数据库外不持久化。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

ANY_ARCH = "any"

_QUALIFIER_RE = re.compile(r"[<>=]")


def strip_version(dep: str) -> str:
    """去掉依赖/提供项末尾的版本限定: 'foo>=1.2' -> 'foo'"""
    m = _QUALIFIER_RE.search(dep)
    return (dep[: m.start()] if m else dep).strip()


def full_version(pkgver: str, pkgrel: str, epoch: str = "") -> str:
    """[epoch:]pkgver-pkgrel"""
    prefix = f"{epoch}:" if epoch and epoch != "0" else ""
    return f"{prefix}{pkgver}-{pkgrel}"


def artifact_filename(name: str, version: str, arch: str, pkgext: str) -> str:
    """产物文件名，必须与 makepkg 实际生成的完全一致

    >>> artifact_filename("foo", "2:1.2-3", "any", ".pkg.tar.zst")
    'foo-2:1.2-3-any.pkg.tar.zst'
    """
    return f"{name}-{version}-{arch}{pkgext}"


@dataclass(frozen=True)
class BuildIdentity:
    """受限构建账户"""

    name: str
    uid: int
    gid: int
    home: str


@dataclass
class PackageSource:
    """一个含 PKGBUILD 的源目录，可产出多个二进制包（split package）"""

    path: str
    base: str
    names: list[str]
    pkgver: str
    pkgrel: str
    epoch: str = ""
    arch: list[str] = field(default_factory=list)
    depends: list[str] = field(default_factory=list)
    makedepends: list[str] = field(default_factory=list)
    checkdepends: list[str] = field(default_factory=list)
    provides: list[str] = field(default_factory=list)
    # 子包级别覆盖，缺省继承全局值
    package_arch: dict[str, list[str]] = field(default_factory=dict)
    package_provides: dict[str, list[str]] = field(default_factory=dict)

    @property
    def version(self) -> str:
        return full_version(self.pkgver, self.pkgrel, self.epoch)

    def arch_of(self, name: str) -> list[str]:
        return self.package_arch.get(name, self.arch)

    def provides_of(self, name: str) -> list[str]:
        return self.package_provides.get(name, self.provides)

    def supports(self, carch: str) -> bool:
        """任一子包声明了当前构建架构或 any"""
        lists = [self.arch_of(n) for n in self.names] or [self.arch]
        return any(a in (carch, ANY_ARCH) for arches in lists for a in arches)

    def resolved_arch(self, name: str, carch: str) -> str:
        return ANY_ARCH if ANY_ARCH in self.arch_of(name) else carch


@dataclass(frozen=True)
class ExpectedArtifact:
    """源目录预期产出的一个二进制包"""

    name: str
    base: str
    version: str
    arch: str
    pkgext: str

    @property
    def filename(self) -> str:
        return artifact_filename(self.name, self.version, self.arch, self.pkgext)

    @property
    def debug_filename(self) -> str:
        return artifact_filename(f"{self.base}-debug", self.version, self.arch, self.pkgext)


@dataclass
class BuildUnit:
    """一个调度条目：源目录 + 合并后的依赖 + 产出的包名"""

    source: PackageSource
    depends: list[str]
    produced: list[str]

    @property
    def name(self) -> str:
        return self.source.base


@dataclass(frozen=True)
class DbRecord:
    """仓库数据库中一个包的 desc 记录"""

    name: str
    version: str
    mtime: int

    @property
    def key(self) -> str:
        return f"{self.name}-{self.version}"


@dataclass
class InstalledPackage:
    """pacman -Qi 输出中的一个已安装包"""

    name: str
    provides: list[str] = field(default_factory=list)
    required_by: list[str] = field(default_factory=list)
