"""共享测试夹具：可脚本化的执行器 / 构建账户 / 运行上下文

所有外部进程（pacman、makepkg、bsdtar、gpg）都由假实现替代，测试不需要 root 或 Arch 环境。
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock

import pytest

from autorepo.core.config import Config
from autorepo.core.context import RunContext
from autorepo.core.models import BuildIdentity, PackageSource
from autorepo.core.pacman import Pacman
from autorepo.core.registry import Registry
from autorepo.utils.shell import CommandResult

ARCH = "x86_64"
PKGEXT = ".pkg.tar.zst"

Handler = Callable[[list[str]], CommandResult]


class FakeExecutor:
    """按命令前缀返回预设结果，并记录全部调用"""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.envs: list[dict[str, str] | None] = []
        self._handlers: list[tuple[tuple[str, ...], Handler]] = []

    def on(self, prefix: tuple[str, ...], result: CommandResult | Handler) -> None:
        handler = result if callable(result) else (lambda cmd, r=result: r)
        self._handlers.insert(0, (prefix, handler))

    def execute(self, cmd, *, cwd=None, env=None) -> CommandResult:  # type: ignore[no-untyped-def]
        self.calls.append(list(cmd))
        self.envs.append(env)
        for prefix, handler in self._handlers:
            if tuple(cmd[: len(prefix)]) == prefix:
                return handler(list(cmd))
        return CommandResult(0, "", "")


class FakeRunner:
    """以构建账户身份执行的假实现"""

    def __init__(self, identity: BuildIdentity | None = None) -> None:
        self.identity = identity or BuildIdentity(
            name="builder", uid=os.getuid(), gid=os.getgid(), home="/home/builder",
        )
        self.runs: list[tuple[list[str], str | None]] = []
        self.builds: list[tuple[str, list[str]]] = []
        self.run_result = CommandResult(0, "", "")
        self.build_rc = 0
        self.on_build: Callable[[str], None] | None = None

    def run(self, cmd, *, cwd=None, capture=False) -> CommandResult:  # type: ignore[no-untyped-def]
        self.runs.append((list(cmd), cwd))
        return self.run_result

    def build(self, source_dir: str, cmd: list[str]) -> int:
        self.builds.append((source_dir, list(cmd)))
        if self.on_build is not None and self.build_rc == 0:
            self.on_build(source_dir)
        return self.build_rc


class FakeArchives:
    """产物 .PKGINFO 依赖 / 数据库记录的假实现"""

    def __init__(self) -> None:
        self.depends: dict[str, list[str]] = {}
        self.records: list = []

    def depends_of(self, path: Path) -> list[str]:
        return self.depends.get(path.name, [])

    def read_db(self, db: Path) -> list:
        return list(self.records)


def make_source(
    base: str,
    *,
    names: list[str] | None = None,
    pkgver: str = "1.0",
    pkgrel: str = "1",
    epoch: str = "",
    arch: list[str] | None = None,
    depends: list[str] | None = None,
    makedepends: list[str] | None = None,
    checkdepends: list[str] | None = None,
    provides: list[str] | None = None,
    path: str = "",
) -> PackageSource:
    return PackageSource(
        path=path or f"/src/{base}",
        base=base,
        names=names or [base],
        pkgver=pkgver,
        pkgrel=pkgrel,
        epoch=epoch,
        arch=arch or [ARCH],
        depends=depends or [],
        makedepends=makedepends or [],
        checkdepends=checkdepends or [],
        provides=provides or [],
    )


def write_artifact(target: Path, filename: str, content: bytes = b"pkg") -> Path:
    path = target / filename
    path.write_bytes(content)
    return path


@pytest.fixture()
def target(tmp_path: Path) -> Path:
    d = tmp_path / "repo"
    d.mkdir()
    return d


@pytest.fixture()
def config(target: Path) -> Config:
    return Config(
        target_dir=str(target),
        repo_name="custom",
        build_user="builder",
        packages=["/src/placeholder"],
        arch=ARCH,
        pkgext=PKGEXT,
        makepkg_dirs_managed=True,
    )


@pytest.fixture()
def make_ctx(config: Config):  # type: ignore[no-untyped-def]
    """根据源目录列表构造 RunContext，pacman 为 MagicMock"""

    def _make(
        sources: list[PackageSource],
        *,
        runner: FakeRunner | None = None,
        executor: FakeExecutor | None = None,
        archives: FakeArchives | None = None,
        pacman: MagicMock | None = None,
    ) -> RunContext:
        pm = pacman or MagicMock(spec=Pacman)
        if pacman is None:
            pm.missing_deps.side_effect = lambda deps: list(deps)
        return RunContext(
            config=config,
            runner=runner or FakeRunner(),
            executor=executor or FakeExecutor(),
            pacman=pm,
            archives=archives or FakeArchives(),  # type: ignore[arg-type]
            sources=tuple(sources),
            registry=Registry.from_sources(
                sources, target_dir=config.target_dir, carch=config.arch, pkgext=config.pkgext,
            ),
        )

    return _make
