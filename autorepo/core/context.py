"""一次运行的上下文

在调度开始前显式构建：解析全部源目录、建立注册表、装配外部工具封装。
构建完成后只读，作为参数传给每个组件，不使用模块级全局状态。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from autorepo.core.archive import ArchiveReader
from autorepo.core.config import Config
from autorepo.core.identity import IdentityRunner, PosixIdentityRunner, resolve_identity
from autorepo.core.models import BuildIdentity, PackageSource
from autorepo.core.pacman import Pacman
from autorepo.core.registry import Registry
from autorepo.core.srcinfo import SrcinfoLoader
from autorepo.utils.shell import CommandExecutor, LocalExecutor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    config: Config
    runner: IdentityRunner
    executor: CommandExecutor
    pacman: Pacman
    archives: ArchiveReader
    sources: tuple[PackageSource, ...]
    registry: Registry

    @property
    def identity(self) -> BuildIdentity:
        return self.runner.identity

    @classmethod
    def create(
        cls,
        config: Config,
        *,
        executor: CommandExecutor | None = None,
        runner: IdentityRunner | None = None,
        pacman: Pacman | None = None,
    ) -> RunContext:
        """解析配置中的全部源目录并建立注册表

        任一源目录缺少 PKGBUILD 或元数据无法生成都会中止整个运行。
        """
        executor = executor or LocalExecutor()
        if runner is None:
            runner = PosixIdentityRunner(resolve_identity(config.build_user))
        if pacman is None:
            pacman = Pacman.from_config(config, executor)

        loader = SrcinfoLoader(runner, makepkg=config.makepkg, carch=config.arch)
        sources = tuple(loader.load(path) for path in config.packages)
        registry = Registry.from_sources(
            list(sources),
            target_dir=config.target_dir,
            carch=config.arch,
            pkgext=config.pkgext,
        )
        return cls(
            config=config,
            runner=runner,
            executor=executor,
            pacman=pacman,
            archives=ArchiveReader(executor, bsdtar=config.bsdtar),
            sources=sources,
            registry=registry,
        )
