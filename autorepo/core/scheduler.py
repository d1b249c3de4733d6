"""构建调度器

按配置顺序逐个处理源目录，严格串行（共享的源/输出目录不允许并发构建）:
  - 不支持当前架构（也不是 any）: WARNING 后跳过
  - 所有产物都已存在且非空: 视为最新，跳过
  - 否则: 一次性系统更新（整个运行最多一次，且只在确实有包要构建时）
          -> 删除旧产物 -> 必要时改属主 -> 清理孤儿 -> 安装依赖 -> 构建
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

from autorepo.core.builder import PackageBuilder, remove_with_signature
from autorepo.core.context import RunContext
from autorepo.core.installer import DependencyInstaller
from autorepo.core.models import BuildUnit, PackageSource
from autorepo.core.orphans import OrphanCleaner

logger = logging.getLogger(__name__)


class UnitStatus(Enum):
    UNSUPPORTED = "unsupported"
    CURRENT = "current"
    PENDING = "pending"


def make_unit(source: PackageSource, *, with_checkdepends: bool) -> BuildUnit:
    deps = [*source.depends, *source.makedepends]
    if with_checkdepends:
        deps += source.checkdepends
    return BuildUnit(
        source=source,
        depends=list(dict.fromkeys(deps)),
        produced=list(source.names),
    )


def chown_tree(root: str, uid: int, gid: int) -> None:
    """递归修改属主，不跟随符号链接"""
    os.chown(root, uid, gid, follow_symlinks=False)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            os.chown(os.path.join(dirpath, name), uid, gid, follow_symlinks=False)


class BuildScheduler:
    """串行构建调度"""

    def __init__(
        self,
        ctx: RunContext,
        installer: DependencyInstaller | None = None,
        builder: PackageBuilder | None = None,
        cleaner: OrphanCleaner | None = None,
    ) -> None:
        self.ctx = ctx
        self.installer = installer or DependencyInstaller(ctx)
        self.builder = builder or PackageBuilder(ctx)
        self.cleaner = cleaner
        self._system_updated = False

    def units(self) -> list[BuildUnit]:
        with_check = self.ctx.config.install_checkdepends
        return [make_unit(s, with_checkdepends=with_check) for s in self.ctx.sources]

    def status_of(self, unit: BuildUnit) -> UnitStatus:
        if not unit.source.supports(self.ctx.config.arch):
            return UnitStatus.UNSUPPORTED
        if all(self.ctx.registry.is_built(name) for name in unit.produced):
            return UnitStatus.CURRENT
        return UnitStatus.PENDING

    def plan(self) -> list[tuple[BuildUnit, UnitStatus]]:
        return [(unit, self.status_of(unit)) for unit in self.units()]

    def run(self) -> list[str]:
        """处理全部源目录，返回实际构建的 pkgbase 列表"""
        built: list[str] = []
        for unit, status in self.plan():
            if status is UnitStatus.UNSUPPORTED:
                logger.warning(
                    "跳过 %s: 不支持架构 %s (声明: %s)",
                    unit.name, self.ctx.config.arch, " ".join(unit.source.arch) or "-",
                )
                continue
            if status is UnitStatus.CURRENT:
                logger.debug("已是最新: %s", unit.name)
                continue
            self.build_unit(unit)
            built.append(unit.name)
        logger.info("调度完成: 构建 %d 个, 共 %d 个源目录", len(built), len(self.ctx.sources))
        return built

    def build_unit(self, unit: BuildUnit) -> None:
        self._ensure_system_updated()
        self.remove_stale(unit)
        if not self.ctx.config.makepkg_dirs_managed:
            ident = self.ctx.identity
            chown_tree(unit.source.path, ident.uid, ident.gid)
        if self.cleaner is not None:
            self.cleaner.clean(keep=unit.depends)
        self.installer.install(unit)
        self.builder.build(unit)

    def remove_stale(self, unit: BuildUnit) -> list[Path]:
        """删除旧产物（主包和调试包）及其签名，避免与新产物混淆"""
        removed: list[Path] = []
        registry = self.ctx.registry
        for name in unit.produced:
            for path in (registry.path_of(name), registry.debug_path_of(name)):
                if path.exists():
                    removed.append(path)
                remove_with_signature(path)
        if removed:
            logger.info("删除旧产物: %s", ", ".join(p.name for p in removed))
        return removed

    def _ensure_system_updated(self) -> None:
        if self._system_updated:
            return
        logger.info("首次构建前执行系统更新")
        self.ctx.pacman.sync_upgrade()
        self._system_updated = True
