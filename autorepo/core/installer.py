"""构建依赖的闭包计算与安装

1. 分类: 依赖经注册表分为「本地」（直接产出或由本地包提供）和「外部」
2. 闭包: 本地依赖自身可能依赖其他本地包（未被当前包声明），
   从每个已构建产物的 .PKGINFO 出发做深度优先遍历，按后序排列，
   保证任何包都排在它依赖的本地包之后。已访问集合保证去重并截断依赖环
3. 安装: 外部依赖一次性 pacman -S；本地依赖按队列顺序逐个 pacman -U。
   本地安装失败时删除已安装的同名包（连同依赖它的包）后重试一次，
   再失败即致命
"""

from __future__ import annotations

import logging

from autorepo.core.context import RunContext
from autorepo.core.exceptions import ConfigError, ExternalToolError, InstallConflictError
from autorepo.core.models import BuildUnit, strip_version

logger = logging.getLogger(__name__)


class DependencyInstaller:
    """为待构建的包准备依赖"""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def partition(self, unit: BuildUnit) -> tuple[list[str], list[str]]:
        """返回 (本地包名, 外部依赖名)，均已去重且保持声明顺序；不包含本包自身的产出"""
        local: list[str] = []
        external: list[str] = []
        own = set(unit.produced)
        for dep in unit.depends:
            name = self.ctx.registry.resolve_local(dep)
            if name is None:
                bare = strip_version(dep)
                if bare not in external:
                    external.append(bare)
            elif name not in own and name not in local:
                local.append(name)
        return local, external

    def _artifact_depends(self, name: str) -> list[str]:
        registry = self.ctx.registry
        if not registry.is_built(name):
            raise ConfigError(
                f"本地依赖 {name} 尚未构建: {registry.path_of(name)}，"
                "请检查 packages 中的构建顺序"
            )
        return self.ctx.archives.depends_of(registry.path_of(name))

    def closure(self, local: list[str], exclude: set[str] | None = None) -> list[str]:
        """计算本地依赖的传递闭包（深度优先后序），被依赖者排在依赖者之前"""
        seen = set(exclude or ())
        order: list[str] = []

        def visit(name: str) -> None:
            if name in seen:
                return
            seen.add(name)
            for dep in self._artifact_depends(name):
                target = self.ctx.registry.resolve_local(dep)
                if target is not None:
                    visit(target)
            order.append(name)

        for name in local:
            visit(name)
        extra = [name for name in order if name not in local]
        if extra:
            logger.debug("闭包新增本地依赖: %s", ", ".join(extra))
        return order

    def install(self, unit: BuildUnit) -> list[str]:
        """安装构建依赖，返回按安装顺序排列的本地包名"""
        local, external = self.partition(unit)
        queue = self.closure(local, exclude=set(unit.produced))

        missing = self.ctx.pacman.missing_deps(external)
        if missing:
            logger.info("[%s] 安装外部依赖: %s", unit.name, " ".join(missing))
            self.ctx.pacman.sync_install(missing)

        for name in queue:
            self._install_local(name)
        if queue:
            logger.info("[%s] 已安装本地依赖: %s", unit.name, " ".join(queue))
        return queue

    def _install_local(self, name: str) -> None:
        path = self.ctx.registry.path_of(name)
        try:
            self.ctx.pacman.install_file(path)
        except InstallConflictError:
            logger.warning("安装 %s 失败，删除已安装的冲突包后重试", path.name)
            self.ctx.pacman.remove_cascade(name)
            try:
                self.ctx.pacman.install_file(path)
            except InstallConflictError as e:
                raise ExternalToolError(
                    e.tool, f"删除冲突包后仍无法安装 {path.name}", returncode=e.returncode,
                ) from e
