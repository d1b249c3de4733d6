"""运行服务：串起一次完整运行

  build:  建立上下文 -> 调度构建 -> (verify) 最终孤儿清理 -> 仓库同步
  status: 只报告每个源目录的状态
  sync:   只做仓库同步
  clean_orphans: 单独一次孤儿清理

外部工具封装可注入，测试时无需真实的 pacman / makepkg。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from autorepo.core.config import Config
from autorepo.core.context import RunContext
from autorepo.core.identity import IdentityRunner
from autorepo.core.orphans import OrphanCleaner
from autorepo.core.pacman import Pacman
from autorepo.core.repo_sync import RepoSynchronizer, SyncResult
from autorepo.core.scheduler import BuildScheduler, UnitStatus
from autorepo.utils.shell import CommandExecutor, LocalExecutor

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """一次 build 运行的汇总"""

    built: list[str] = field(default_factory=list)
    orphans_removed: list[str] = field(default_factory=list)
    sync: SyncResult | None = None


@dataclass
class UnitState:
    """status 命令的一行"""

    name: str
    path: str
    status: UnitStatus
    files: list[str] = field(default_factory=list)


class RunService:
    """运行入口"""

    def __init__(
        self,
        config: Config,
        *,
        executor: CommandExecutor | None = None,
        runner: IdentityRunner | None = None,
        pacman: Pacman | None = None,
    ) -> None:
        self.config = config
        self.executor = executor or LocalExecutor()
        self._runner = runner
        self._pacman = pacman
        self._ctx: RunContext | None = None

    @property
    def ctx(self) -> RunContext:
        if self._ctx is None:
            self._ctx = RunContext.create(
                self.config,
                executor=self.executor,
                runner=self._runner,
                pacman=self._pacman,
            )
        return self._ctx

    def build(self) -> RunReport:
        ctx = self.ctx
        report = RunReport()
        cleaner = OrphanCleaner(ctx.pacman) if self.config.verify else None

        report.built = BuildScheduler(ctx, cleaner=cleaner).run()
        if cleaner is not None:
            report.orphans_removed = cleaner.clean()
        report.sync = RepoSynchronizer(ctx).sync()
        logger.info(
            "运行完成: 构建 %d 个, 清理孤儿 %d 个, 数据库 -%d/+%d",
            len(report.built), len(report.orphans_removed),
            len(report.sync.removed_records), len(report.sync.added_files),
        )
        return report

    def status(self) -> list[UnitState]:
        ctx = self.ctx
        states: list[UnitState] = []
        for unit, status in BuildScheduler(ctx).plan():
            states.append(UnitState(
                name=unit.name,
                path=unit.source.path,
                status=status,
                files=[ctx.registry.path_of(n).name for n in unit.produced],
            ))
        return states

    def sync(self) -> SyncResult:
        return RepoSynchronizer(self.ctx).sync()

    def clean_orphans(self, keep: list[str] | None = None) -> list[str]:
        pacman = self._pacman or Pacman.from_config(self.config, self.executor)
        return OrphanCleaner(pacman).clean(keep=keep or [])
