"""构建命令：build, status"""

import click

from autorepo.cli.common import handle_errors, service
from autorepo.core.scheduler import UnitStatus


def register_commands(main: click.Group) -> None:
    """注册构建相关命令"""
    main.add_command(build)
    main.add_command(status)


_STATUS_LABELS = {
    UnitStatus.CURRENT: "最新",
    UnitStatus.PENDING: "待构建",
    UnitStatus.UNSUPPORTED: "架构不支持",
}


@click.command()
@handle_errors
def build() -> None:
    """构建缺失的包并同步仓库数据库"""
    report = service().build()
    sync = report.sync
    click.echo(f"已构建: {' '.join(report.built) or '无'}")
    if report.orphans_removed:
        click.echo(f"已删除孤儿依赖: {' '.join(report.orphans_removed)}")
    if sync is not None and sync.changed:
        click.echo(
            f"数据库: 删除 {len(sync.removed_records)} 条, 添加 {len(sync.added_files)} 条, "
            f"清理文件 {len(sync.deleted_files)} 个"
        )


@click.command()
@click.option("--pending", is_flag=True, default=False, help="只显示待构建的源目录")
@handle_errors
def status(pending: bool) -> None:
    """列出每个源目录的构建状态"""
    for state in service().status():
        if pending and state.status is not UnitStatus.PENDING:
            continue
        label = _STATUS_LABELS[state.status]
        click.echo(f"  {state.name:30s} [{label}] {' '.join(state.files)}")
