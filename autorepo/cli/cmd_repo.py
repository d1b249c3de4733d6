"""仓库维护命令：sync, clean-orphans"""

import click

from autorepo.cli.common import handle_errors, service


def register_commands(main: click.Group) -> None:
    """注册仓库维护相关命令"""
    main.add_command(sync)
    main.add_command(clean_orphans)


@click.command()
@handle_errors
def sync() -> None:
    """仅同步仓库数据库与输出目录"""
    result = service().sync()
    if not result.changed:
        click.echo("仓库已是最新。")
        return
    for name in result.deleted_files:
        click.echo(f"  删除文件: {name}")
    for name in result.removed_records:
        click.echo(f"  删除记录: {name}")
    for name in result.added_files:
        click.echo(f"  添加记录: {name}")


@click.command(name="clean-orphans")
@click.option("--keep", multiple=True, help="保留的包名或提供名（可多次指定）")
@handle_errors
def clean_orphans(keep: tuple[str, ...]) -> None:
    """删除孤儿依赖（含互相依赖的孤儿环）"""
    removed = service().clean_orphans(list(keep))
    if removed:
        click.echo(f"已删除: {' '.join(removed)}")
    else:
        click.echo("没有可删除的孤儿依赖。")
