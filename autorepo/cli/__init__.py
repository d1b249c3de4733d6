"""autorepo 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

import os

import click

from autorepo import __version__
from autorepo.utils.logger import setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default="", help="配置文件路径（默认 $AUTOREPO_CONFIG 或 /etc/autorepo/autorepo.yml）")
@click.option("--log-level", default=None, help="日志级别（默认 $AUTOREPO_LOG_LEVEL 或 INFO）")
@click.option("--json-log", is_flag=True, default=False, help="输出 JSON 格式日志")
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str | None, json_log: bool) -> None:
    """autorepo - 无人值守的软件包构建与本地仓库维护"""
    setup_logging(
        level=log_level or os.getenv("AUTOREPO_LOG_LEVEL", "INFO"),
        json_output=json_log or os.getenv("AUTOREPO_LOG_JSON", "") == "1",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# 注册各领域子命令
from autorepo.cli.cmd_build import register_commands as _reg_build  # noqa: E402
from autorepo.cli.cmd_repo import register_commands as _reg_repo  # noqa: E402

_reg_build(main)
_reg_repo(main)
