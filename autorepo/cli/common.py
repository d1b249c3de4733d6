"""CLI 公共工具"""

from __future__ import annotations

import functools
import logging
import sys
from typing import Any, Callable, TypeVar

import click

from autorepo.core.config import init_config
from autorepo.core.exceptions import AutoRepoError
from autorepo.services.run_service import RunService

logger = logging.getLogger("autorepo")

F = TypeVar("F", bound=Callable[..., Any])


def handle_errors(func: F) -> F:
    """致命错误统一以 ERROR 输出并以状态码 1 退出"""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except AutoRepoError as e:
            logger.error("[%s] %s", e.code, e)
            sys.exit(1)

    return wrapper  # type: ignore[return-value]


def service() -> RunService:
    """按 main 上的 --config 加载配置并构造 RunService"""
    ctx = click.get_current_context()
    config_path = ctx.find_root().obj.get("config_path", "")
    return RunService(init_config(config_path))
