"""交互式提示自动应答

pacman 在安装/删除时会询问冲突删除、替换、编号选择和 Y/n 确认。无人值守运行时
由一张有序的 {正则 -> 回复} 表来应答：每收到一块输出就追加到缓冲区，按顺序匹配，
命中第一条规则即写入回复并清空缓冲区。所有原始字节同时转发给操作员的 stderr。

规则表是纯数据，PromptResponder 只依赖 InteractiveSession 协议，
测试时用脚本化的假会话即可验证应答行为。
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from typing import Callable

from autorepo.utils.shell import InteractiveSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptRule:
    """一条应答规则"""

    name: str
    pattern: re.Pattern[bytes]
    reply: bytes


def rule(name: str, pattern: bytes, reply: bytes) -> PromptRule:
    return PromptRule(name=name, pattern=re.compile(pattern), reply=reply)


# 顺序敏感：冲突/替换必须排在通用确认之前
DEFAULT_RULES: tuple[PromptRule, ...] = (
    rule("conflict", rb":: \S+ and \S+ are in conflict.*Remove \S+\? \[y/N\]", b"y\n"),
    rule("replace", rb":: Replace \S+ with \S+\? \[Y/n\]", b"y\n"),
    rule("choice", rb"Enter a (?:selection|number) \(default=[^)]*\):", b"\n"),
    rule("confirm", rb"\[Y/n\]", b"y\n"),
    rule("confirm_no_default", rb"\[y/N\]", b"y\n"),
)

Echo = Callable[[bytes], None]


def _stderr_echo(data: bytes) -> None:
    sys.stderr.buffer.write(data)
    sys.stderr.buffer.flush()


class PromptResponder:
    """驱动一个交互式会话直到结束，返回其退出码"""

    # 缓冲区上限：长时间没有提示时只保留末尾部分
    MAX_BUFFER = 64 * 1024

    def __init__(
        self,
        rules: tuple[PromptRule, ...] = DEFAULT_RULES,
        echo: Echo | None = None,
    ) -> None:
        self.rules = rules
        self.echo = echo or _stderr_echo
        self.answered: list[str] = []

    def match(self, buffer: bytes) -> PromptRule | None:
        for r in self.rules:
            if r.pattern.search(buffer):
                return r
        return None

    def drive(self, session: InteractiveSession) -> int:
        buffer = b""
        while True:
            chunk = session.read()
            if not chunk:
                break
            self.echo(chunk)
            buffer = (buffer + chunk)[-self.MAX_BUFFER:]
            hit = self.match(buffer)
            if hit is None:
                continue
            logger.debug("自动应答提示 [%s]", hit.name)
            self.answered.append(hit.name)
            session.write(hit.reply)
            buffer = b""
        return session.wait()
