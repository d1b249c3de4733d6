"""子进程执行工具

两类调用方式:
- CommandExecutor: 一次性执行并捕获输出（查询、签名、归档读取、数据库维护）
- InteractiveSession: 通过伪终端驱动的交互式会话（pacman 安装/删除，见 core.prompts）

两者都是可注入的协议，测试时替换为假实现即可，无需真实进程。
所有外部工具都不设超时：外部工具挂起即整个运行挂起。
"""

from __future__ import annotations

import errno
import logging
import os
import pty
import subprocess
from dataclasses import dataclass
from typing import Callable, Protocol

from autorepo.core.exceptions import ExternalToolError

logger = logging.getLogger(__name__)


# =========================================================================
# 一次性命令
# =========================================================================

@dataclass
class CommandResult:
    """命令执行结果（与 subprocess 解耦）"""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandExecutor(Protocol):
    """命令执行器协议"""

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """执行命令并返回结果"""
        ...


class LocalExecutor:
    """本地命令执行器（默认实现）"""

    def execute(
        self,
        cmd: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        logger.debug("执行: %s", " ".join(cmd))
        r = subprocess.run(
            cmd, capture_output=True, text=True,
            cwd=cwd, env=env, check=False,
        )
        return CommandResult(returncode=r.returncode, stdout=r.stdout, stderr=r.stderr)


def run_cmd(
    executor: CommandExecutor,
    cmd: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    label: str = "",
) -> CommandResult:
    """执行命令，非零退出抛 ExternalToolError

    Args:
        executor: 命令执行器
        cmd: 参数列表
        cwd: 工作目录
        env: 环境变量（不传则继承当前进程）
        label: 错误信息中的上下文说明
    """
    r = executor.execute(cmd, cwd=cwd, env=env)
    if not r.success:
        context = f"{label}失败" if label else "执行失败"
        raise ExternalToolError(
            os.path.basename(cmd[0]),
            f"{context} (rc={r.returncode}): {r.stderr.strip()[:500]}",
            returncode=r.returncode,
        )
    return r


def c_locale_env(extra: dict[str, str] | None = None) -> dict[str, str]:
    """继承当前环境并强制 LC_ALL=C，保证工具输出可被解析"""
    env = {**os.environ, "LC_ALL": "C"}
    if extra:
        env.update(extra)
    return env


# =========================================================================
# 交互式会话
# =========================================================================

class InteractiveSession(Protocol):
    """交互式子进程会话协议

    read() 返回空字节表示输出结束。
    """

    def read(self) -> bytes:
        ...

    def write(self, data: bytes) -> None:
        ...

    def wait(self) -> int:
        ...


InteractiveSpawner = Callable[[list[str], "dict[str, str] | None"], InteractiveSession]


class PtySession:
    """伪终端会话：子进程的 stdin/stdout/stderr 都接在同一个 pty 上"""

    CHUNK_SIZE = 4096

    def __init__(self, proc: subprocess.Popen[bytes], master_fd: int) -> None:
        self._proc = proc
        self._fd = master_fd
        self._closed = False

    def read(self) -> bytes:
        try:
            return os.read(self._fd, self.CHUNK_SIZE)
        except OSError as e:
            # 子进程退出后 Linux 上读 master 端返回 EIO
            if e.errno == errno.EIO:
                return b""
            raise

    def write(self, data: bytes) -> None:
        os.write(self._fd, data)

    def wait(self) -> int:
        rc = self._proc.wait()
        if not self._closed:
            os.close(self._fd)
            self._closed = True
        return rc


def spawn_pty(cmd: list[str], env: dict[str, str] | None = None) -> PtySession:
    """在新的伪终端中启动命令"""
    master_fd, slave_fd = pty.openpty()
    try:
        proc = subprocess.Popen(
            cmd, stdin=slave_fd, stdout=slave_fd, stderr=slave_fd, env=env,
        )
    except OSError:
        os.close(master_fd)
        raise
    finally:
        os.close(slave_fd)
    logger.debug("交互式启动: %s (pid=%d)", " ".join(cmd), proc.pid)
    return PtySession(proc, master_fd)
