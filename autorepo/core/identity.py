"""以受限构建账户身份执行命令

IdentityRunner 是平台能力的抽象：
- run(): 一次性执行（makepkg --printsrcinfo、检查脚本），可捕获输出
- build(): 派生子进程执行 makepkg 构建，返回退出码

build() 的状态机: NotStarted -> Forked -> Reaped。
父进程在等待期间忽略 SIGINT/SIGQUIT，避免操作员中断导致包文件写到一半；
回收子进程后恢复原有处理函数。
"""

from __future__ import annotations

import logging
import os
import pwd
import signal
import subprocess
from typing import Protocol

from autorepo.core.exceptions import ConfigError
from autorepo.core.models import BuildIdentity
from autorepo.utils.shell import CommandResult

logger = logging.getLogger(__name__)

# 子进程 exec 失败时的退出码（与 shell 的 "command not found" 一致）
EXEC_FAILED = 127


def resolve_identity(user: str) -> BuildIdentity:
    """从账户数据库解析构建账户"""
    try:
        pw = pwd.getpwnam(user)
    except KeyError as e:
        raise ConfigError(f"构建账户不存在: {user}") from e
    return BuildIdentity(name=pw.pw_name, uid=pw.pw_uid, gid=pw.pw_gid, home=pw.pw_dir)


class IdentityRunner(Protocol):
    """以构建账户身份执行命令的能力"""

    identity: BuildIdentity

    def run(
        self, cmd: list[str], *, cwd: str | None = None, capture: bool = False,
    ) -> CommandResult:
        ...

    def build(self, source_dir: str, cmd: list[str]) -> int:
        ...


def identity_env(identity: BuildIdentity) -> dict[str, str]:
    env = dict(os.environ)
    env["HOME"] = identity.home
    env["USER"] = env["LOGNAME"] = identity.name
    return env


class PosixIdentityRunner:
    """基于 setgid/setuid 的默认实现（需以 root 运行）"""

    def __init__(self, identity: BuildIdentity) -> None:
        self.identity = identity

    def run(
        self, cmd: list[str], *, cwd: str | None = None, capture: bool = False,
    ) -> CommandResult:
        ident = self.identity
        logger.debug("以 %s 身份执行: %s", ident.name, " ".join(cmd))
        r = subprocess.run(
            cmd, cwd=cwd, env=identity_env(ident),
            user=ident.uid, group=ident.gid, extra_groups=[],
            capture_output=capture, text=True, check=False,
        )
        return CommandResult(
            returncode=r.returncode, stdout=r.stdout or "", stderr=r.stderr or "",
        )

    def build(self, source_dir: str, cmd: list[str]) -> int:
        ident = self.identity
        env = identity_env(ident)
        pid = os.fork()
        if pid == 0:
            self._child(source_dir, cmd, env)

        logger.debug("构建子进程已启动: pid=%d", pid)
        old_int = signal.signal(signal.SIGINT, signal.SIG_IGN)
        old_quit = signal.signal(signal.SIGQUIT, signal.SIG_IGN)
        try:
            _, status = os.waitpid(pid, 0)
        finally:
            signal.signal(signal.SIGINT, old_int)
            signal.signal(signal.SIGQUIT, old_quit)
        return os.waitstatus_to_exitcode(status)

    def _child(self, source_dir: str, cmd: list[str], env: dict[str, str]) -> None:
        """子进程：先降组再降用户，随后 exec；任何失败都以 EXEC_FAILED 退出"""
        ident = self.identity
        try:
            os.setgroups([])
            os.setgid(ident.gid)
            os.setuid(ident.uid)
            os.chdir(source_dir)
            os.execvpe(cmd[0], cmd, env)
        except OSError as e:
            os.write(2, f"autorepo: 无法以 {ident.name} 身份执行 {cmd[0]}: {e}\n".encode())
        finally:
            os._exit(EXEC_FAILED)
