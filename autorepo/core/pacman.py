"""pacman / repo-add / repo-remove 调用封装

会修改系统的操作（同步、安装、删除）通过伪终端交互执行，由 PromptResponder 自动应答；
查询类操作通过 CommandExecutor 捕获输出。所有调用都强制 LC_ALL=C，保证输出可解析。
"""

from __future__ import annotations

import logging
from pathlib import Path

from autorepo.core.config import Config
from autorepo.core.exceptions import ExternalToolError, InstallConflictError
from autorepo.core.models import InstalledPackage, strip_version
from autorepo.core.prompts import Echo, PromptResponder
from autorepo.utils.shell import (
    CommandExecutor,
    InteractiveSpawner,
    c_locale_env,
    run_cmd,
    spawn_pty,
)

logger = logging.getLogger(__name__)

# pacman -T 存在未满足依赖时的退出码
DEPTEST_MISSING = 127


def parse_query_info(text: str) -> list[InstalledPackage]:
    """解析 pacman -Qi 输出（空行分隔，每行 'Key : value'，长值以缩进续行）"""
    packages: list[InstalledPackage] = []
    for block in text.split("\n\n"):
        fields: dict[str, str] = {}
        key = ""
        for line in block.splitlines():
            if not line.strip():
                continue
            if line[0].isspace() and key:
                fields[key] += " " + line.strip()
                continue
            k, sep, v = line.partition(" : ")
            if not sep:
                continue
            key = k.strip()
            fields[key] = v.strip()
        name = fields.get("Name")
        if not name:
            continue

        def names(field: str) -> list[str]:
            raw = fields.get(field, "")
            if raw in ("", "None"):
                return []
            return [strip_version(x) for x in raw.split()]

        packages.append(InstalledPackage(
            name=name,
            provides=names("Provides"),
            required_by=names("Required By"),
        ))
    return packages


class Pacman:
    """包管理器与仓库数据库维护命令"""

    def __init__(
        self,
        executor: CommandExecutor,
        *,
        pacman: str = "pacman",
        repo_add: str = "repo-add",
        repo_remove: str = "repo-remove",
        spawner: InteractiveSpawner | None = None,
        echo: Echo | None = None,
    ) -> None:
        self.executor = executor
        self.pacman = pacman
        self.repo_add_bin = repo_add
        self.repo_remove_bin = repo_remove
        self.spawner = spawner or spawn_pty
        self.echo = echo

    @classmethod
    def from_config(cls, config: Config, executor: CommandExecutor) -> Pacman:
        return cls(
            executor,
            pacman=config.pacman,
            repo_add=config.repo_add,
            repo_remove=config.repo_remove,
        )

    # ---- 交互式操作 ----

    def _interactive(self, args: list[str]) -> int:
        cmd = [self.pacman, *args]
        logger.info("执行: %s", " ".join(cmd))
        session = self.spawner(cmd, c_locale_env())
        return PromptResponder(echo=self.echo).drive(session)

    def _checked(self, args: list[str], label: str) -> None:
        rc = self._interactive(args)
        if rc != 0:
            raise ExternalToolError(self.pacman, f"{label}失败 (rc={rc})", returncode=rc)

    def sync_upgrade(self) -> None:
        """一次性系统更新"""
        self._checked(["-Syu"], "系统更新")

    def sync_install(self, names: list[str]) -> None:
        """从同步仓库批量安装外部依赖"""
        if names:
            self._checked(["-S", "--needed", "--asdeps", *names], "安装外部依赖")

    def install_file(self, path: Path) -> None:
        """直接安装本地包文件，失败抛 InstallConflictError（调用方可删除冲突后重试）"""
        rc = self._interactive(["-U", "--needed", "--asdeps", str(path)])
        if rc != 0:
            raise InstallConflictError(
                self.pacman, f"安装本地包失败: {path.name} (rc={rc})", returncode=rc,
            )

    def remove_cascade(self, name: str) -> None:
        """删除已安装包及依赖它的所有包；未安装时什么也不做"""
        if not self.is_installed(name):
            logger.info("%s 未安装，无需删除", name)
            return
        self._checked(["-Rcs", name], f"删除冲突包 {name} 时")

    def remove_recursive(self, names: list[str]) -> None:
        """删除包及其不再需要的依赖"""
        if names:
            self._checked(["-Rns", *names], "删除孤儿包")

    # ---- 查询 ----

    def _query(self, args: list[str], *, empty_rc: tuple[int, ...] = ()) -> list[str]:
        cmd = [self.pacman, *args]
        r = self.executor.execute(cmd, env=c_locale_env())
        if r.returncode != 0 and r.returncode not in empty_rc:
            raise ExternalToolError(
                self.pacman,
                f"查询失败 ({' '.join(args)}, rc={r.returncode}): {r.stderr.strip()[:500]}",
                returncode=r.returncode,
            )
        return [line.strip() for line in r.stdout.splitlines() if line.strip()]

    def is_installed(self, name: str) -> bool:
        """pacman -Q 对未安装的包返回 1"""
        r = self.executor.execute([self.pacman, "-Qq", name], env=c_locale_env())
        if r.returncode not in (0, 1):
            raise ExternalToolError(
                self.pacman, f"查询失败 (-Qq {name}, rc={r.returncode}): {r.stderr.strip()[:500]}",
                returncode=r.returncode,
            )
        return r.returncode == 0

    def missing_deps(self, deps: list[str]) -> list[str]:
        """返回当前系统尚未满足的依赖"""
        if not deps:
            return []
        return self._query(["-T", *deps], empty_rc=(DEPTEST_MISSING,))

    def query_orphans(self) -> list[str]:
        """以依赖身份安装且不再被任何包需要的包"""
        return self._query(["-Qdtq"], empty_rc=(1,))

    def query_deps_installed(self) -> list[str]:
        """所有以依赖身份安装的包"""
        return self._query(["-Qdq"], empty_rc=(1,))

    def query_info(self, names: list[str]) -> list[InstalledPackage]:
        if not names:
            return []
        r = run_cmd(self.executor, [self.pacman, "-Qi", *names], env=c_locale_env(), label="查询包信息")
        return parse_query_info(r.stdout)

    # ---- 仓库数据库 ----

    def repo_remove(self, db: Path, names: list[str]) -> None:
        if names:
            run_cmd(
                self.executor, [self.repo_remove_bin, str(db), *names],
                env=c_locale_env(), label="删除数据库条目",
            )

    def repo_add(
        self, db: Path, files: list[Path], *, sign: bool = False, key: str = "",
    ) -> None:
        if not files:
            return
        cmd = [self.repo_add_bin]
        if sign:
            cmd.append("--sign")
            if key:
                cmd += ["--key", key]
        cmd += [str(db), *(str(f) for f in files)]
        run_cmd(self.executor, cmd, env=c_locale_env(), label="添加数据库条目")
