"""以构建账户身份运行 makepkg，并对产物做构建后处理

流程: 构建 -> 检查产物存在且非空 -> 可选检查脚本 -> 可选签名。
任一步失败都致命；检查脚本拒绝或签名失败时先删除产物，保证下次运行重新构建。
"""

from __future__ import annotations

import logging
from pathlib import Path

from autorepo.core.context import RunContext
from autorepo.core.exceptions import ExternalToolError, IntegrityError
from autorepo.core.models import BuildUnit
from autorepo.utils.shell import run_cmd

logger = logging.getLogger(__name__)

SIG_SUFFIX = ".sig"


def signature_of(path: Path) -> Path:
    return path.with_name(path.name + SIG_SUFFIX)


def remove_with_signature(path: Path) -> None:
    path.unlink(missing_ok=True)
    signature_of(path).unlink(missing_ok=True)


class PackageBuilder:
    """构建一个 BuildUnit 并校验、签名其产物"""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx

    def command(self) -> list[str]:
        """强制重建、构建后清理、不签名（签名由本工具统一处理）"""
        return [self.ctx.config.makepkg, "--force", "--clean", "--nosign"]

    def build(self, unit: BuildUnit) -> list[Path]:
        """构建并返回产物路径"""
        logger.info("开始构建: %s (%s)", unit.name, unit.source.path)
        rc = self.ctx.runner.build(unit.source.path, self.command())
        if rc != 0:
            raise ExternalToolError(
                self.ctx.config.makepkg, f"构建 {unit.name} 失败 (rc={rc})", returncode=rc,
            )

        paths = self.verify_outputs(unit)
        if self.ctx.config.check_script:
            for path in paths:
                self.check(unit, path)
        if self.ctx.config.sign:
            for name, path in zip(unit.produced, paths):
                self.sign(path, self.ctx.registry.debug_path_of(name))
        logger.info("构建完成: %s -> %s", unit.name, ", ".join(p.name for p in paths))
        return paths

    def verify_outputs(self, unit: BuildUnit) -> list[Path]:
        """makepkg 报告成功后，每个声明的产物都必须存在且非空"""
        paths: list[Path] = []
        for name in unit.produced:
            path = self.ctx.registry.path_of(name)
            if not path.is_file() or path.stat().st_size == 0:
                raise IntegrityError(
                    f"{unit.name} 构建成功但产物缺失: {path.name}"
                    "（检查 pkgext / 架构 / 版本是否与 makepkg 配置一致）",
                    path=str(path),
                )
            paths.append(path)
        return paths

    def check(self, unit: BuildUnit, path: Path) -> None:
        """以构建账户身份运行检查脚本，拒绝则删除产物"""
        script = self.ctx.config.check_script
        r = self.ctx.runner.run([script, str(path)], cwd=unit.source.path)
        if not r.success:
            remove_with_signature(path)
            raise IntegrityError(
                f"检查脚本拒绝产物 {path.name} (rc={r.returncode})，已删除", path=str(path),
            )

    def sign(self, path: Path, debug_path: Path | None = None) -> None:
        """为产物（及存在的调试包）生成分离签名，失败则删除新构建的产物"""
        targets = [path]
        if debug_path is not None and debug_path.is_file() and debug_path != path:
            targets.append(debug_path)
        for target in targets:
            signature_of(target).unlink(missing_ok=True)
            try:
                run_cmd(self.ctx.executor, self._sign_cmd(target), label=f"签名 {target.name}")
            except ExternalToolError:
                for built in targets:
                    remove_with_signature(built)
                logger.error("签名失败，已删除产物: %s", ", ".join(t.name for t in targets))
                raise

    def _sign_cmd(self, target: Path) -> list[str]:
        cfg = self.ctx.config
        cmd = [cfg.gpg, "--batch", "--yes", "--detach-sign", "--no-armor"]
        if cfg.sign_key:
            cmd += ["--local-user", cfg.sign_key]
        cmd += ["--output", str(signature_of(target)), str(target)]
        return cmd
