"""集中配置管理

从 YAML 文件加载为 Config 数据类。核心组件通过 RunContext 显式拿到 Config，
get_config() / init_config() 只供 CLI 入口使用。

配置示例:
    target_dir: /srv/repo/x86_64
    repo_name: custom
    build_user: pkgbuilder
    packages:
      - pkgs/libfoo
      - pkgs/foo
    verify: true
    sign: true
    sign_key: 0123ABCD
"""

from __future__ import annotations

import logging
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from autorepo.core.exceptions import ConfigError
from autorepo.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/etc/autorepo/autorepo.yml"

_REQUIRED = ("target_dir", "repo_name", "build_user", "packages")


@dataclass
class Config:
    """运行配置"""

    # 仓库
    target_dir: str = ""
    repo_name: str = ""
    db_ext: str = ".db.tar.gz"
    pkgext: str = ".pkg.tar.zst"

    # 构建
    build_user: str = ""
    packages: list[str] = field(default_factory=list)
    arch: str = field(default_factory=platform.machine)
    install_checkdepends: bool = True
    makepkg_dirs_managed: bool = False
    check_script: str = ""

    # 孤儿包清理（verify 模式）
    verify: bool = False

    # 签名
    sign: bool = False
    sign_key: str = ""

    # 外部工具
    pacman: str = "pacman"
    makepkg: str = "makepkg"
    repo_add: str = "repo-add"
    repo_remove: str = "repo-remove"
    gpg: str = "gpg"
    bsdtar: str = "bsdtar"

    # 未识别的配置项
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_file(cls, path: str = DEFAULT_CONFIG_PATH) -> Config:
        """从 YAML 文件加载并校验配置

        packages 中的相对路径以配置文件所在目录为基准。
        """
        p = Path(path)
        if not p.is_file():
            raise ConfigError(f"配置文件不存在: {path}")
        try:
            data = load_yaml(p)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"配置文件无法解析: {path}: {e}") from e

        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        if extra:
            logger.debug("忽略未识别的配置项: %s", ", ".join(sorted(extra)))

        packages = matched.get("packages")
        if packages is not None:
            if not isinstance(packages, list):
                raise ConfigError(f"{path}: packages 必须是列表")
            base = p.parent
            matched["packages"] = [
                str((base / str(pkg)).resolve()) for pkg in packages if pkg
            ]

        cfg = cls(**matched)
        cfg.extra = extra
        cfg.validate(source=str(path))
        return cfg

    def validate(self, source: str = "<config>") -> None:
        """检查必填字段"""
        for name in _REQUIRED:
            if not getattr(self, name):
                raise ConfigError(f"{source}: 缺少必填配置项 '{name}'")
        if not self.pkgext.startswith("."):
            raise ConfigError(f"{source}: pkgext 必须以 '.' 开头: {self.pkgext}")
        if self.sign and not self.gpg:
            raise ConfigError(f"{source}: 启用签名时必须配置 gpg")

    @property
    def db_path(self) -> Path:
        """仓库数据库归档路径，如 <target>/custom.db.tar.gz"""
        return Path(self.target_dir) / f"{self.repo_name}{self.db_ext}"

    @property
    def db_link_path(self) -> Path:
        """由 repo-add 重新生成的数据库短名索引，如 <target>/custom.db"""
        return Path(self.target_dir) / f"{self.repo_name}.db"


_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（必须先 init_config）"""
    if _current is None:
        raise ConfigError("配置尚未加载")
    return _current


def init_config(path: str = "") -> Config:
    """从文件初始化全局配置；未指定路径时依次尝试 $AUTOREPO_CONFIG 与默认路径"""
    global _current  # noqa: PLW0603
    path = path or os.getenv("AUTOREPO_CONFIG", "") or DEFAULT_CONFIG_PATH
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current
