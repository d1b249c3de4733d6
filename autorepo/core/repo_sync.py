"""仓库数据库同步

同步后保证：数据库中每个记录都对应一个存在且最新的产物，反之亦然。

1. 有效文件集合 = 每个预期产物的主文件名 + 磁盘上确实存在的调试包文件名
2. 文件清扫: 输出目录中以 pkgext 结尾但不在有效集合中的文件连同签名一起删除
   （配置中已移除的包由此清理）
3. 数据库清扫: 对每条记录按「名字-版本-当前架构」重建文件名，不存在则回退到 any；
   文件缺失或文件修改时间晚于记录时间 -> 删除该记录；否则记录视为最新
4. 先 repo-remove 过期记录，再 repo-add 尚未收录的产物；批次为空则不调用
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from autorepo.core.builder import remove_with_signature
from autorepo.core.context import RunContext
from autorepo.core.models import ANY_ARCH, DbRecord, artifact_filename

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """一次同步的结果"""

    deleted_files: list[str] = field(default_factory=list)
    removed_records: list[str] = field(default_factory=list)
    added_files: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.deleted_files or self.removed_records or self.added_files)


def record_path(record: DbRecord, target_dir: Path, carch: str, pkgext: str) -> Path:
    """记录对应的产物路径：优先当前架构，不存在时回退到 any"""
    path = target_dir / artifact_filename(record.name, record.version, carch, pkgext)
    if path.exists():
        return path
    return target_dir / artifact_filename(record.name, record.version, ANY_ARCH, pkgext)


def is_stale(record: DbRecord, path: Path) -> bool:
    """文件缺失，或文件修改时间严格晚于记录时间"""
    if not path.is_file():
        return True
    return int(path.stat().st_mtime) > record.mtime


class RepoSynchronizer:
    """让输出目录和仓库数据库与实际构建结果一致"""

    def __init__(self, ctx: RunContext) -> None:
        self.ctx = ctx
        self.target = Path(ctx.config.target_dir)

    def valid_files(self) -> list[str]:
        names: dict[str, None] = {}
        for artifact in self.ctx.registry.artifacts():
            names.setdefault(artifact.filename, None)
            if (self.target / artifact.debug_filename).is_file():
                names.setdefault(artifact.debug_filename, None)
        return list(names)

    def sweep_files(self, valid: list[str]) -> list[str]:
        """删除不在有效集合中的包文件及其签名"""
        keep = set(valid)
        pkgext = self.ctx.config.pkgext
        deleted: list[str] = []
        if not self.target.is_dir():
            return deleted
        for path in sorted(self.target.iterdir()):
            if not path.name.endswith(pkgext) or path.name in keep:
                continue
            if not path.is_file() and not path.is_symlink():
                continue
            remove_with_signature(path)
            deleted.append(path.name)
        if deleted:
            logger.info("清理 %d 个失效包文件: %s", len(deleted), ", ".join(deleted))
        return deleted

    def sweep_records(self, records: list[DbRecord]) -> tuple[list[str], set[str]]:
        """返回 (需删除的记录包名, 已收录且最新的文件名)"""
        cfg = self.ctx.config
        stale: list[str] = []
        current: set[str] = set()
        for record in records:
            path = record_path(record, self.target, cfg.arch, cfg.pkgext)
            if is_stale(record, path):
                logger.debug("过期记录: %s", record.key)
                if record.name not in stale:
                    stale.append(record.name)
            else:
                current.add(path.name)
        return stale, current

    def sync(self) -> SyncResult:
        cfg = self.ctx.config
        result = SyncResult()

        valid = self.valid_files()
        result.deleted_files = self.sweep_files(valid)

        records = self.ctx.archives.read_db(cfg.db_path)
        result.removed_records, current = self.sweep_records(records)
        to_add = [
            self.target / name for name in valid
            if name not in current and (self.target / name).is_file()
        ]
        result.added_files = [p.name for p in to_add]

        if result.removed_records or to_add:
            self._drop_derived_index()
        if result.removed_records:
            logger.info("从数据库删除: %s", " ".join(result.removed_records))
            self.ctx.pacman.repo_remove(cfg.db_path, result.removed_records)
        if to_add:
            logger.info("向数据库添加: %s", " ".join(result.added_files))
            self.ctx.pacman.repo_add(cfg.db_path, to_add, sign=cfg.sign, key=cfg.sign_key)
        if not result.changed:
            logger.info("仓库数据库已是最新: %s", cfg.db_path.name)
        return result

    def _drop_derived_index(self) -> None:
        """删除数据库短名索引，由 repo-add / repo-remove 重新生成"""
        cfg = self.ctx.config
        link = cfg.db_link_path
        if link != cfg.db_path and (link.is_symlink() or link.exists()):
            link.unlink()
