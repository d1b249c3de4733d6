"""包文件与仓库数据库归档读取

两类归档都通过 bsdtar 读取（产物通常是 zstd 压缩，标准库不一定支持）:
  - 产物内嵌的 .PKGINFO: 'key = value' 文本，关心其中重复的 depend 行
  - 仓库数据库: 每个包一个 <name>-<version>/ 目录，内含 desc 文件；
    desc 在归档中的修改时间即该记录的时间戳（repo-add 写入时刻）
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from autorepo.core.models import DbRecord, strip_version
from autorepo.utils.shell import CommandExecutor, run_cmd

logger = logging.getLogger(__name__)

PKGINFO = ".PKGINFO"


def parse_pkginfo_depends(text: str) -> list[str]:
    """提取 .PKGINFO 中的 depend 项（已去掉版本限定）"""
    depends: list[str] = []
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep or key.strip() != "depend":
            continue
        name = strip_version(value.strip())
        if name and name not in depends:
            depends.append(name)
    return depends


def parse_desc(text: str) -> dict[str, list[str]]:
    """解析数据库 desc 文件: %KEY% 行后跟若干值行，以空行结束"""
    fields: dict[str, list[str]] = {}
    key = ""
    for line in text.splitlines():
        line = line.strip()
        if not line:
            key = ""
            continue
        if line.startswith("%") and line.endswith("%") and len(line) > 2:
            key = line[1:-1]
            fields[key] = []
        elif key:
            fields[key].append(line)
    return fields


class ArchiveReader:
    """通过 bsdtar 读取包和数据库归档，产物依赖按路径缓存"""

    def __init__(self, executor: CommandExecutor, bsdtar: str = "bsdtar") -> None:
        self.executor = executor
        self.bsdtar = bsdtar
        self._depends: dict[Path, list[str]] = {}

    def depends_of(self, path: Path) -> list[str]:
        if path not in self._depends:
            r = run_cmd(
                self.executor, [self.bsdtar, "-xOqf", str(path), PKGINFO],
                label=f"读取 {path.name} 元数据",
            )
            self._depends[path] = parse_pkginfo_depends(r.stdout)
        return self._depends[path]

    def read_db(self, db: Path) -> list[DbRecord]:
        """读取数据库中的全部记录；数据库不存在时返回空列表"""
        if not db.is_file():
            logger.info("仓库数据库不存在，将新建: %s", db)
            return []

        records: list[DbRecord] = []
        with tempfile.TemporaryDirectory(prefix="autorepo-db-") as tmp:
            run_cmd(
                self.executor, [self.bsdtar, "-xf", str(db), "-C", tmp],
                label=f"解包数据库 {db.name}",
            )
            for entry in sorted(Path(tmp).iterdir()):
                desc = entry / "desc"
                if not desc.is_file():
                    continue
                fields = parse_desc(desc.read_text(encoding="utf-8", errors="replace"))
                name = (fields.get("NAME") or [""])[0]
                version = (fields.get("VERSION") or [""])[0]
                if not name or not version:
                    logger.warning("跳过不完整的数据库记录: %s", entry.name)
                    continue
                records.append(DbRecord(
                    name=name,
                    version=version,
                    mtime=int(desc.stat().st_mtime),
                ))
        logger.debug("数据库 %s 中共有 %d 条记录", db.name, len(records))
        return records
