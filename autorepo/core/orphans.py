"""孤儿依赖清理（verify 模式）

两类可删除的包:
  - pacman -Qdtq 报告的孤儿：以依赖身份安装且无人需要
  - 孤儿环：X 和 Y 互相依赖，且各自唯一的反向依赖就是对方。
    二者都有反向依赖，-Qdtq 看不到它们；每个环只需删除其中一个，
    递归删除会连带另一个

keep 列表中的名字可能只是虚拟提供名，需要展开为实际提供它的已安装包。
删除后会产生新的孤儿，因此循环查询直到没有可删除的包为止。
"""

from __future__ import annotations

import logging
from typing import Iterable

from autorepo.core.models import InstalledPackage, strip_version
from autorepo.core.pacman import Pacman

logger = logging.getLogger(__name__)


def find_orphan_cycles(packages: list[InstalledPackage]) -> list[tuple[str, str]]:
    """找出长度为 2 且没有外部锚点的互相依赖对，每对按名字排序只返回一次"""
    by_name = {p.name: p for p in packages}
    pairs: list[tuple[str, str]] = []
    for pkg in packages:
        if len(pkg.required_by) != 1:
            continue
        other = by_name.get(pkg.required_by[0])
        if other is None or other.name == pkg.name:
            continue
        if other.required_by == [pkg.name] and pkg.name < other.name:
            pairs.append((pkg.name, other.name))
    return pairs


def expand_keep(keep: Iterable[str], packages: list[InstalledPackage]) -> set[str]:
    """keep 中的名字 -> 名字或提供项命中的已安装包"""
    wanted = {strip_version(k) for k in keep}
    if not wanted:
        return set()
    return {
        p.name for p in packages
        if p.name in wanted or any(v in wanted for v in p.provides)
    }


class OrphanCleaner:
    """循环删除孤儿包和孤儿环"""

    def __init__(self, pacman: Pacman) -> None:
        self.pacman = pacman

    def removable(self, keep: Iterable[str] = ()) -> list[str]:
        """计算本轮可删除的包"""
        orphans = self.pacman.query_orphans()
        installed = self.pacman.query_info(self.pacman.query_deps_installed())
        kept = expand_keep(keep, installed)

        targets = [name for name in orphans if name not in kept]
        for first, second in find_orphan_cycles(installed):
            if first in kept or second in kept:
                continue
            if first not in targets and second not in targets:
                logger.debug("发现孤儿环: %s <-> %s", first, second)
                targets.append(first)
        return targets

    def clean(self, keep: Iterable[str] = ()) -> list[str]:
        """删除全部可删除的包，返回本次删除请求涉及的包名"""
        keep = list(keep)
        removed: list[str] = []
        while True:
            targets = self.removable(keep)
            if not targets:
                break
            repeated = [t for t in targets if t in removed]
            if repeated:
                logger.warning("以下包删除后仍被报告为孤儿，停止清理: %s", " ".join(repeated))
                break
            logger.info("删除孤儿依赖: %s", " ".join(targets))
            self.pacman.remove_recursive(targets)
            removed.extend(targets)
        return removed
