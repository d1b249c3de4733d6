"""本地包注册表

每次运行在调度前由全部源目录构建一次，之后只读:
  - 包名 -> ExpectedArtifact
  - 提供名 -> 产出该名字的包名

用于把任意依赖字符串分类为「本地直接产出」「由本地包提供」或「外部」。
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from autorepo.core.models import ExpectedArtifact, PackageSource, strip_version

logger = logging.getLogger(__name__)


class DepKind(Enum):
    OURS = "ours"
    PROVIDED = "provided"
    EXTERNAL = "external"


class Registry:
    """包名 / 提供名索引"""

    def __init__(self, target_dir: str, carch: str, pkgext: str) -> None:
        self.target_dir = Path(target_dir)
        self.carch = carch
        self.pkgext = pkgext
        self._artifacts: dict[str, ExpectedArtifact] = {}
        self._providers: dict[str, str] = {}
        self._sources: dict[str, PackageSource] = {}

    @classmethod
    def from_sources(
        cls, sources: list[PackageSource], *,
        target_dir: str, carch: str, pkgext: str,
    ) -> Registry:
        registry = cls(target_dir, carch, pkgext)
        for source in sources:
            registry._add(source)
        logger.info(
            "注册表: %d 个源目录, %d 个包, %d 个提供名",
            len(sources), len(registry._artifacts), len(registry._providers),
        )
        return registry

    def _add(self, source: PackageSource) -> None:
        for name in source.names:
            if name in self._artifacts:
                logger.warning(
                    "包 %s 被多个源目录声明，以后者为准: %s", name, source.path,
                )
            self._artifacts[name] = ExpectedArtifact(
                name=name,
                base=source.base,
                version=source.version,
                arch=source.resolved_arch(name, self.carch),
                pkgext=self.pkgext,
            )
            self._sources[name] = source
            for provided in source.provides_of(name):
                self._providers.setdefault(provided, name)

    # ---- 查询 ----

    def artifact(self, name: str) -> ExpectedArtifact | None:
        return self._artifacts.get(name)

    def artifacts(self) -> list[ExpectedArtifact]:
        return list(self._artifacts.values())

    def source_of(self, name: str) -> PackageSource | None:
        return self._sources.get(name)

    def path_of(self, name: str) -> Path:
        return self.target_dir / self._artifacts[name].filename

    def debug_path_of(self, name: str) -> Path:
        return self.target_dir / self._artifacts[name].debug_filename

    def classify(self, dep: str) -> tuple[DepKind, str]:
        """返回 (分类, 本地包名或原始名)"""
        name = strip_version(dep)
        if name in self._artifacts:
            return DepKind.OURS, name
        provider = self._providers.get(name)
        if provider is not None:
            return DepKind.PROVIDED, provider
        return DepKind.EXTERNAL, name

    def resolve_local(self, dep: str) -> str | None:
        """依赖若由本地产出（直接或经提供名），返回本地包名"""
        kind, name = self.classify(dep)
        return None if kind is DepKind.EXTERNAL else name

    def is_built(self, name: str) -> bool:
        """产物文件存在且非空"""
        path = self.path_of(name)
        return path.is_file() and path.stat().st_size > 0
