"""PKGBUILD 元数据提取

.SRCINFO 是 makepkg --printsrcinfo 的缓存输出。缓存缺失、为空或比 PKGBUILD 旧
（超过 1 秒宽限，git clone 等操作会把时间戳压到同一时刻）时，以构建账户身份重新生成。

.SRCINFO 格式: 空行分隔的段，段内为 "key = value"，key 可重复。
  - 第一段以 pkgbase 开头，保存全局字段
  - 之后每段以 pkgname 开头，可覆盖 arch / provides / depends，缺省继承全局值
  - 架构相关数组写作 depends_x86_64 等，只合并当前构建架构的那一份
依赖和提供项末尾的版本限定（<、>、=）一律去掉，只按名字匹配。
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from autorepo.core.exceptions import ConfigError, ExternalToolError
from autorepo.core.identity import IdentityRunner
from autorepo.core.models import PackageSource, strip_version
from autorepo.utils.yaml_io import atomic_write

logger = logging.getLogger(__name__)

RECIPE = "PKGBUILD"
SRCINFO = ".SRCINFO"
GRACE_SECONDS = 1.0

_ARRAY_KEYS = ("arch", "depends", "makedepends", "checkdepends", "provides")
_STRIPPED_KEYS = ("depends", "makedepends", "checkdepends", "provides")


class CacheAction(Enum):
    REUSE = "reuse"
    REGENERATE = "regenerate"


def cache_action(
    recipe_mtime: float,
    cache_mtime: float | None,
    cache_content: str | None,
) -> CacheAction:
    """决定 .SRCINFO 是复用还是重新生成（纯函数，不访问文件系统）"""
    if cache_mtime is None or not cache_content or not cache_content.strip():
        return CacheAction.REGENERATE
    if recipe_mtime - cache_mtime > GRACE_SECONDS:
        return CacheAction.REGENERATE
    return CacheAction.REUSE


def _sections(text: str) -> list[list[tuple[str, str]]]:
    sections: list[list[tuple[str, str]]] = []
    current: list[tuple[str, str]] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            if current:
                sections.append(current)
                current = []
            continue
        if line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        current.append((key.strip(), value.strip()))
    if current:
        sections.append(current)
    return sections


def _collect(pairs: list[tuple[str, str]], carch: str) -> dict[str, list[str]]:
    """把一个段的键值对收集为 {key: [values]}，出现过的键即使值为空也保留"""
    fields: dict[str, list[str]] = {}
    for key, value in pairs:
        base, _, suffix = key.partition("_")
        if suffix and base in _ARRAY_KEYS:
            if suffix != carch:
                continue
            key = base
        values = fields.setdefault(key, [])
        if value:
            values.append(strip_version(value) if key in _STRIPPED_KEYS else value)
    return fields


def _merge_unique(*lists: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for items in lists:
        for item in items:
            seen.setdefault(item, None)
    return list(seen)


def parse_srcinfo(text: str, path: str, carch: str = "") -> PackageSource:
    """解析 .SRCINFO 文本

    异常:
        ConfigError: 缺少 pkgbase / pkgname / pkgver / pkgrel
    """
    sections = _sections(text)
    if not sections or sections[0][0][0] != "pkgbase":
        raise ConfigError(f"{path}/{SRCINFO}: 缺少 pkgbase 段")

    glob = _collect(sections[0], carch)

    def scalar(key: str, required: bool = True) -> str:
        values = glob.get(key) or []
        if not values and required:
            raise ConfigError(f"{path}/{SRCINFO}: 缺少 {key}")
        return values[0] if values else ""

    base = scalar("pkgbase")
    source = PackageSource(
        path=path,
        base=base,
        names=[],
        pkgver=scalar("pkgver"),
        pkgrel=scalar("pkgrel"),
        epoch=scalar("epoch", required=False),
        arch=glob.get("arch", []),
        makedepends=glob.get("makedepends", []),
        checkdepends=glob.get("checkdepends", []),
        provides=glob.get("provides", []),
    )

    runtime: list[list[str]] = []
    for section in sections[1:]:
        if section[0][0] != "pkgname":
            logger.warning("%s/%s: 跳过无法识别的段 '%s'", path, SRCINFO, section[0][0])
            continue
        fields = _collect(section, carch)
        name = section[0][1]
        source.names.append(name)
        if "arch" in fields:
            source.package_arch[name] = fields["arch"]
        if "provides" in fields:
            source.package_provides[name] = fields["provides"]
        runtime.append(fields.get("depends", glob.get("depends", [])))

    if not source.names:
        raise ConfigError(f"{path}/{SRCINFO}: 未声明任何 pkgname")
    source.depends = _merge_unique(glob.get("depends", []), *runtime)
    return source


class SrcinfoLoader:
    """读取源目录的 .SRCINFO，必要时以构建账户身份重新生成"""

    def __init__(self, runner: IdentityRunner, makepkg: str = "makepkg", carch: str = "") -> None:
        self.runner = runner
        self.makepkg = makepkg
        self.carch = carch

    def load(self, source_dir: str) -> PackageSource:
        src = Path(source_dir)
        recipe = src / RECIPE
        if not recipe.is_file():
            raise ConfigError(f"源目录中没有 {RECIPE}: {src}")

        cache = src / SRCINFO
        cache_mtime: float | None = None
        content: str | None = None
        if cache.is_file():
            cache_mtime = cache.stat().st_mtime
            content = cache.read_text(encoding="utf-8")

        action = cache_action(recipe.stat().st_mtime, cache_mtime, content)
        if action is CacheAction.REGENERATE:
            content = self._regenerate(src, cache)

        if not content:
            raise ConfigError(f"元数据文件缺失或为空: {cache}")
        return parse_srcinfo(content, str(src), self.carch)

    def _regenerate(self, src: Path, cache: Path) -> str:
        logger.info("重新生成 %s: %s", SRCINFO, src)
        r = self.runner.run([self.makepkg, "--printsrcinfo"], cwd=str(src), capture=True)
        if not r.success:
            raise ExternalToolError(
                self.makepkg,
                f"--printsrcinfo 失败 ({src}, rc={r.returncode}): {r.stderr.strip()[:500]}",
                returncode=r.returncode,
            )
        atomic_write(cache, r.stdout)
        return r.stdout
