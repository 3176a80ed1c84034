# cbuild/layout.py
"""
layout.py - workspace paths derived from (base, name, version)

Nothing here is persisted; every path can be recomputed from a Recipe.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from cbuild.errors import ConfigError
from cbuild.recipe import Recipe, RemoteURL

SUBDIRS = ("recipes", "sources", "work", "destdir", "logs", "snapshots")
SNAPSHOT_EXT = {"zstd": ".tar.zst", "gzip": ".tar.gz"}


@dataclass(frozen=True)
class Layout:
    base: Path

    @property
    def recipes(self) -> Path:
        return self.base / "recipes"

    @property
    def sources(self) -> Path:
        return self.base / "sources"

    @property
    def work(self) -> Path:
        return self.base / "work"

    @property
    def destdir(self) -> Path:
        return self.base / "destdir"

    @property
    def logs(self) -> Path:
        return self.base / "logs"

    @property
    def snapshots(self) -> Path:
        return self.base / "snapshots"

    def ensure_dirs(self):
        for d in SUBDIRS:
            (self.base / d).mkdir(parents=True, exist_ok=True)

    # -------------------------
    # per recipe
    # -------------------------
    def recipe_dir(self, name: str) -> Path:
        return self.recipes / name

    def recipe_file(self, name: str) -> Path:
        return self.recipe_dir(name) / "recipe.ini"

    def source_name(self, recipe: Recipe, url: str, index: int = 0) -> str:
        path = urlparse(url).path if "://" in url else url
        tail = path.rstrip("/").rsplit("/", 1)[-1] if "/" in path else ""
        if tail:
            return tail
        return f"{recipe.ident}.tar.gz" if index == 0 else f"{recipe.ident}-{index}.tar.gz"

    def source_paths(self, recipe: Recipe) -> List[Path]:
        if not recipe.sources:
            if recipe.vcs:
                return []
            return [self.sources / f"{recipe.ident}.tar"]
        paths: List[Path] = []
        for i, url in enumerate(recipe.sources):
            p = self.sources / self.source_name(recipe, url, i)
            if p in paths:
                raise ConfigError(f"{recipe.name}: sources {url} and "
                                  f"{recipe.sources[paths.index(p)]} both download to {p.name}")
            paths.append(p)
        return paths

    def vcs_checkout(self, recipe: Recipe) -> Path:
        return self.sources / f"{recipe.name}-git"

    def work_dir(self, recipe: Recipe) -> Path:
        return self.work / recipe.ident

    def install_root(self, recipe: Recipe) -> Path:
        return self.destdir / recipe.ident

    def manifest_path(self, recipe: Recipe) -> Path:
        return self.logs / f"{recipe.ident}.manifest"

    def snapshot_path(self, recipe: Recipe, compressor: str, kind: str = "install") -> Path:
        suffix = "" if kind == "install" else f".{kind}"
        return self.snapshots / f"{recipe.ident}{suffix}{SNAPSHOT_EXT[compressor]}"

    def existing_snapshot(self, recipe: Recipe, kind: str = "install") -> Optional[Path]:
        for comp in SNAPSHOT_EXT:
            p = self.snapshot_path(recipe, comp, kind)
            if p.exists():
                return p
        return None

    def patch_cache_path(self, recipe: Recipe, spec: RemoteURL) -> Path:
        digest = hashlib.sha256(spec.url.encode("utf-8")).hexdigest()[:16]
        return self.sources / f"{recipe.name}-{digest}.patch"
