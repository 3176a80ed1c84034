# cbuild/extractor.py
"""
extractor.py - unpack fetched sources into a fresh work tree

Features:
- Work tree is removed and recreated on every run (warns when a prior tree is discarded)
- Declared checksums are re-verified before anything is unpacked
- Dispatch by extension, then by signature: zip, tar.gz, tar.xz, tar.bz2, bare xz, bare gzip, plain tar
- Exactly one leading path component is stripped from every member
- Several archives merge into one root; later archives overwrite earlier paths
- Falls back to copying the git checkout when the recipe has no file artifacts
"""

from __future__ import annotations

import gzip
import lzma
import shutil
import stat
import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Set

from cbuild.errors import ExtractionError
from cbuild.fetcher import verify_sources
from cbuild.recipe import Recipe
from cbuild.runner import check_command

TAR_MODES = {
    ".tar.gz": "r:gz",
    ".tgz": "r:gz",
    ".tar.xz": "r:xz",
    ".txz": "r:xz",
    ".tar.bz2": "r:bz2",
    ".tbz2": "r:bz2",
    ".tbz": "r:bz2",
}

# python >= 3.12 (and security backports) take an extraction filter
_EXTRACT_KW: Dict[str, Any] = {"filter": "tar"} if hasattr(tarfile, "tar_filter") else {}


class _Unpacked:
    """Bookkeeping for one extract run: what landed where."""

    def __init__(self):
        self.paths: Set[str] = set()
        self.overwritten = 0
        self.tops: List[Set[str]] = []

    def record(self, rel: str):
        if rel in self.paths:
            self.overwritten += 1
        self.paths.add(rel)


def strip_component(name: str) -> Optional[str]:
    """Drop the first path component; None for the component itself."""
    if name.startswith("/"):
        raise ExtractionError(f"absolute member path in archive: {name}")
    parts = [p for p in PurePosixPath(name).parts if p != "."]
    if ".." in parts:
        raise ExtractionError(f"member escapes the work tree: {name}")
    if len(parts) <= 1:
        return None
    return "/".join(parts[1:])


def archive_kind(path: Path) -> str:
    lower = path.name.lower()
    if lower.endswith(".zip"):
        return "zip"
    for ext, mode in TAR_MODES.items():
        if lower.endswith(ext):
            return mode
    if lower.endswith(".xz"):
        return "xz"
    if lower.endswith(".gz"):
        return "gz"
    if zipfile.is_zipfile(path):
        return "zip"
    return "r:*"

# -------------------------
# unpackers
# -------------------------
def _top_level(names) -> Set[str]:
    tops = set()
    for n in names:
        parts = [p for p in PurePosixPath(n).parts if p != "."]
        if parts:
            tops.add(parts[0])
    return tops


def _unpack_tar(src, dst: Path, mode: str, state: _Unpacked):
    with tarfile.open(src, mode) as tar:
        members = tar.getmembers()
        state.tops.append(_top_level(m.name for m in members))
        for member in members:
            rel = strip_component(member.name)
            if rel is None:
                continue
            member.name = rel
            if member.islnk():
                target = strip_component(member.linkname)
                if target is None:
                    continue
                member.linkname = target
            if not member.isdir():
                state.record(rel)
                existing = dst / rel
                if existing.is_symlink() or existing.is_file():
                    existing.unlink()
            tar.extract(member, str(dst), **_EXTRACT_KW)


def _unpack_zip(src: Path, dst: Path, state: _Unpacked):
    with zipfile.ZipFile(src) as zf:
        infos = zf.infolist()
        state.tops.append(_top_level(i.filename for i in infos))
        for info in infos:
            rel = strip_component(info.filename)
            if rel is None:
                continue
            target = dst / rel
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            state.record(rel)
            with zf.open(info) as fin, open(target, "wb") as fout:
                shutil.copyfileobj(fin, fout)
            mode = info.external_attr >> 16
            if mode & 0o777:
                target.chmod(stat.S_IMODE(mode))


def _unpack_compressed_tar(src: Path, dst: Path, opener, state: _Unpacked):
    with tempfile.NamedTemporaryFile(prefix=".cbuild-", suffix=".tar", dir=str(dst.parent)) as tmp:
        with opener(src, "rb") as fin:
            shutil.copyfileobj(fin, tmp)
        tmp.flush()
        _unpack_tar(tmp.name, dst, "r:", state)


def unpack(src: Path, dst: Path, state: Optional[_Unpacked] = None) -> _Unpacked:
    state = state or _Unpacked()
    kind = archive_kind(src)
    try:
        if kind == "zip":
            _unpack_zip(src, dst, state)
        elif kind == "xz":
            _unpack_compressed_tar(src, dst, lzma.open, state)
        elif kind == "gz":
            _unpack_compressed_tar(src, dst, gzip.open, state)
        else:
            _unpack_tar(src, dst, kind, state)
    except ExtractionError:
        raise
    except (tarfile.TarError, zipfile.BadZipFile, lzma.LZMAError, EOFError, OSError) as e:
        raise ExtractionError(f"cannot unpack {src.name}: {e}") from e
    return state

# -------------------------
# stage entry point
# -------------------------
def _copy_checkout(ctx, recipe: Recipe, dst: Path):
    log = ctx.get_logger("extract")
    checkout = ctx.layout.vcs_checkout(recipe)
    log.info("copying git checkout %s", checkout.name)
    try:
        shutil.copytree(checkout, dst, symlinks=True, dirs_exist_ok=True)
    except (OSError, shutil.Error) as e:
        raise ExtractionError(f"cannot copy checkout {checkout}: {e}") from e
    if recipe.submodules:
        check_command(["git", "-C", str(dst), "submodule", "update", "--init", "--recursive"],
                      error=ExtractionError, message="submodule update in work tree failed",
                      logger=log, echo=ctx.echo)


def extract(ctx, recipe: Recipe) -> Dict[str, Any]:
    log = ctx.get_logger("extract")
    paths = ctx.layout.source_paths(recipe)
    present = [p for p in paths if p.exists()]
    missing = [p for p in paths if not p.exists()]
    checkout = ctx.layout.vcs_checkout(recipe)
    use_vcs = not present and recipe.vcs is not None and checkout.is_dir()

    if not use_vcs:
        if not paths:
            raise ExtractionError(f"nothing to extract for {recipe.ident}: no sources and no git checkout")
        if missing:
            raise ExtractionError(f"source not found: {missing[0]} (run fetch first)")
        verify_sources(ctx, recipe)

    work = ctx.layout.work_dir(recipe)
    if work.exists():
        log.warning("discarding previous work tree %s", work)
        shutil.rmtree(work)
    work.mkdir(parents=True)

    res: Dict[str, Any] = {"ok": True, "work": str(work), "archives": [], "vcs": use_vcs}
    if use_vcs:
        _copy_checkout(ctx, recipe, work)
    else:
        state = _Unpacked()
        for src in present:
            log.info("unpacking %s", src.name)
            unpack(src, work, state)
            res["archives"].append(str(src))
        _warn_layout(log, state)
    log.ok("extracted %s into %s", recipe.ident, work)
    return res


def _warn_layout(log, state: _Unpacked):
    for tops in state.tops:
        if len(tops) > 1:
            log.warning("archive has %d top-level entries; stripping one component may misplace files",
                        len(tops))
    distinct = {frozenset(t) for t in state.tops}
    if len(distinct) > 1:
        log.warning("archives use different top-level directories; merged into one work tree")
    if state.overwritten:
        log.warning("%d file(s) overwritten by later archives", state.overwritten)
