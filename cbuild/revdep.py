# cbuild/revdep.py
"""
revdep.py - reverse dependency report for an installation root

Every regular ELF file under the root is queried for its shared library
dependencies (ldd, or readelf -d to avoid running the loader). The result maps
library name -> sorted relative paths of the binaries needing it. Nothing is
written; the mapping is recomputed on every call.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Set

from cbuild.errors import FilesystemError
from cbuild.recipe import Recipe
from cbuild.runner import run_command

ELF_MAGIC = b"\x7fELF"
VIRTUAL_OBJECTS = ("linux-vdso", "linux-gate")
_NEEDED = re.compile(r"\(NEEDED\).*\[(?P<lib>[^\]]+)\]")


def is_elf(path: Path) -> bool:
    try:
        with open(path, "rb") as f:
            return f.read(4) == ELF_MAGIC
    except OSError:
        return False


def iter_elf(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for fn in sorted(filenames):
            p = Path(dirpath) / fn
            if p.is_file() and not p.is_symlink() and is_elf(p):
                yield p

# -------------------------
# dependency queries
# -------------------------
def parse_ldd_output(text: str) -> Set[str]:
    libs: Set[str] = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or "not a dynamic executable" in line or "statically linked" in line:
            continue
        if "=>" in line:
            name = line.split("=>", 1)[0].strip()
        else:
            name = line.split()[0]
        if name.endswith(":") or name.startswith(VIRTUAL_OBJECTS):
            continue
        libs.add(name)
    return libs


def parse_readelf_output(text: str) -> Set[str]:
    return {m.group("lib") for m in _NEEDED.finditer(text)}


def ldd_query(path: Path, logger=None) -> Set[str]:
    res = run_command(["ldd", str(path)], logger=logger)
    if not res.ok:
        if logger is not None:
            logger.debug("ldd gave no dependencies for %s (rc=%d)", path, res.returncode)
        return set()
    return parse_ldd_output(res.output)


def readelf_query(path: Path, logger=None) -> Set[str]:
    res = run_command(["readelf", "-d", "-W", str(path)], logger=logger)
    if not res.ok:
        return set()
    return parse_readelf_output(res.output)


QUERIES: Dict[str, Callable[..., Set[str]]] = {"ldd": ldd_query, "readelf": readelf_query}

# -------------------------
# analysis
# -------------------------
def analyze(root: Path, query: Callable[..., Set[str]] = ldd_query, logger=None) -> Dict[str, List[str]]:
    deps: Dict[str, Set[str]] = {}
    for binary in iter_elf(root):
        rel = binary.relative_to(root).as_posix()
        for lib in query(binary, logger=logger):
            deps.setdefault(lib, set()).add(rel)
    return {lib: sorted(bins) for lib, bins in sorted(deps.items())}


def format_report(report: Dict[str, List[str]]) -> List[str]:
    return [f"{lib} <- {', '.join(bins)}" for lib, bins in report.items()]


def revdep(ctx, recipe: Recipe) -> Dict[str, List[str]]:
    log = ctx.get_logger("revdep")
    root = ctx.layout.install_root(recipe)
    if not root.is_dir():
        raise FilesystemError(f"installation root missing: {root}")
    query = QUERIES.get(ctx.config.get("revdep.query", "ldd"), ldd_query)
    report = analyze(root, query=query, logger=log)
    log.info("%d libraries referenced under %s", len(report), root)
    return report
