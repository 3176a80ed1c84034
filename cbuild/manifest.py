# cbuild/manifest.py
"""
manifest.py - per name-version list of installed files

One relative path per line, no header, no escaping. Written atomically after
a successful install hook, read and deleted by remove.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional


def collect(root: Path) -> List[str]:
    """Relative paths of the installed entries under root, sorted.

    Regular files and symbolic links are recorded. Links are listed as links,
    never followed, so a dangling link or a link to a directory is one entry
    that remove unlinks without touching its target.
    """
    out: List[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        base = Path(dirpath)
        for dn in dirnames:
            if (base / dn).is_symlink():
                out.append((base / dn).relative_to(root).as_posix())
        for fn in filenames:
            p = base / fn
            if p.is_symlink() or p.is_file():
                out.append(p.relative_to(root).as_posix())
    return sorted(out)


class ManifestStore:
    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def write(self, entries: List[str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            for e in entries:
                f.write(e + "\n")
        os.replace(tmp, self.path)

    def read(self) -> Optional[List[str]]:
        if not self.exists():
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return [line.rstrip("\n") for line in f if line.strip()]

    def delete(self):
        if self.exists():
            self.path.unlink()

    def record(self, root: Path) -> List[str]:
        entries = collect(root)
        self.write(entries)
        return entries
