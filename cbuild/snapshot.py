# cbuild/snapshot.py
"""
snapshot.py - archive and restore an installation root

Snapshots are streamed through zstd when the tool is available (or forced by
snapshot.compressor), otherwise written as tar.gz with tarfile. They are never
pruned; each name-version keeps one install snapshot and one removal snapshot.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tarfile
from pathlib import Path
from typing import Any, Dict, Optional

from cbuild.errors import SnapshotError
from cbuild.recipe import Recipe
from cbuild.runner import which

_EXTRACT_KW: Dict[str, Any] = {"filter": "tar"} if hasattr(tarfile, "tar_filter") else {}


class SnapshotManager:
    def __init__(self, ctx):
        self.ctx = ctx
        self.log = ctx.get_logger("snapshot")

    def compressor(self) -> str:
        wanted = self.ctx.config.get("snapshot.compressor", "auto")
        have_zstd = which("zstd") is not None
        if wanted == "gzip":
            return "gzip"
        if wanted == "zstd" and not have_zstd:
            self.log.warning("zstd requested but not installed; using gzip")
        return "zstd" if have_zstd else "gzip"

    # ------------------------
    # create
    # ------------------------
    def create(self, recipe: Recipe, root: Path, kind: str = "install") -> Path:
        comp = self.compressor()
        dest = self.ctx.layout.snapshot_path(recipe, comp, kind)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(dest.name + ".tmp")
        try:
            if comp == "zstd":
                self._create_zstd(root, tmp)
            else:
                with tarfile.open(tmp, "w:gz") as tar:
                    self._add_tree(tar, root)
            os.replace(tmp, dest)
        except (OSError, tarfile.TarError) as e:
            raise SnapshotError(f"cannot snapshot {root}: {e}") from e
        finally:
            if tmp.exists():
                tmp.unlink()
        self.log.info("snapshot of %s written to %s", root.name, dest.name)
        return dest

    @staticmethod
    def _add_tree(tar: tarfile.TarFile, root: Path):
        if not root.is_dir():
            return
        for child in sorted(root.iterdir()):
            tar.add(str(child), arcname=child.name)

    def _create_zstd(self, root: Path, out: Path):
        with open(out, "wb") as fout:
            proc = subprocess.Popen(["zstd", "-q", "-c"], stdin=subprocess.PIPE, stdout=fout)
            try:
                with tarfile.open(fileobj=proc.stdin, mode="w|") as tar:
                    self._add_tree(tar, root)
            finally:
                proc.stdin.close()
                rc = proc.wait()
        if rc != 0:
            raise SnapshotError("zstd compression failed", command=["zstd", "-q", "-c"], returncode=rc)

    # ------------------------
    # restore
    # ------------------------
    def restore(self, archive: Optional[Path], root: Path):
        """Replace root with the archive content; an absent archive leaves root empty."""
        if root.exists():
            shutil.rmtree(root)
        root.mkdir(parents=True)
        if archive is None or not archive.exists():
            self.log.warning("no snapshot to restore; %s left empty", root)
            return
        try:
            if archive.name.endswith(".zst"):
                self._restore_zstd(archive, root)
            else:
                with tarfile.open(archive, "r:*") as tar:
                    tar.extractall(str(root), **_EXTRACT_KW)
        except (OSError, tarfile.TarError) as e:
            raise SnapshotError(f"cannot restore {archive.name}: {e}") from e
        self.log.info("restored %s from %s", root, archive.name)

    def _restore_zstd(self, archive: Path, root: Path):
        proc = subprocess.Popen(["zstd", "-q", "-dc", str(archive)], stdout=subprocess.PIPE)
        try:
            with tarfile.open(fileobj=proc.stdout, mode="r|") as tar:
                tar.extractall(str(root), **_EXTRACT_KW)
        finally:
            proc.stdout.close()
            rc = proc.wait()
        if rc != 0:
            raise SnapshotError(f"zstd decompression of {archive.name} failed",
                                command=["zstd", "-dc", str(archive)], returncode=rc)
