# cbuild/install.py
"""
install.py - InstallCoordinator for cbuild

Protocol (strictly ordered):
 1. recreate the installation root empty
 2. snapshot it (pre-image, also taken for an empty root)
 3. run the install hook with DESTDIR pointing at the root, under fakeroot when available
 4. hook failure: restore the snapshot and raise InstallError
 5. hook success: strip ELF files (optional), write the manifest, run postinstall;
    a postinstall failure raises PostHookError and leaves the installed files in place
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Dict, List

from cbuild.buildsystem import hook_env, run_hook
from cbuild.errors import FilesystemError, InstallError, PostHookError, SnapshotError
from cbuild.manifest import ManifestStore
from cbuild.recipe import Recipe
from cbuild.revdep import iter_elf
from cbuild.runner import run_command, which
from cbuild.snapshot import SnapshotManager


def ensure_destdir(cmd: str, var: str = "DESTDIR") -> str:
    """Append VAR="$VAR" unless the command already mentions VAR."""
    if var in cmd:
        return cmd
    return f'{cmd} {var}="${var}"'


class InstallCoordinator:
    def __init__(self, ctx, recipe: Recipe):
        self.ctx = ctx
        self.recipe = recipe
        self.log = ctx.get_logger("install")
        self.root = ctx.layout.install_root(recipe)
        self.snapshots = SnapshotManager(ctx)
        self.manifest = ManifestStore(ctx.layout.manifest_path(recipe))
        self.destdir_var = ctx.config.get("install.destdir_var", "DESTDIR")

    def _reset_root(self):
        if self.root.exists():
            shutil.rmtree(self.root)
        self.root.mkdir(parents=True)

    def _prefix(self) -> List[str]:
        if self.ctx.config.get("install.use_fakeroot", True) and which("fakeroot"):
            return ["fakeroot", "--"]
        return []

    def _rollback(self, snapshot: Path):
        try:
            self.snapshots.restore(snapshot, self.root)
        except SnapshotError as e:
            self.log.error("rollback failed: %s", e)
            return
        self.log.warning("installation root %s rolled back", self.root)

    def strip_binaries(self) -> List[str]:
        cmd = list(self.ctx.config.get("install.strip_command", ["strip", "--strip-unneeded"]))
        stripped: List[str] = []
        for binary in iter_elf(self.root):
            res = run_command(cmd + [str(binary)], logger=self.log)
            rel = binary.relative_to(self.root).as_posix()
            if res.ok:
                stripped.append(rel)
            else:
                self.log.warning("strip failed for %s (rc=%d)", rel, res.returncode)
        return stripped

    def install(self) -> Dict[str, Any]:
        work = self.ctx.layout.work_dir(self.recipe)
        if not work.is_dir():
            raise FilesystemError(f"work tree missing: {work} (run extract first)")

        self._reset_root()
        snapshot = self.snapshots.create(self.recipe, self.root, kind="install")

        cmd = ensure_destdir(self.recipe.hook("install") or self.ctx.config.get("install.default_command", "make install"),
                             self.destdir_var)
        env = hook_env(self.ctx, self.recipe, {self.destdir_var: str(self.root)})
        try:
            run_hook(self.ctx, self.recipe, "install", expr=cmd, env=env, error=InstallError, prefix=self._prefix())
        except InstallError:
            self._rollback(snapshot)
            raise

        res: Dict[str, Any] = {"ok": True, "root": str(self.root), "snapshot": str(snapshot), "stripped": []}
        if self.recipe.strip:
            res["stripped"] = self.strip_binaries()
        entries = self.manifest.record(self.root)
        if not entries:
            self.log.warning("install hook left no files in %s", self.root)
        res["manifest"] = str(self.manifest.path)
        res["files"] = len(entries)
        self.log.ok("installed %s into %s (%d files)", self.recipe.ident, self.root, len(entries))

        run_hook(self.ctx, self.recipe, "postinstall", cwd=work, env=env, error=PostHookError)
        return res


def install(ctx, recipe: Recipe) -> Dict[str, Any]:
    return InstallCoordinator(ctx, recipe).install()
