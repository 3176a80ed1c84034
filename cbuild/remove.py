# cbuild/remove.py
"""
remove.py - manifest driven removal of an installation root

Steps:
- best-effort forensic snapshot of the root (never restored automatically)
- delete every manifest path; missing files are tolerated
- remove the whole root, untracked files included, and drop the manifest
- run postremove; its failure is reported but nothing is undone
Without a manifest the root is still removed (with a warning) and postremove still runs.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Dict, Optional

from cbuild.buildsystem import hook_env, run_hook
from cbuild.errors import FilesystemError, PostHookError
from cbuild.manifest import ManifestStore
from cbuild.recipe import Recipe
from cbuild.snapshot import SnapshotManager


class RemoveManager:
    def __init__(self, ctx, recipe: Recipe):
        self.ctx = ctx
        self.recipe = recipe
        self.log = ctx.get_logger("remove")
        self.root = ctx.layout.install_root(recipe)
        self.manifest = ManifestStore(ctx.layout.manifest_path(recipe))

    def _forensic_snapshot(self) -> Optional[Path]:
        if not self.root.is_dir():
            return None
        try:
            return SnapshotManager(self.ctx).create(self.recipe, self.root, kind="removed")
        except FilesystemError as e:
            self.log.warning("pre-removal snapshot failed: %s", e)
            return None

    def _delete_listed(self, entries) -> int:
        deleted = 0
        for rel in entries:
            target = self.root / rel
            if Path(rel).is_absolute() or ".." in Path(rel).parts:
                self.log.warning("manifest entry outside root ignored: %s", rel)
                continue
            try:
                target.unlink()
                deleted += 1
            except FileNotFoundError:
                self.log.debug("already gone: %s", rel)
            except OSError as e:
                self.log.warning("cannot delete %s: %s", rel, e)
        return deleted

    def remove(self) -> Dict[str, Any]:
        res: Dict[str, Any] = {"ok": True, "root": str(self.root), "deleted": 0,
                               "snapshot": None, "manifest": self.manifest.exists()}
        snap = self._forensic_snapshot()
        res["snapshot"] = str(snap) if snap else None

        entries = self.manifest.read()
        if entries is None:
            self.log.warning("no manifest for %s; removing %s wholesale", self.recipe.ident, self.root)
        else:
            res["deleted"] = self._delete_listed(entries)

        if self.root.exists():
            try:
                shutil.rmtree(self.root)
            except OSError as e:
                raise FilesystemError(f"cannot remove {self.root}: {e}") from e
        self.manifest.delete()
        self.log.ok("removed %s (%d listed files)", self.recipe.ident, res["deleted"])

        env = hook_env(self.ctx, self.recipe, {self.ctx.config.get("install.destdir_var", "DESTDIR"): str(self.root)})
        run_hook(self.ctx, self.recipe, "postremove", cwd=self.ctx.layout.base, env=env, error=PostHookError)
        return res


def remove(ctx, recipe: Recipe) -> Dict[str, Any]:
    return RemoveManager(ctx, recipe).remove()
