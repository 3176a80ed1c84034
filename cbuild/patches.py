# cbuild/patches.py
"""
patches.py - PatchEngine for cbuild

Responsibilities:
- Turn the work tree into a git checkout with a base commit when it is not one already.
- Apply recipe patch entries strictly in order: local files, local directories,
  remote URLs (cached under a hash of the URL) and git cherry-picks.
- Single-file procedure: `git am --3way`, then `patch -p1`, then `patch -p0`; first success wins.
- Stop at the first failing entry. Already applied entries stay applied; the
  operator re-extracts to start over.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Sequence

from cbuild.errors import FilesystemError, PatchApplyError
from cbuild.fetcher import download
from cbuild.recipe import LocalDir, LocalFile, PatchSpec, Recipe, RemoteURL, VcsCherryPick
from cbuild.runner import CommandResult, run_command

PICK_REF = "refs/cbuild/pick"


def git_identity(config) -> List[str]:
    """`git -c` options for commits made by cbuild."""
    return [
        "-c", f"user.name={config.get('patches.git_name', 'cbuild')}",
        "-c", f"user.email={config.get('patches.git_email', 'cbuild@localhost')}",
        "-c", "commit.gpgsign=false",
    ]


class PatchEngine:
    def __init__(self, ctx, recipe: Recipe):
        self.ctx = ctx
        self.recipe = recipe
        self.wd = ctx.layout.work_dir(recipe)
        self.log = ctx.get_logger("patches")
        self.extensions = tuple(e.lower() for e in ctx.config.get("patches.extensions", [".patch", ".diff", ".mbox"]))
        self._identity = git_identity(ctx.config)

    # -------------------------
    # command helpers
    # -------------------------
    def _run(self, argv: Sequence[str]) -> CommandResult:
        return run_command(argv, cwd=self.wd, logger=self.log, echo=self.ctx.echo)

    def _git(self, *args: str) -> CommandResult:
        return self._run(["git", "-C", str(self.wd), *self._identity, *args])

    def _commit(self, message: str) -> CommandResult:
        self._git("add", "-A")
        return self._git("commit", "-q", "--allow-empty", "--no-verify", "-m", message)

    # -------------------------
    # repository setup
    # -------------------------
    def ensure_git_repo(self) -> bool:
        """Initialize a repository with a base commit. Returns True when one was created."""
        if (self.wd / ".git").exists():
            return False
        self.log.info("initializing git repository in %s", self.wd)
        res = self._git("init", "-q")
        if not res.ok:
            raise PatchApplyError("git init failed", command=res.argv, returncode=res.returncode)
        res = self._commit("cbuild base")
        if not res.ok:
            raise PatchApplyError("base commit failed", command=res.argv, returncode=res.returncode)
        return True

    # -------------------------
    # single-file procedure
    # -------------------------
    def apply_file(self, path: Path, entry: str) -> str:
        """Apply one patch file; returns the strategy that worked."""
        if not path.is_file():
            raise PatchApplyError(f"patch file not found: {path}", entry=entry)

        res = self._git("am", "--3way", "--keep-cr", str(path))
        if res.ok:
            self.log.info("applied %s with git am", path.name)
            return "am"
        self._git("am", "--abort")

        for level in (1, 0):
            base = ["patch", "-f", "-s", f"-p{level}", "-d", str(self.wd), "-i", str(path)]
            if not self._run(base[:1] + ["--dry-run"] + base[1:]).ok:
                continue
            res = self._run(base)
            if res.ok:
                self._commit(f"cbuild: {path.name}")
                self.log.info("applied %s with patch -p%d", path.name, level)
                return f"p{level}"
            raise PatchApplyError(f"patch {entry} failed after a clean dry run", entry=entry,
                                  command=res.argv, returncode=res.returncode)
        raise PatchApplyError(f"patch {entry} does not apply (git am, -p1, -p0)", entry=entry)

    # -------------------------
    # variants
    # -------------------------
    def _apply_dir(self, spec: LocalDir) -> List[str]:
        files = sorted(p for p in spec.path.iterdir() if p.is_file() and p.suffix.lower() in self.extensions)
        if not files:
            self.log.warning("patch directory %s holds no patches", spec.path)
        return [self.apply_file(p, f"{spec.entry}/{p.name}") for p in files]

    def _apply_remote(self, spec: RemoteURL) -> str:
        dest = self.ctx.layout.patch_cache_path(self.recipe, spec)
        if not dest.exists():
            download(self.ctx, spec.url, dest)
        return self.apply_file(dest, spec.entry)

    def _cherry_pick(self, spec: VcsCherryPick) -> str:
        if ".." in spec.refspec:
            start, end = spec.refspec.split("..", 1)
            refs = {f"{PICK_REF}-start": start, f"{PICK_REF}-end": end}
            target = f"{PICK_REF}-start..{PICK_REF}-end"
        else:
            refs = {PICK_REF: spec.refspec}
            target = PICK_REF
        try:
            for local, remote in refs.items():
                res = self._git("fetch", "-q", spec.repo, f"+{remote}:{local}")
                if not res.ok:
                    raise PatchApplyError(f"cannot fetch {remote} from {spec.repo}", entry=spec.entry,
                                          command=res.argv, returncode=res.returncode)
            res = self._git("cherry-pick", "-x", target)
            if not res.ok:
                self._git("cherry-pick", "--abort")
                raise PatchApplyError(f"cherry-pick of {spec.refspec} failed", entry=spec.entry,
                                      command=res.argv, returncode=res.returncode)
        finally:
            for local in refs:
                if not self._git("update-ref", "-d", local).ok:
                    self.log.warning("could not delete temporary ref %s", local)
        self.log.info("cherry-picked %s from %s", spec.refspec, spec.repo)
        return "cherry-pick"

    def apply(self, spec: PatchSpec) -> Any:
        if isinstance(spec, VcsCherryPick):
            return self._cherry_pick(spec)
        if isinstance(spec, RemoteURL):
            return self._apply_remote(spec)
        if isinstance(spec, LocalDir):
            return self._apply_dir(spec)
        if isinstance(spec, LocalFile):
            return self.apply_file(spec.path, spec.entry)
        raise TypeError(f"unknown patch spec {spec!r}")

    def apply_all(self) -> Dict[str, Any]:
        res: Dict[str, Any] = {"ok": True, "applied": []}
        if not self.recipe.patches:
            self.log.info("no patches for %s", self.recipe.ident)
            return res
        if not self.wd.is_dir():
            raise FilesystemError(f"work tree missing: {self.wd} (run extract first)")
        self.ensure_git_repo()
        for spec in self.recipe.patches:
            self.log.info("applying %s", spec.entry)
            res["applied"].append({"entry": spec.entry, "strategy": self.apply(spec)})
        self.log.ok("%d patch entries applied to %s", len(res["applied"]), self.recipe.ident)
        return res


def patch(ctx, recipe: Recipe) -> Dict[str, Any]:
    return PatchEngine(ctx, recipe).apply_all()
