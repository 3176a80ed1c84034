# cbuild/sync.py
"""
sync.py - keep the recipe tree under version control

- Initializes <base>/recipes as a git repository on first use
- Commits every change with the configured cbuild identity (nothing to commit is fine)
- Pushes HEAD to 'origin' when that remote is configured
"""

from __future__ import annotations

from typing import Any, Dict

from cbuild.errors import FilesystemError, NetworkError
from cbuild.patches import git_identity
from cbuild.runner import check_command, run_command


def sync_recipes(ctx) -> Dict[str, Any]:
    log = ctx.get_logger("sync")
    recipes = ctx.layout.recipes
    if not recipes.is_dir():
        raise FilesystemError(f"recipe directory missing: {recipes}")

    git = ["git", "-C", str(recipes), *git_identity(ctx.config)]
    run = dict(logger=log, echo=ctx.echo)
    res: Dict[str, Any] = {"ok": True, "committed": False, "pushed": False}

    if not (recipes / ".git").exists():
        log.info("initializing git repository in %s", recipes)
        check_command(git + ["init", "-q"], error=FilesystemError, message="git init of recipes failed", **run)

    check_command(git + ["add", "-A"], error=FilesystemError, message="git add in recipes failed", **run)
    status = check_command(git + ["status", "--porcelain"], error=FilesystemError,
                           message="git status in recipes failed", **run)
    if status.output.strip():
        check_command(git + ["commit", "-q", "--no-verify", "-m", "cbuild sync"], error=FilesystemError,
                      message="git commit in recipes failed", **run)
        res["committed"] = True
    else:
        log.info("recipes unchanged, nothing to commit")

    if not run_command(git + ["rev-parse", "--verify", "-q", "HEAD"], logger=log).ok:
        log.warning("recipes repository has no commits; nothing to push")
    elif run_command(git + ["remote", "get-url", "origin"], logger=log).ok:
        check_command(git + ["push", "-q", "origin", "HEAD"], error=NetworkError,
                      message="push of recipes to origin failed", **run)
        res["pushed"] = True
    else:
        log.info("no origin remote; recipes kept local")

    log.ok("recipes synced (%s, %s)", "committed" if res["committed"] else "no changes",
           "pushed" if res["pushed"] else "not pushed")
    return res
