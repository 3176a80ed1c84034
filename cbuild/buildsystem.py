# cbuild/buildsystem.py
# -*- coding: utf-8 -*-
"""
buildsystem.py - hook execution and the build stage

API:
  run_hook(ctx, recipe, "configure")      -> CommandResult or None for an empty hook
  build(ctx, recipe)                      -> {"ok": True, "stages": [...]}

Behavior:
  - A hook is an arbitrary shell expression run through build.shell (bash -e -o pipefail -c)
    inside the work tree, so any failing sub-command fails the hook.
  - Empty hooks are no-ops and are logged as skipped.
  - build runs prebuild -> prepare -> configure -> build and stops at the first failure.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Type

from cbuild.errors import BuildStepError, CbuildError, FilesystemError, PostHookError
from cbuild.recipe import Recipe
from cbuild.runner import CommandResult, merged_env, run_command

BUILD_SEQUENCE = ("prebuild", "prepare", "configure", "build")


def hook_env(ctx, recipe: Recipe, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env = {
        "CBUILD_NAME": recipe.name,
        "CBUILD_VERSION": recipe.version,
        "CBUILD_WORKDIR": str(ctx.layout.work_dir(recipe)),
        "JOBS": str(ctx.config.get("build.jobs", 1)),
    }
    if extra:
        env.update(extra)
    return merged_env(env)


def shell_argv(ctx, expr: str) -> list:
    return list(ctx.config.get("build.shell", ["bash", "-e", "-o", "pipefail", "-c"])) + [expr]


def run_hook(ctx, recipe: Recipe, name: str, expr: Optional[str] = None, cwd: Optional[Path] = None,
             env: Optional[Dict[str, str]] = None, error: Type[CbuildError] = BuildStepError,
             prefix: Optional[list] = None) -> Optional[CommandResult]:
    """
    Run one named hook. `expr` defaults to the recipe's hook of that name.
    Raises `error` (BuildStepError by default) carrying the hook name and exit status.
    """
    log = ctx.get_logger("buildsystem")
    expr = recipe.hook(name) if expr is None else expr
    if not expr.strip():
        log.info("%s: (empty)", name)
        return None
    cwd = cwd or ctx.layout.work_dir(recipe)
    log.info("%s: %s", name, expr)
    argv = (prefix or []) + shell_argv(ctx, expr)
    res = run_command(argv, cwd=cwd, env=env or hook_env(ctx, recipe), logger=log, echo=ctx.echo)
    if not res.ok:
        kwargs: Dict[str, Any] = {"command": expr, "returncode": res.returncode}
        if issubclass(error, BuildStepError):
            kwargs["stage"] = name
        elif issubclass(error, PostHookError):
            kwargs["hook"] = name
        raise error(f"hook {name} failed", **kwargs)
    return res


def build(ctx, recipe: Recipe) -> Dict[str, Any]:
    log = ctx.get_logger("buildsystem")
    work = ctx.layout.work_dir(recipe)
    if not work.is_dir():
        raise FilesystemError(f"work tree missing: {work} (run extract first)")
    res: Dict[str, Any] = {"ok": True, "stages": []}
    for stage in BUILD_SEQUENCE:
        ran = run_hook(ctx, recipe, stage)
        res["stages"].append({"stage": stage, "ran": ran is not None})
    log.ok("build finished for %s", recipe.ident)
    return res
