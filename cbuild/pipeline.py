# cbuild/pipeline.py
"""
pipeline.py - stage table and sequencing

Each stage is a function (ctx, recipe) -> dict that raises a CbuildError on
failure. run_stage() wraps one call with the spinner; run_pipeline() chains
fetch -> extract -> patch -> build -> install and stops at the first error.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List

from cbuild.buildsystem import build
from cbuild.extractor import extract
from cbuild.fetcher import fetch
from cbuild.install import install
from cbuild.patches import patch
from cbuild.progress import spinning
from cbuild.recipe import Recipe
from cbuild.remove import remove
from cbuild.revdep import revdep

Stage = Callable[[Any, Recipe], Any]

STAGES: Dict[str, Stage] = {
    "fetch": fetch,
    "extract": extract,
    "patch": patch,
    "build": build,
    "install": install,
    "remove": remove,
    "revdep": revdep,
}

PIPELINE = ("fetch", "extract", "patch", "build", "install")


def run_stage(ctx, name: str, recipe: Recipe) -> Any:
    # echoed command output and the spinner share stderr; only one of them runs
    with spinning(f"{name} {recipe.ident}", enabled=ctx.spinner and not ctx.echo):
        return STAGES[name](ctx, recipe)


def run_pipeline(ctx, recipe: Recipe) -> List[Dict[str, Any]]:
    results = []
    for name in PIPELINE:
        results.append({"stage": name, "result": run_stage(ctx, name, recipe)})
    return results
