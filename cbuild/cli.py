#!/usr/bin/env python3
# cbuild/cli.py
"""
cbuild CLI - recipe driven source builds

How it works:
- global options build the config overrides, then one BuildContext is created
- each subcommand loads the recipe and delegates to its stage function
- aliases (dl, x, p, b, i, rm, srch, inf, rv, mk) and unambiguous prefixes are accepted
- rich renders status lines, tables and the revdep report
- exit status: 0 ok, 1 cbuild error, 2 usage error, 100 internal fault
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cbuild import __version__
from cbuild import config as config_mod
from cbuild.context import BuildContext
from cbuild.errors import CbuildError, InternalError, UsageError
from cbuild.layout import Layout
from cbuild.pipeline import run_pipeline, run_stage
from cbuild.preflight import check_tools
from cbuild.recipe import DEFAULT_VERSION, find_recipes, init_recipe
from cbuild.revdep import format_report
from cbuild.sync import sync_recipes

COMMANDS = ("init", "mkpkg", "fetch", "extract", "patch", "build", "install", "remove",
            "info", "search", "revdep", "all", "doctor", "sync")
ALIASES = {
    "dl": "fetch", "x": "extract", "p": "patch", "b": "build", "i": "install", "rm": "remove",
    "srch": "search", "inf": "info", "rv": "revdep", "mk": "mkpkg",
}
RECIPE_STAGES = ("fetch", "extract", "patch", "build", "install", "remove")
_VALUE_OPTS = ("--config", "--base")

EXIT_OK = 0
EXIT_USAGE = UsageError.exit_code
EXIT_INTERNAL = InternalError.exit_code

# -----------------------
# Command name resolution
# -----------------------
def resolve_command(word: str) -> str:
    if word in COMMANDS:
        return word
    if word in ALIASES:
        return ALIASES[word]
    matches = [c for c in COMMANDS if c.startswith(word)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise UsageError(f"ambiguous command '{word}': {', '.join(matches)}")
    raise UsageError(f"unknown command '{word}'")


def normalize_argv(argv: List[str]) -> List[str]:
    """Rewrite the first positional (the command) to its canonical name."""
    out = list(argv)
    i = 0
    while i < len(out):
        tok = out[i]
        if tok in _VALUE_OPTS:
            i += 2
            continue
        if tok.startswith("-"):
            i += 1
            continue
        out[i] = resolve_command(tok)
        break
    return out

# -----------------------
# Argparse wiring
# -----------------------
def make_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="cbuild", description="Recipe driven source package builder")
    ap.add_argument("--version", action="version", version=f"cbuild {__version__}")
    ap.add_argument("--config", help="configuration file (YAML or JSON)")
    ap.add_argument("--base", help="workspace base directory (default ~/.cbuild)")
    ap.add_argument("--no-spinner", action="store_true", help="Disable spinner animation")
    ap.add_argument("-q", "--quiet", action="store_true", help="Do not echo command output")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug output on the terminal")
    sub = ap.add_subparsers(dest="cmd", metavar="command")

    helps = {
        "init": "create a recipe template",
        "mkpkg": "create a recipe and its work directory",
        "fetch": "download sources and verify checksums",
        "extract": "unpack sources into a fresh work tree",
        "patch": "apply recipe patches to the work tree",
        "build": "run prebuild, prepare, configure and build hooks",
        "install": "install into the isolated root (rollback on failure)",
        "remove": "remove installed files using the manifest",
        "info": "show recipe details",
        "revdep": "report shared libraries used by installed binaries",
        "all": "fetch, extract, patch, build and install",
    }
    for name, text in helps.items():
        p = sub.add_parser(name, help=text)
        p.add_argument("name", help="recipe name")
    p_search = sub.add_parser("search", help="search recipes by regular expression")
    p_search.add_argument("pattern")
    p_doctor = sub.add_parser("doctor", help="check required external tools")
    p_doctor.add_argument("--strict", action="store_true", help="fail when a tool is missing")
    sub.add_parser("sync", help="commit the recipe tree and push it to origin when configured")
    return ap


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    ov: Dict[str, Any] = {}
    if args.base:
        ov.setdefault("paths", {})["base"] = args.base
    if args.no_spinner:
        ov.setdefault("ui", {})["spinner"] = False
    if args.quiet:
        ov.setdefault("ui", {})["echo"] = False
    if args.verbose:
        ov.setdefault("logging", {})["level"] = "DEBUG"
    return ov

# -----------------------
# CLI Implementation
# -----------------------
class CbuildCLI:
    def __init__(self, ctx: BuildContext, console: Optional[Console] = None):
        self.ctx = ctx
        self.console = console or Console()
        self.log = ctx.get_logger("cli")

    # small pretty helpers
    def print_ok(self, msg: str):
        self.console.print(f"[bold green]✔[/] {escape(msg)}")

    def print_warn(self, msg: str):
        self.console.print(f"[bold yellow]![/] {escape(msg)}")

    def print_info(self, msg: str):
        self.console.print(f"[cyan]{escape(msg)}[/cyan]")

    # commands
    def init(self, name: str, mkpkg: bool = False) -> int:
        ini, created = init_recipe(self.ctx.layout, name)
        if created:
            self.log.ok("recipe created: %s", ini)
            self.print_ok(f"recipe created: {ini}")
        else:
            self.log.warning("recipe already exists: %s", ini)
            self.print_warn(f"recipe already exists: {ini}")
        if mkpkg:
            work = self.ctx.layout.work / f"{name}-{DEFAULT_VERSION}"
            work.mkdir(parents=True, exist_ok=True)
            self.print_ok(f"work directory ready: {work}")
        return EXIT_OK

    def stage(self, stage: str, name: str) -> int:
        recipe = self.ctx.load_recipe(name)
        run_stage(self.ctx, stage, recipe)
        self.print_ok(f"{stage} {recipe.ident}")
        return EXIT_OK

    def all(self, name: str) -> int:
        recipe = self.ctx.load_recipe(name)
        run_pipeline(self.ctx, recipe)
        self.print_ok(f"{recipe.ident} built and installed into {self.ctx.layout.install_root(recipe)}")
        return EXIT_OK

    def info(self, name: str) -> int:
        recipe = self.ctx.load_recipe(name)
        layout: Layout = self.ctx.layout
        table = Table(title=f"{recipe.name} {recipe.version}", show_header=False)
        table.add_column("key", style="bold")
        table.add_column("value")
        for i, url in enumerate(recipe.sources):
            table.add_row(f"url[{i}]", escape(url))
            if recipe.checksum_for(i):
                table.add_row(f"sha256[{i}]", recipe.checksum_for(i))
        if recipe.vcs:
            table.add_row("vcs", escape(recipe.vcs))
        for spec in recipe.patches:
            table.add_row("patch", f"{escape(spec.entry)} ({type(spec).__name__})")
        table.add_row("strip", str(recipe.strip).lower())
        table.add_row("submodules", str(recipe.submodules).lower())
        for hook, expr in recipe.hooks.items():
            if expr:
                table.add_row(hook, escape(expr))
        table.add_row("work", str(layout.work_dir(recipe)))
        table.add_row("root", str(layout.install_root(recipe)))
        table.add_row("installed", "yes" if layout.manifest_path(recipe).exists() else "no")
        self.console.print(table)
        return EXIT_OK

    def sync(self) -> int:
        res = sync_recipes(self.ctx)
        if res["committed"]:
            self.print_ok("recipes committed")
        else:
            self.print_info("recipes unchanged")
        if res["pushed"]:
            self.print_ok("recipes pushed to origin")
        return EXIT_OK

    def search(self, pattern: str) -> int:
        names = find_recipes(self.ctx.layout, pattern)
        for n in names:
            self.console.print(escape(n))
        if not names:
            self.print_warn(f"no recipe matches {pattern}")
        return EXIT_OK

    def revdep(self, name: str) -> int:
        recipe = self.ctx.load_recipe(name)
        report = run_stage(self.ctx, "revdep", recipe)
        for line in format_report(report):
            lib, sep, bins = line.partition(" <- ")
            self.console.print(f"[bold]{escape(lib)}[/]{sep}{escape(bins)}")
        if not report:
            self.print_info("no dynamic dependencies found")
        return EXIT_OK

    def doctor(self, strict: bool = False) -> int:
        found = check_tools(self.ctx, strict=strict or None)
        table = Table(title="external tools")
        table.add_column("tool", style="bold")
        table.add_column("path")
        for tool, path in found.items():
            table.add_row(tool, path or "[red]missing[/red]")
        self.console.print(table)
        return EXIT_OK

    def dispatch(self, args: argparse.Namespace) -> int:
        cmd = args.cmd
        if cmd in ("init", "mkpkg"):
            return self.init(args.name, mkpkg=(cmd == "mkpkg"))
        if cmd in RECIPE_STAGES:
            return self.stage(cmd, args.name)
        if cmd == "all":
            return self.all(args.name)
        if cmd == "info":
            return self.info(args.name)
        if cmd == "search":
            return self.search(args.pattern)
        if cmd == "revdep":
            return self.revdep(args.name)
        if cmd == "doctor":
            return self.doctor(args.strict)
        if cmd == "sync":
            return self.sync()
        raise UsageError(f"unknown command '{cmd}'")


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    err_console = Console(stderr=True)
    parser = make_parser()
    try:
        args = parser.parse_args(normalize_argv(argv))
    except UsageError as e:
        err_console.print(f"[bold red]✖[/] {escape(str(e))}")
        parser.print_usage(sys.stderr)
        return EXIT_USAGE
    except SystemExit as e:
        return int(e.code or 0)
    if not args.cmd:
        parser.print_help()
        return EXIT_USAGE

    try:
        cfg = config_mod.load(args.config, overrides=_overrides(args))
        ctx = BuildContext.create(cfg)
    except CbuildError as e:
        err_console.print(f"[bold red]✖[/] {escape(str(e))}")
        return e.exit_code
    except Exception as e:
        fault = InternalError(f"internal error during setup: {e!r}")
        err_console.print(f"[bold red]✖[/] {escape(str(fault))}")
        return fault.exit_code

    log = ctx.get_logger("cli")
    cli = CbuildCLI(ctx, console=console)
    try:
        return cli.dispatch(args)
    except CbuildError as e:
        log.error("%s: %s", type(e).__name__, e)
        return e.exit_code
    except KeyboardInterrupt:
        log.error("interrupted")
        return 130
    except Exception as e:
        fault = InternalError(f"internal error: {e!r}")
        log.error("%s", fault)
        log.debug("traceback of internal fault", exc_info=True)
        return fault.exit_code
    finally:
        ctx.close()


if __name__ == "__main__":
    sys.exit(main())
