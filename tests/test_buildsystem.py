"""
Tests for hook execution and the build stage.
"""

import pytest

from cbuild.buildsystem import BUILD_SEQUENCE, build, run_hook, shell_argv
from cbuild.errors import BuildStepError, FilesystemError
from helpers import needs_bash

pytestmark = needs_bash


@pytest.fixture
def hello(ctx, write_recipe):
    def _make(options: str):
        recipe = write_recipe("hello", "[package]\nname=hello\nversion=2.12\n[options]\n" + options)
        ctx.layout.work_dir(recipe).mkdir(parents=True, exist_ok=True)
        return recipe
    return _make


def test_runs_in_fixed_order(ctx, hello):
    recipe = hello(
        "build=echo build >> order.txt\n"
        "configure=echo configure >> order.txt\n"
        "prepare=echo prepare >> order.txt\n"
        "prebuild=echo prebuild >> order.txt\n"
    )
    res = build(ctx, recipe)
    assert [s["stage"] for s in res["stages"]] == list(BUILD_SEQUENCE)
    order = (ctx.layout.work_dir(recipe) / "order.txt").read_text().split()
    assert order == ["prebuild", "prepare", "configure", "build"]


def test_empty_hooks_are_skipped(ctx, hello, log_stream):
    recipe = hello("build=touch built\n")
    res = build(ctx, recipe)
    assert [s["ran"] for s in res["stages"]] == [False, False, False, True]
    assert (ctx.layout.work_dir(recipe) / "built").exists()
    assert "configure: (empty)" in log_stream.getvalue()


def test_failure_stops_the_sequence(ctx, hello):
    recipe = hello("configure=exit 7\nbuild=touch built\n")
    with pytest.raises(BuildStepError) as exc:
        build(ctx, recipe)
    assert exc.value.stage == "configure"
    assert exc.value.returncode == 7
    assert exc.value.command == "exit 7"
    assert not (ctx.layout.work_dir(recipe) / "built").exists()


def test_pipeline_failure_fails_the_hook(ctx, hello):
    recipe = hello("build=false | true\n")
    with pytest.raises(BuildStepError):
        build(ctx, recipe)


def test_hook_environment(ctx, hello):
    recipe = hello('build=echo "$CBUILD_NAME $CBUILD_VERSION $(pwd -P)" > env.txt\n')
    build(ctx, recipe)
    work = ctx.layout.work_dir(recipe)
    assert (work / "env.txt").read_text().split() == ["hello", "2.12", str(work.resolve())]


def test_missing_work_tree(ctx, write_recipe):
    recipe = write_recipe("hello", "[package]\nname=hello\n[options]\nbuild=make\n")
    with pytest.raises(FilesystemError):
        build(ctx, recipe)


def test_run_hook_explicit_expression(ctx, hello):
    recipe = hello("")
    assert run_hook(ctx, recipe, "custom", expr="   ") is None
    res = run_hook(ctx, recipe, "custom", expr="echo hi")
    assert res.lines == ["hi"]


def test_shell_fallback_keeps_pipefail(ctx, hello):
    ctx.config.merged["build"].pop("shell")
    assert shell_argv(ctx, "make") == ["bash", "-e", "-o", "pipefail", "-c", "make"]
    recipe = hello("build=false | true\n")
    with pytest.raises(BuildStepError):
        build(ctx, recipe)
