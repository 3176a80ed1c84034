"""
Tests for committing and pushing the recipe tree.
"""

import subprocess

import pytest

from cbuild.errors import FilesystemError, NetworkError
from cbuild.sync import sync_recipes
from helpers import git, needs_git

pytestmark = needs_git


@pytest.fixture
def recipes(ctx, write_recipe):
    write_recipe("hello", "[package]\nname=hello\nversion=2.12\n")
    return ctx.layout.recipes


def _subjects(git_dir) -> list:
    out = subprocess.run(["git", "--git-dir", str(git_dir), "log", "--all", "--format=%s"],
                         check=True, capture_output=True, text=True)
    return out.stdout.split("\n")[:-1]


def test_first_sync_commits_locally(ctx, recipes):
    res = sync_recipes(ctx)
    assert res == {"ok": True, "committed": True, "pushed": False}
    assert (recipes / ".git").is_dir()
    assert _subjects(recipes / ".git") == ["cbuild sync"]
    assert "hello/recipe.ini" in git(recipes, "ls-files").split()


def test_unchanged_tree_makes_no_commit(ctx, recipes):
    sync_recipes(ctx)
    assert sync_recipes(ctx)["committed"] is False
    (recipes / "hello" / "fix.patch").write_text("--- a\n+++ b\n")
    assert sync_recipes(ctx)["committed"] is True
    assert _subjects(recipes / ".git") == ["cbuild sync", "cbuild sync"]


def test_commits_use_configured_identity(ctx, recipes):
    ctx.config.merged["patches"]["git_name"] = "Recipe Bot"
    ctx.config.merged["patches"]["git_email"] = "bot@example.org"
    sync_recipes(ctx)
    assert git(recipes, "log", "-1", "--format=%an <%ae>").strip() == "Recipe Bot <bot@example.org>"


def test_pushes_to_origin(ctx, recipes, tmp_path):
    remote = tmp_path / "remote.git"
    subprocess.run(["git", "init", "--bare", "-q", str(remote)], check=True)
    sync_recipes(ctx)
    git(recipes, "remote", "add", "origin", str(remote))

    res = sync_recipes(ctx)
    assert res["pushed"] is True
    assert res["committed"] is False
    assert _subjects(remote) == ["cbuild sync"]


def test_push_failure(ctx, recipes, tmp_path):
    sync_recipes(ctx)
    git(recipes, "remote", "add", "origin", str(tmp_path / "no-such-remote.git"))
    with pytest.raises(NetworkError, match="push"):
        sync_recipes(ctx)


def test_missing_recipe_tree(ctx):
    ctx.layout.recipes.rmdir()
    with pytest.raises(FilesystemError, match="recipe directory"):
        sync_recipes(ctx)
