"""
Tests for manifest-driven removal.
"""

import pytest

from cbuild.errors import PostHookError
from cbuild.manifest import ManifestStore, collect
from cbuild.remove import remove
from helpers import needs_bash


@pytest.fixture
def installed(ctx, write_recipe):
    """An installation root with a manifest, as install would leave it."""
    def _make(package: str = ""):
        recipe = write_recipe("hello", f"[package]\nname=hello\nversion=2.12\n{package}\n")
        root = ctx.layout.install_root(recipe)
        (root / "usr" / "bin").mkdir(parents=True)
        (root / "usr" / "bin" / "hello").write_text("bin\n")
        (root / "usr" / "share").mkdir()
        (root / "usr" / "share" / "hello.txt").write_text("doc\n")
        ManifestStore(ctx.layout.manifest_path(recipe)).record(root)
        return recipe
    return _make


def test_collect_lists_files_only(tmp_path):
    (tmp_path / "a" / "b").mkdir(parents=True)
    (tmp_path / "a" / "b" / "f").write_text("")
    (tmp_path / "top").write_text("")
    (tmp_path / "link").symlink_to(tmp_path / "top")
    assert collect(tmp_path) == ["a/b/f", "link", "top"]


def test_collect_records_links_without_following(tmp_path):
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "libx.so.1").write_text("")
    (tmp_path / "dangling").symlink_to(tmp_path / "nowhere")
    (tmp_path / "lib64").symlink_to("lib")
    assert collect(tmp_path) == ["dangling", "lib/libx.so.1", "lib64"]


def test_remove_unlinks_recorded_links(ctx, installed):
    recipe = installed()
    root = ctx.layout.install_root(recipe)
    outside = root.parent / "outside.txt"
    outside.write_text("keep\n")
    (root / "usr" / "dangling").symlink_to(root / "usr" / "gone")
    (root / "usr" / "outside").symlink_to(outside)
    ManifestStore(ctx.layout.manifest_path(recipe)).record(root)
    remove(ctx, recipe)
    assert not root.exists()
    assert outside.read_text() == "keep\n"


def test_removes_root_and_manifest(ctx, installed):
    recipe = installed()
    root = ctx.layout.install_root(recipe)
    (root / "untracked").write_text("x")
    res = remove(ctx, recipe)
    assert res["deleted"] == 2
    assert res["manifest"] is True
    assert not root.exists()
    assert not ctx.layout.manifest_path(recipe).exists()
    assert res["snapshot"].endswith("hello-2.12.removed.tar.gz")


def test_missing_listed_files_tolerated(ctx, installed):
    recipe = installed()
    (ctx.layout.install_root(recipe) / "usr" / "share" / "hello.txt").unlink()
    assert remove(ctx, recipe)["deleted"] == 1


def test_without_manifest(ctx, installed, log_stream):
    recipe = installed()
    ctx.layout.manifest_path(recipe).unlink()
    res = remove(ctx, recipe)
    assert res["manifest"] is False
    assert not ctx.layout.install_root(recipe).exists()
    assert "no manifest" in log_stream.getvalue()


def test_escaping_entries_ignored(ctx, installed, tmp_path):
    recipe = installed()
    outside = ctx.layout.destdir / "victim"
    outside.write_text("keep me")
    with open(ctx.layout.manifest_path(recipe), "a") as f:
        f.write("../victim\n")
        f.write(f"{outside}\n")
    remove(ctx, recipe)
    assert outside.read_text() == "keep me"


def test_nothing_installed(ctx, write_recipe):
    recipe = write_recipe("hello", "[package]\nname=hello\n")
    res = remove(ctx, recipe)
    assert res["snapshot"] is None
    assert res["deleted"] == 0


@needs_bash
class TestPostremove:
    def test_runs_in_base_dir(self, ctx, installed):
        recipe = installed("postremove=echo \"$DESTDIR\" > postremove.txt")
        remove(ctx, recipe)
        marker = ctx.layout.base / "postremove.txt"
        assert marker.read_text().strip() == str(ctx.layout.install_root(recipe))

    def test_failure_after_removal(self, ctx, installed):
        recipe = installed("postremove=exit 5")
        with pytest.raises(PostHookError) as exc:
            remove(ctx, recipe)
        assert exc.value.hook == "postremove"
        assert exc.value.returncode == 5
        assert not ctx.layout.install_root(recipe).exists()
