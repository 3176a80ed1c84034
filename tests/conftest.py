"""
Shared test fixtures and configuration.
"""

import io
import tarfile
import textwrap
from pathlib import Path
from typing import Dict

import pytest

from cbuild import config as config_mod
from cbuild.context import BuildContext
from cbuild.recipe import load as load_recipe


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep user/system config and env overrides out of the tests."""
    monkeypatch.delenv("CBUILD_CONFIG", raising=False)
    monkeypatch.delenv("CBUILD_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


@pytest.fixture
def base(tmp_path: Path) -> Path:
    """Return the workspace base directory."""
    d = tmp_path / "cbuild"
    d.mkdir()
    return d


@pytest.fixture
def overrides(base: Path) -> Dict:
    return {
        "paths": {"base": str(base)},
        "ui": {"spinner": False, "echo": False},
        "install": {"use_fakeroot": False},
        "snapshot": {"compressor": "gzip"},
        "logging": {"level": "DEBUG", "color": False},
    }


@pytest.fixture
def config(overrides):
    return config_mod.load(overrides=overrides)


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def ctx(config, log_stream):
    context = BuildContext.create(config, stream=log_stream)
    yield context
    context.close()


@pytest.fixture
def write_recipe(ctx):
    """Write recipes/<name>/recipe.ini and return the loaded Recipe."""
    def _write(name: str, body: str):
        ini = ctx.layout.recipe_file(name)
        ini.parent.mkdir(parents=True, exist_ok=True)
        ini.write_text(textwrap.dedent(body))
        return load_recipe(ini)
    return _write


@pytest.fixture
def make_tarball(tmp_path: Path):
    """Build a .tar.gz with every file under a single top-level directory."""
    def _make(name: str, files: Dict[str, str], top: str = "pkg-1.0", mode: str = "w:gz") -> Path:
        src = tmp_path / "upstream" / top
        for rel, content in files.items():
            p = src / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content)
        out = tmp_path / "dist" / name
        out.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(out, mode) as tar:
            tar.add(str(src), arcname=top)
        return out
    return _make
