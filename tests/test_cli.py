"""
Tests for the command line: name resolution, exit codes and a full hello build.
"""

import io
import textwrap

import pytest
from rich.console import Console

from cbuild import cli
from cbuild.cli import main, normalize_argv, resolve_command
from cbuild.errors import UsageError
from cbuild.revdep import QUERIES
from helpers import needs_bash, needs_git, needs_make, needs_patch, sha256


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def run(base, console):
    def _run(*args):
        return main(["--base", str(base), "--no-spinner", "-q", *args], console=console)
    return _run


class TestResolve:
    @pytest.mark.parametrize("word,expected", [
        ("dl", "fetch"), ("x", "extract"), ("p", "patch"), ("b", "build"), ("i", "install"),
        ("rm", "remove"), ("srch", "search"), ("inf", "info"), ("rv", "revdep"), ("mk", "mkpkg"),
        ("fet", "fetch"), ("ext", "extract"), ("doc", "doctor"), ("build", "build"), ("sy", "sync"),
    ])
    def test_known(self, word, expected):
        assert resolve_command(word) == expected

    def test_ambiguous_prefix(self):
        with pytest.raises(UsageError, match="ambiguous"):
            resolve_command("in")

    def test_unknown(self):
        with pytest.raises(UsageError, match="unknown"):
            resolve_command("frobnicate")

    def test_normalize_skips_option_values(self):
        assert normalize_argv(["--base", "b", "--config", "c.yaml", "-q", "i", "hello"]) == \
            ["--base", "b", "--config", "c.yaml", "-q", "install", "hello"]


class TestExitCodes:
    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert "cbuild" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 2

    def test_unknown_command(self, capsys):
        assert main(["frobnicate"]) == 2

    def test_missing_argument(self, capsys):
        assert main(["fetch"]) == 2

    def test_missing_recipe(self, run):
        assert run("fetch", "nosuchpkg") == 1

    def test_bad_config_file(self, base, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("[unclosed\n")
        assert main(["--config", str(bad), "--base", str(base), "search", "x"]) == 1

    @pytest.mark.parametrize("text", ["build: null\n", "paths: 5\n", "logging: []\n"])
    def test_non_mapping_config_section(self, base, tmp_path, text, capsys):
        bad = tmp_path / "section.yaml"
        bad.write_text(text)
        assert main(["--config", str(bad), "--base", str(base), "search", "x"]) == 1
        assert "must be a mapping" in " ".join(capsys.readouterr().err.split())

    def test_setup_fault(self, base, monkeypatch, capsys):
        def boom(cfg):
            raise RuntimeError("context exploded")

        monkeypatch.setattr(cli.BuildContext, "create", staticmethod(boom))
        assert main(["--base", str(base), "search", "x"]) == 100
        assert "internal error" in " ".join(capsys.readouterr().err.split())

    def test_internal_fault(self, run, monkeypatch):
        def boom(*a, **k):
            raise RuntimeError("boom")

        monkeypatch.setattr(cli, "run_stage", boom)
        assert run("init", "hello") == 0
        assert run("fetch", "hello") == 100

    def test_interrupt(self, run, monkeypatch):
        def stop(*a, **k):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli, "run_stage", stop)
        run("init", "hello")
        assert run("build", "hello") == 130


class TestRecipeCommands:
    def test_init_and_search(self, run, base, console):
        assert run("init", "hello") == 0
        assert (base / "recipes" / "hello" / "recipe.ini").is_file()
        assert run("mk", "zlib") == 0
        assert (base / "work" / "zlib-1.0.0").is_dir()
        assert run("srch", "HEL") == 0
        out = console.file.getvalue()
        assert "recipe created" in out
        assert "hello" in out.splitlines()[-1]

    def test_init_twice_warns(self, run, console):
        run("init", "hello")
        assert run("init", "hello") == 0
        assert "already exists" in console.file.getvalue()

    def test_info(self, run, base, console):
        run("init", "hello")
        assert run("inf", "hello") == 0
        out = console.file.getvalue()
        assert "hello 1.0.0" in out
        assert "installed" in out

    def test_doctor(self, run, console):
        assert run("doctor") == 0
        assert "external tools" in console.file.getvalue()

    def test_revdep_report(self, run, base, console, monkeypatch):
        run("init", "hello")
        bindir = base / "destdir" / "hello-1.0.0" / "usr" / "bin"
        bindir.mkdir(parents=True)
        (bindir / "hello").write_bytes(b"\x7fELF\x02\x01")
        (bindir / "hola").write_bytes(b"\x7fELF\x02\x01")
        monkeypatch.setitem(QUERIES, "ldd", lambda path, logger=None: {"libc.so.6"})
        monkeypatch.setitem(QUERIES, "readelf", lambda path, logger=None: {"libc.so.6"})
        assert run("rv", "hello") == 0
        assert "libc.so.6 <- usr/bin/hello, usr/bin/hola" in console.file.getvalue()

    @needs_git
    def test_sync(self, run, base, console):
        run("init", "hello")
        assert run("sync") == 0
        assert (base / "recipes" / ".git").is_dir()
        assert run("sy") == 0
        out = console.file.getvalue()
        assert "recipes committed" in out
        assert "recipes unchanged" in out


MAKEFILE = """\
all: hello

hello: hello.sh
\tcp hello.sh hello && chmod +x hello

install: hello
\tmkdir -p $(DESTDIR)/usr/bin && cp hello $(DESTDIR)/usr/bin/hello
"""

GREETING_PATCH = textwrap.dedent("""\
    --- a/hello.sh
    +++ b/hello.sh
    @@ -1,2 +1,2 @@
     #!/bin/sh
    -echo hello
    +echo hello, world
""")


@needs_bash
@needs_make
@needs_git
@needs_patch
def test_full_build_then_remove(run, base, make_tarball):
    tarball = make_tarball("hello-2.12.tar.gz", {
        "Makefile": MAKEFILE,
        "hello.sh": "#!/bin/sh\necho hello\n",
    }, top="hello-2.12")
    recipe_dir = base / "recipes" / "hello"
    recipe_dir.mkdir(parents=True)
    (recipe_dir / "greeting.patch").write_text(GREETING_PATCH)
    (recipe_dir / "recipe.ini").write_text(textwrap.dedent(f"""\
        [package]
        name=hello
        version=2.12
        url={tarball.as_uri()}
        sha256={sha256(tarball)}
        patches=greeting.patch
        strip=false

        [options]
        build=make
        install=make install
    """))

    assert run("all", "hello") == 0
    root = base / "destdir" / "hello-2.12"
    assert (root / "usr" / "bin" / "hello").read_text() == "#!/bin/sh\necho hello, world\n"
    manifest = base / "logs" / "hello-2.12.manifest"
    assert manifest.read_text() == "usr/bin/hello\n"
    assert (base / "logs" / "cbuild.log").is_file()

    assert run("rm", "hello") == 0
    assert not root.exists()
    assert not manifest.exists()
