# cbuild/recipe.py
"""
recipe.py - loader and model for recipe.ini files

Features:
- Parse the INI-like recipe format ([package] / [options], key=value, '#' and ';' comments)
- Comma separated lists with trimmed values (url, sha256, patches)
- Patch entries classified once into a tagged union at load time
- Recipe template creation (init / mkpkg) and text search over the recipe tree
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from cbuild.errors import ConfigError

DEFAULT_VERSION = "1.0.0"
HOOK_NAMES = ("prebuild", "prepare", "configure", "build", "install", "postinstall", "postremove")
REMOTE_SCHEMES = ("http://", "https://", "ftp://", "file://")
TRUE_TOKENS = ("1", "true", "yes", "on")

TEMPLATE = """[package]
name={name}
version={version}
url=
sha256=
vcs=
patches=
strip=true
postremove=
submodules=false

[options]
prebuild=
configure=
prepare=
build=
install=
postinstall=
"""

# -------------------------
# Patch spec variants
# -------------------------
@dataclass(frozen=True)
class LocalFile:
    path: Path
    entry: str


@dataclass(frozen=True)
class LocalDir:
    path: Path
    entry: str


@dataclass(frozen=True)
class RemoteURL:
    url: str
    entry: str


@dataclass(frozen=True)
class VcsCherryPick:
    repo: str
    refspec: str
    entry: str


PatchSpec = Union[LocalFile, LocalDir, RemoteURL, VcsCherryPick]


def classify_patch(entry: str, recipe_dir: Path) -> PatchSpec:
    """Turn one comma separated patch entry into its variant."""
    if entry.startswith("git:"):
        repo, sep, ref = entry[4:].rpartition("@")
        if not sep or not repo or not ref:
            raise ConfigError(f"cherry-pick entry needs git:<repo>@<refspec>: {entry}")
        if ":" not in repo and "/" not in repo:
            raise ConfigError(f"cherry-pick repository must be a URL or path: {entry}")
        if ":" in ref:
            raise ConfigError(f"cherry-pick refspec may not contain ':': {entry}")
        return VcsCherryPick(repo=repo, refspec=ref, entry=entry)
    if entry.startswith(REMOTE_SCHEMES):
        return RemoteURL(url=entry, entry=entry)
    p = Path(entry).expanduser()
    if not p.is_absolute():
        p = recipe_dir / p
    if p.is_dir():
        return LocalDir(path=p, entry=entry)
    return LocalFile(path=p, entry=entry)

# -------------------------
# Recipe
# -------------------------
@dataclass(frozen=True)
class Recipe:
    name: str
    version: str = DEFAULT_VERSION
    sources: Tuple[str, ...] = ()
    checksums: Tuple[str, ...] = ()
    vcs: Optional[str] = None          # repository URL without the "git:" marker
    patches: Tuple[PatchSpec, ...] = ()
    hooks: Dict[str, str] = field(default_factory=dict)
    strip: bool = True
    submodules: bool = False
    recipe_dir: Optional[Path] = None

    @property
    def ident(self) -> str:
        return f"{self.name}-{self.version}"

    def hook(self, name: str) -> str:
        return self.hooks.get(name, "")

    def checksum_for(self, index: int) -> Optional[str]:
        if index < len(self.checksums) and self.checksums[index]:
            return self.checksums[index].lower()
        return None


def split_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def parse_bool(value: str) -> bool:
    return value.strip().lower() in TRUE_TOKENS


def parse_ini(text: str) -> Dict[str, Dict[str, str]]:
    """Flat section -> key -> value map; later keys override earlier ones."""
    sections: Dict[str, Dict[str, str]] = {}
    current = ""
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line[0] in "#;":
            continue
        if line.startswith("[") and line.endswith("]"):
            current = line[1:-1].strip().lower()
            sections.setdefault(current, {})
            continue
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        sections.setdefault(current, {})[k.strip().lower()] = v.strip()
    return sections


def from_text(text: str, recipe_dir: Path) -> Recipe:
    sections = parse_ini(text)
    pkg = sections.get("package", {})
    opts = sections.get("options", {})

    name = pkg.get("name", "")
    if not name:
        raise ConfigError("missing [package].name")
    version = pkg.get("version") or DEFAULT_VERSION

    sources = split_list(pkg.get("url", ""))
    # sha256 is positional: empty slots keep their index
    checksums = [c.strip() for c in pkg.get("sha256", "").split(",")] if pkg.get("sha256", "").strip() else []
    while checksums and not checksums[-1]:
        checksums.pop()
    if len(checksums) > len(sources):
        raise ConfigError(f"{name}: {len(checksums)} checksums for {len(sources)} sources")

    vcs = None
    vcs_raw = pkg.get("vcs", "")
    if vcs_raw:
        if not vcs_raw.startswith("git:") or len(vcs_raw) <= 4:
            raise ConfigError(f"{name}: vcs must be git:<url>, got {vcs_raw!r}")
        vcs = vcs_raw[4:]

    patches = tuple(classify_patch(e, recipe_dir) for e in split_list(pkg.get("patches", "")))

    hooks = {h: opts.get(h, "") for h in HOOK_NAMES if h != "postremove"}
    hooks["postremove"] = pkg.get("postremove", "") or opts.get("postremove", "")

    return Recipe(
        name=name,
        version=version,
        sources=tuple(sources),
        checksums=tuple(checksums),
        vcs=vcs,
        patches=patches,
        hooks=hooks,
        strip=parse_bool(pkg.get("strip", "true")),
        submodules=parse_bool(pkg.get("submodules", "false")),
        recipe_dir=recipe_dir,
    )


def load(path: Path) -> Recipe:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"recipe not found: {path}") from None
    except OSError as e:
        raise ConfigError(f"cannot read recipe {path}: {e}") from e
    return from_text(text, path.parent.resolve())

# -------------------------
# Recipe tree helpers
# -------------------------
def init_recipe(layout, name: str, version: str = DEFAULT_VERSION) -> Tuple[Path, bool]:
    """Write a template recipe. Returns (path, created)."""
    layout.ensure_dirs()
    ini = layout.recipe_file(name)
    if ini.exists():
        return ini, False
    ini.parent.mkdir(parents=True, exist_ok=True)
    ini.write_text(TEMPLATE.format(name=name, version=version), encoding="utf-8")
    return ini, True


def find_recipes(layout, pattern: str) -> List[str]:
    try:
        rx = re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise ConfigError(f"invalid search pattern {pattern!r}: {e}") from e
    found: List[str] = []
    if not layout.recipes.is_dir():
        return found
    for d in sorted(layout.recipes.iterdir()):
        ini = d / "recipe.ini"
        if d.is_dir() and ini.is_file() and rx.search(ini.read_text(encoding="utf-8", errors="replace")):
            found.append(d.name)
    return found
