# cbuild/config.py
# -*- coding: utf-8 -*-
"""
cbuild configuration loader

Features:
- Read YAML/JSON config from the first existing candidate (explicit, env override, user, system)
- Merge with authoritative DEFAULTS, normalize paths and coerce basic types
- Validate structure and types, warn or raise ConfigError (fatal optional)
- Typed access via the Config dataclass with dotted get()
- No module state: every load() returns a fresh Config owned by the caller
"""

from __future__ import annotations

import json
import logging
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from cbuild.errors import ConfigError

logger = logging.getLogger("cbuild.config")

# ----------------------------
# DEFAULT configuration (authoritative base)
# ----------------------------
DEFAULTS: Dict[str, Any] = {
    "paths": {
        "base": "~/.cbuild",
    },
    "logging": {
        "level": "INFO",
        "file_level": "DEBUG",
        "file": None,  # defaults to <base>/logs/cbuild.log
        "color": True,
        "format": "[%(asctime)s] [%(levelname)s] [%(cbuild_module)s] %(message)s",
        "datefmt": "%H:%M:%S",
    },
    "fetcher": {
        "timeout": None,
        "chunk_size": 65536,
        "user_agent": "cbuild/1.0",
    },
    "build": {
        "shell": ["bash", "-e", "-o", "pipefail", "-c"],
        "jobs": os.cpu_count() or 1,
    },
    "install": {
        "default_command": "make install",
        "destdir_var": "DESTDIR",
        "use_fakeroot": True,
        "strip_command": ["strip", "--strip-unneeded"],
    },
    "snapshot": {
        "compressor": "auto",  # auto | zstd | gzip
    },
    "patches": {
        "extensions": [".patch", ".diff", ".mbox"],
        "git_name": "cbuild",
        "git_email": "cbuild@localhost",
    },
    "revdep": {
        "query": "ldd",  # ldd | readelf
    },
    "ui": {
        "spinner": True,
        "echo": True,
    },
    "preflight": {
        "tools": ["git", "tar", "patch", "bash", "ldd", "strip"],
        "strict": False,
    },
}

ENV_CONFIG = "CBUILD_CONFIG"
ENV_HOME = "CBUILD_HOME"

# ----------------------------
# Dataclass to hold config
# ----------------------------
@dataclass
class Config:
    raw: Dict[str, Any] = field(default_factory=dict)     # values loaded from file (if any)
    merged: Dict[str, Any] = field(default_factory=dict)  # merged with DEFAULTS
    source: Optional[Path] = None

    def get(self, path: str, default: Any = None) -> Any:
        """Dot-separated getter for merged config."""
        parts = path.split(".") if path else []
        cur: Any = self.merged
        for p in parts:
            if isinstance(cur, dict) and p in cur:
                cur = cur[p]
            else:
                return default
        return cur

    def as_dict(self) -> Dict[str, Any]:
        return deepcopy(self.merged)

    @property
    def base(self) -> Path:
        return Path(self.merged["paths"]["base"])

# ----------------------------
# Utilities
# ----------------------------
def _expand_path(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    return os.path.abspath(os.path.expanduser(os.path.expandvars(str(val))))

def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    res = deepcopy(a)
    for k, v in b.items():
        if k in res and isinstance(res[k], dict) and isinstance(v, dict):
            res[k] = _deep_merge(res[k], v)
        else:
            res[k] = deepcopy(v)
    return res

def _find_candidates(explicit: Optional[str] = None) -> List[Path]:
    candidates: List[Path] = []
    env = os.environ.get(ENV_CONFIG)
    if explicit:
        candidates.append(Path(explicit))
    if env:
        candidates.append(Path(env))
    candidates.extend([
        Path.home() / ".config" / "cbuild" / "config.yaml",
        Path("/etc") / "cbuild" / "config.yaml",
    ])
    return candidates

def _load_file(path: Path) -> Dict[str, Any]:
    try:
        txt = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(txt)
        else:
            data = yaml.safe_load(txt)
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot parse config {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config {path} must contain a mapping at top level")
    for section, value in data.items():
        if section in DEFAULTS and not isinstance(value, dict):
            raise ConfigError(f"config {path}: section '{section}' must be a mapping, got {type(value).__name__}")
    return data


def _normalize_and_coerce(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize path fields and coerce basic types."""
    out = deepcopy(cfg)
    out["paths"]["base"] = _expand_path(out["paths"].get("base") or DEFAULTS["paths"]["base"])
    if out["logging"].get("file"):
        out["logging"]["file"] = _expand_path(out["logging"]["file"])

    try:
        out["build"]["jobs"] = int(out["build"].get("jobs", 1))
    except (TypeError, ValueError):
        logger.debug("config: failed to coerce build.jobs", exc_info=True)

    # shell and strip commands may be given as a single string
    for section, key in (("build", "shell"), ("install", "strip_command")):
        val = out[section].get(key)
        if isinstance(val, str):
            out[section][key] = val.split()
    return out

def _validate_structure(cfg: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Return (ok, issues_list). Non-fatal warnings unless called with fatal=True in load."""
    warnings: List[str] = []
    for k in cfg.keys():
        if k not in DEFAULTS:
            warnings.append(f"Unknown top-level config key: {k}")
    bj = cfg["build"].get("jobs")
    if not isinstance(bj, int) or bj < 1:
        warnings.append("build.jobs must be integer >= 1")
    if not isinstance(cfg["build"].get("shell"), list) or not cfg["build"]["shell"]:
        warnings.append("build.shell must be a non-empty list")
    if cfg["snapshot"].get("compressor") not in ("auto", "zstd", "gzip"):
        warnings.append("snapshot.compressor must be one of auto, zstd, gzip")
    if cfg["revdep"].get("query") not in ("ldd", "readelf"):
        warnings.append("revdep.query must be ldd or readelf")
    exts = cfg["patches"].get("extensions")
    if not isinstance(exts, list):
        warnings.append("patches.extensions should be a list")
    return (len(warnings) == 0, warnings)

# ----------------------------
# Loading
# ----------------------------
def _find_path(explicit: Optional[str] = None) -> Optional[Path]:
    if explicit and not Path(explicit).exists():
        raise ConfigError(f"config file not found: {explicit}")
    for p in _find_candidates(explicit):
        if p.exists():
            return p
    return None

def load(explicit_path: Optional[str] = None, fatal: bool = False,
         overrides: Optional[Dict[str, Any]] = None) -> Config:
    """
    Load and merge config. If fatal=True then structural validation failures raise.
    `overrides` is merged last (used by the CLI for --base and friends).
    """
    cfg_path = _find_path(explicit_path)
    raw: Dict[str, Any] = _load_file(cfg_path) if cfg_path else {}
    merged = _deep_merge(DEFAULTS, raw)
    home = os.environ.get(ENV_HOME)
    if home:
        merged["paths"]["base"] = home
    if overrides:
        merged = _deep_merge(merged, overrides)
    normalized = _normalize_and_coerce(merged)
    ok, issues = _validate_structure(normalized)
    if not ok:
        msg = f"config: validation issues: {issues}"
        if fatal:
            raise ConfigError(msg)
        logger.warning(msg)
    logger.debug("config: loaded merged config (from=%s)", str(cfg_path) if cfg_path else "<defaults>")
    return Config(raw=raw, merged=normalized, source=cfg_path)
