# cbuild/preflight.py
"""preflight.py - check that the external tools cbuild drives are on PATH."""

from __future__ import annotations

from typing import Dict, Optional

from cbuild.errors import ConfigError
from cbuild.runner import which


def check_tools(ctx, strict: Optional[bool] = None) -> Dict[str, Optional[str]]:
    log = ctx.get_logger("preflight")
    tools = ctx.config.get("preflight.tools", [])
    strict = ctx.config.get("preflight.strict", False) if strict is None else strict
    found = {tool: which(tool) for tool in tools}
    missing = [t for t, p in found.items() if p is None]
    for t in missing:
        log.warning("tool not found on PATH: %s", t)
    if missing and strict:
        raise ConfigError(f"missing required tools: {', '.join(missing)}")
    if not missing:
        log.ok("all %d tools available", len(tools))
    return found
