# cbuild/fetcher.py
"""
fetcher.py - source acquisition for cbuild

Features:
- Download every recipe source (http, https, ftp, file URLs) into <base>/sources
- Skip sources already present (idempotent re-runs)
- Verify positional sha256 checksums; a mismatching artifact is deleted
- Clone or refresh the live git source, with optional recursive submodules
"""

from __future__ import annotations

import hashlib
import os
import tempfile
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Dict, List, Optional

from cbuild.errors import IntegrityError, NetworkError
from cbuild.recipe import Recipe
from cbuild.runner import check_command

# -----------------------------------------------------------------------
# Utility helpers
# -----------------------------------------------------------------------
def _sha256_of_file(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_checksum(path: Path, expected: str, logger=None):
    actual = _sha256_of_file(path)
    if actual != expected.lower():
        raise IntegrityError(f"sha256 mismatch for {path.name}: expected {expected}, got {actual}")
    if logger is not None:
        logger.debug("sha256 ok for %s", path.name)


def verify_sources(ctx, recipe: Recipe):
    """Check every present artifact that has a declared checksum."""
    log = ctx.get_logger("fetcher")
    for i, path in enumerate(ctx.layout.source_paths(recipe)):
        expected = recipe.checksum_for(i)
        if expected and path.exists():
            verify_checksum(path, expected, log)

# -----------------------------------------------------------------------
# Protocol implementations
# -----------------------------------------------------------------------
def download(ctx, url: str, dest: Path) -> Path:
    """
    Download url to dest through a temporary file in the same directory.
    Any non-success status or transport error raises NetworkError.
    """
    log = ctx.get_logger("fetcher")
    timeout = ctx.config.get("fetcher.timeout")
    chunk = int(ctx.config.get("fetcher.chunk_size", 65536))
    dest.parent.mkdir(parents=True, exist_ok=True)
    req = urllib.request.Request(url, headers={"User-Agent": ctx.config.get("fetcher.user_agent", "cbuild")})
    fd, tmp = tempfile.mkstemp(prefix=f".{dest.name}.", suffix=".part", dir=str(dest.parent))
    try:
        log.info("downloading %s", url)
        with os.fdopen(fd, "wb") as f:
            kwargs: Dict[str, Any] = {} if timeout is None else {"timeout": timeout}
            with urllib.request.urlopen(req, **kwargs) as resp:
                status = getattr(resp, "status", None)
                if status is not None and not 200 <= status < 300:
                    raise NetworkError(f"download of {url} returned HTTP {status}")
                for block in iter(lambda: resp.read(chunk), b""):
                    f.write(block)
        os.replace(tmp, dest)
    except urllib.error.HTTPError as e:
        raise NetworkError(f"download of {url} returned HTTP {e.code}") from e
    except (urllib.error.URLError, OSError, ValueError) as e:
        raise NetworkError(f"download of {url} failed: {e}") from e
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)
    return dest


def _git_sync(ctx, recipe: Recipe) -> Path:
    log = ctx.get_logger("fetcher")
    checkout = ctx.layout.vcs_checkout(recipe)
    run = dict(logger=log, echo=ctx.echo)
    if not (checkout / ".git").exists():
        log.info("cloning %s", recipe.vcs)
        check_command(["git", "clone", recipe.vcs, str(checkout)], error=NetworkError,
                      message=f"git clone of {recipe.vcs} failed", **run)
    else:
        log.info("updating %s", checkout.name)
        check_command(["git", "-C", str(checkout), "fetch", "--all", "--tags"], error=NetworkError,
                      message=f"git fetch in {checkout.name} failed", **run)
    if recipe.submodules:
        check_command(["git", "-C", str(checkout), "submodule", "update", "--init", "--recursive"],
                      error=NetworkError, message="submodule update failed", **run)
    return checkout

# -----------------------------------------------------------------------
# Stage entry point
# -----------------------------------------------------------------------
def fetch(ctx, recipe: Recipe) -> Dict[str, Any]:
    log = ctx.get_logger("fetcher")
    ctx.layout.sources.mkdir(parents=True, exist_ok=True)
    res: Dict[str, Any] = {"ok": True, "downloaded": [], "skipped": [], "vcs": None}

    paths: List[Path] = ctx.layout.source_paths(recipe)
    for i, url in enumerate(recipe.sources):
        dest = paths[i]
        if dest.exists():
            log.info("%s already present, skipping download", dest.name)
            res["skipped"].append(str(dest))
        else:
            download(ctx, url, dest)
            res["downloaded"].append(str(dest))
        expected: Optional[str] = recipe.checksum_for(i)
        if expected:
            try:
                verify_checksum(dest, expected, log)
            except IntegrityError:
                dest.unlink()
                log.error("removed corrupt artifact %s", dest.name)
                raise

    if recipe.vcs:
        res["vcs"] = str(_git_sync(ctx, recipe))

    log.ok("fetch complete for %s (%d downloaded, %d cached)",
           recipe.ident, len(res["downloaded"]), len(res["skipped"]))
    return res
