"""
Small helpers shared by the test modules.
"""

import hashlib
import shutil
import subprocess
from pathlib import Path

import pytest

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
needs_patch = pytest.mark.skipif(shutil.which("patch") is None, reason="patch not installed")
needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
needs_make = pytest.mark.skipif(shutil.which("make") is None, reason="make not installed")

GIT_ID = ["-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false"]


def sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def git(repo: Path, *args: str) -> str:
    out = subprocess.run(["git", "-C", str(repo), *GIT_ID, *args],
                         check=True, capture_output=True, text=True)
    return out.stdout


def tree_bytes(root: Path) -> dict:
    """Relative path -> content for every file under root (ignores .git)."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file() and ".git" not in p.relative_to(root).parts
    }
