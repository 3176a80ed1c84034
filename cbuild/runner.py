# cbuild/runner.py
"""
runner.py - external command execution for cbuild

Every tool invocation goes through run_command(): an argument vector, never a
shell string. Output (stderr merged into stdout) is read line by line, written
to the log at DEBUG and optionally echoed to the terminal. Calls block until the
child exits; there is no timeout.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, TextIO, Type, Union

from cbuild.errors import CbuildError

PathLike = Union[str, Path]


@dataclass
class CommandResult:
    argv: List[str]
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def lines(self) -> List[str]:
        return self.output.splitlines()


def which(tool: str) -> Optional[str]:
    return shutil.which(tool)


def merged_env(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env = os.environ.copy()
    if extra:
        env.update({k: str(v) for k, v in extra.items()})
    return env


def run_command(argv: Sequence[PathLike], cwd: Optional[PathLike] = None,
                env: Optional[Dict[str, str]] = None, logger=None, echo: bool = False,
                stream: Optional[TextIO] = None, stdin_path: Optional[PathLike] = None) -> CommandResult:
    """Run argv and capture output. A missing executable yields returncode 127."""
    args = [str(a) for a in argv]
    if logger is not None:
        logger.debug("RUN: %s (cwd=%s)", " ".join(args), str(cwd) if cwd else None)
    out = stream if stream is not None else sys.stderr
    captured: List[str] = []
    stdin = open(stdin_path, "rb") if stdin_path else subprocess.DEVNULL
    try:
        try:
            proc = subprocess.Popen(args, cwd=str(cwd) if cwd else None, env=env,
                                    stdin=stdin, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                    text=True, errors="replace", bufsize=1)
        except FileNotFoundError as e:
            if logger is not None:
                logger.debug("command not found: %s", e)
            return CommandResult(args, 127, str(e))
        except PermissionError as e:
            return CommandResult(args, 126, str(e))
        with proc.stdout:
            for line in proc.stdout:
                captured.append(line)
                if logger is not None:
                    logger.debug("| %s", line.rstrip("\n"))
                if echo:
                    out.write(line)
                    out.flush()
        rc = proc.wait()
    finally:
        if stdin_path:
            stdin.close()
    return CommandResult(args, rc, "".join(captured))


def check_command(argv: Sequence[PathLike], error: Type[CbuildError] = CbuildError,
                  message: Optional[str] = None, **kwargs) -> CommandResult:
    """run_command() that raises `error` on non-zero exit."""
    res = run_command(argv, **kwargs)
    if not res.ok:
        tail = res.output.strip().splitlines()[-1:] if res.output.strip() else []
        msg = message or f"command failed{': ' + tail[0] if tail else ''}"
        raise error(msg, command=res.argv, returncode=res.returncode)
    return res
