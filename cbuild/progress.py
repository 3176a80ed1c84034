# cbuild/progress.py
"""
progress.py - cosmetic spinner for long running steps

Drawn with rich's Progress on stderr. The refresh thread belongs to rich and
is stopped when the block exits, on success and on error alike.
"""

from __future__ import annotations

import sys
from contextlib import contextmanager
from typing import Iterator, Optional, TextIO

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn


@contextmanager
def spinning(text: str, enabled: bool = True, stream: Optional[TextIO] = None) -> Iterator[Optional[Progress]]:
    """Show a spinner labelled `text` while the block runs.

    Yields None (and draws nothing) when disabled or when the stream is not a
    terminal, so command output and log files never see spinner frames.
    """
    out = stream if stream is not None else sys.stderr
    if not enabled or not (hasattr(out, "isatty") and out.isatty()):
        yield None
        return
    console = Console(file=out)
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                  console=console, transient=True) as prog:
        prog.add_task(description=text, total=None)
        yield prog
