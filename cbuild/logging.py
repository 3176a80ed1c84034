# cbuild/logging.py
# -*- coding: utf-8 -*-
"""
cbuild logging

Features:
 - Console color formatter on the diagnostic stream (stderr)
 - Append-only file log under <base>/logs
 - Extra OK level between INFO and WARNING for stage successes
 - Per-invocation CbuildLogger: handlers are attached on construction and detached by close()
 - Module adapters injecting 'cbuild_module' into every record
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, TextIO

OK = 25
logging.addLevelName(OK, "OK")

# ----------------------
# Color formatter
# ----------------------
class ColorFormatter(logging.Formatter):
    COLORS = {
        logging.DEBUG: "\033[37m",    # light gray
        logging.INFO: "\033[36m",     # cyan
        OK: "\033[32m",               # green
        logging.WARNING: "\033[33m",  # yellow
        logging.ERROR: "\033[31m",    # red
        logging.CRITICAL: "\033[41;37m", # white on red
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str = None, datefmt: str = None, color: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.color = color

    def format(self, record):
        msg = super().format(record)
        if self.color:
            color = self.COLORS.get(record.levelno, "")
            return f"{color}{msg}{self.RESET}"
        return msg

class ModuleDefaultFilter(logging.Filter):
    """Fill 'cbuild_module' for records emitted through plain child loggers."""

    def filter(self, record):
        if not hasattr(record, "cbuild_module"):
            record.cbuild_module = record.name.rsplit(".", 1)[-1]
        return True

# ----------------------
# Adapter with the extra level
# ----------------------
class StageLogger(logging.LoggerAdapter):
    """LoggerAdapter that injects 'cbuild_module' and knows the OK level."""

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def ok(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(OK, msg, *args, **kwargs)

# ----------------------
# CbuildLogger
# ----------------------
class CbuildLogger:
    """
    Owns the handlers of the "cbuild" logger for one invocation.

    cfg is the merged "logging" section; log_dir is used when cfg has no explicit file.
    """

    def __init__(self, cfg: dict, log_dir: Optional[Path] = None, stream: Optional[TextIO] = None):
        self._root = logging.getLogger("cbuild")
        self._root.setLevel(logging.DEBUG)  # capture everything; handlers will filter
        self._root.propagate = False
        self._handlers: List[logging.Handler] = []
        self.file_path: Optional[Path] = None
        self._apply_config(cfg, log_dir, stream)

    def _apply_config(self, cfg: dict, log_dir: Optional[Path], stream: Optional[TextIO]):
        # a previous invocation in the same process may have left handlers behind
        for h in list(self._root.handlers):
            self._root.removeHandler(h)
            h.close()

        fmt = cfg.get("format") or "[%(asctime)s] [%(levelname)s] [%(cbuild_module)s] %(message)s"
        datefmt = cfg.get("datefmt", "%H:%M:%S")

        out = stream if stream is not None else sys.stderr
        ch = logging.StreamHandler(out)
        ch.setLevel(getattr(logging, str(cfg.get("level", "INFO")).upper(), logging.INFO))
        color = bool(cfg.get("color", True)) and hasattr(out, "isatty") and out.isatty()
        ch.setFormatter(ColorFormatter(fmt, datefmt=datefmt, color=color))
        self._add(ch)

        file_path = cfg.get("file")
        if not file_path and log_dir is not None:
            file_path = Path(log_dir) / "cbuild.log"
        if file_path:
            file_path = Path(file_path).expanduser()
            file_path.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(str(file_path), mode="a", encoding="utf-8")
            fh.setLevel(getattr(logging, str(cfg.get("file_level", "DEBUG")).upper(), logging.DEBUG))
            fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(cbuild_module)s] %(message)s",
                                              datefmt="%Y-%m-%d %H:%M:%S"))
            self._add(fh)
            self.file_path = file_path

    def _add(self, handler: logging.Handler):
        handler.addFilter(ModuleDefaultFilter())
        self._root.addHandler(handler)
        self._handlers.append(handler)

    def get_logger(self, module_name: str) -> StageLogger:
        """Return an adapter that injects 'cbuild_module' into records."""
        return StageLogger(self._root, {"cbuild_module": module_name})

    def close(self):
        for h in self._handlers:
            self._root.removeHandler(h)
            h.close()
        self._handlers.clear()
