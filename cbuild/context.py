# cbuild/context.py
"""
context.py - per-invocation state handed to every stage

BuildContext is built once by the CLI (or a test) and passed explicitly;
stages never reach for module level config or loggers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, TextIO

from cbuild.config import Config
from cbuild.layout import Layout
from cbuild.logging import CbuildLogger, StageLogger
from cbuild.recipe import Recipe, load as load_recipe


@dataclass
class BuildContext:
    config: Config
    layout: Layout
    logs: CbuildLogger
    spinner: bool = True
    echo: bool = True

    @classmethod
    def create(cls, config: Config, stream: Optional[TextIO] = None) -> "BuildContext":
        layout = Layout(config.base)
        layout.ensure_dirs()
        logs = CbuildLogger(config.get("logging", {}), log_dir=layout.logs, stream=stream)
        return cls(
            config=config,
            layout=layout,
            logs=logs,
            spinner=bool(config.get("ui.spinner", True)),
            echo=bool(config.get("ui.echo", True)),
        )

    def get_logger(self, module: str) -> StageLogger:
        return self.logs.get_logger(module)

    def load_recipe(self, name: str) -> Recipe:
        return load_recipe(self.layout.recipe_file(name))

    def close(self):
        self.logs.close()
