# cbuild/errors.py
"""
errors.py - exception taxonomy for cbuild

Every stage raises a CbuildError subclass; the CLI maps them to exit codes.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union


class CbuildError(Exception):
    exit_code = 1

    def __init__(self, message: str, command: Optional[Union[str, Sequence[str]]] = None,
                 returncode: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.command = command
        self.returncode = returncode

    def __str__(self) -> str:
        parts: List[str] = [self.message]
        if self.command:
            cmd = self.command if isinstance(self.command, str) else " ".join(self.command)
            parts.append(f"command: {cmd}")
        if self.returncode is not None:
            parts.append(f"exit status: {self.returncode}")
        return "; ".join(parts)


class ConfigError(CbuildError):
    pass


class NetworkError(CbuildError):
    pass


class IntegrityError(CbuildError):
    pass


class ExtractionError(CbuildError):
    pass


class PatchApplyError(CbuildError):
    def __init__(self, message: str, entry: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.entry = entry


class BuildStepError(CbuildError):
    def __init__(self, message: str, stage: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.stage = stage


class InstallError(CbuildError):
    pass


class PostHookError(CbuildError):
    def __init__(self, message: str, hook: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.hook = hook


class FilesystemError(CbuildError):
    pass


class SnapshotError(FilesystemError):
    pass


class UsageError(CbuildError):
    exit_code = 2


class InternalError(CbuildError):
    """Raised by the CLI fault boundary for anything that is not a CbuildError."""
    exit_code = 100
