"""Error taxonomy for validation, strategy selection and engine runs."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    CORRUPT = "CORRUPT"
    EMPTY = "EMPTY"
    SAMPLE_RATE_MISMATCH = "SAMPLE_RATE_MISMATCH"
    STRATEGY_FALLBACK = "STRATEGY_FALLBACK"
    ENGINE_FAILURE = "ENGINE_FAILURE"
    IO_FAILURE = "IO_FAILURE"


class MergeError(RuntimeError):
    """Base class for failures that end a merge attempt."""

    kind: ErrorKind = ErrorKind.ENGINE_FAILURE

    def __init__(self, detail: str, *, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if kind is not None:
            self.kind = kind


class EngineFailure(MergeError):
    """ffmpeg exited abnormally without the operation having asked it to stop."""

    kind = ErrorKind.ENGINE_FAILURE

    def __init__(self, returncode: int, stderr: str = "", *, detail: Optional[str] = None) -> None:
        msg = detail or _last_line(stderr) or f"ffmpeg exited with code {returncode}"
        super().__init__(msg)
        self.returncode = returncode
        self.stderr = stderr


class SidecarWriteError(MergeError):
    """Concat list or chapter metadata could not be written."""

    kind = ErrorKind.IO_FAILURE


class MergeCancelled(Exception):
    """Raised inside a merge when its operation context was cancelled by the caller."""


class OperationBusyError(RuntimeError):
    """A merge was started on a context that already has one in flight."""


def _last_line(text: str) -> str:
    for line in reversed((text or "").strip().splitlines()):
        if line.strip():
            return line.strip()
    return ""
