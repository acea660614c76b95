"""Caller-owned handle for the single merge in flight.

The context replaces a hidden module-level "current command": the merger
attaches each ffmpeg process it starts, and `cancel()` kills whatever is
attached. Cancellation is remembered on the context so the merger can tell
a kill it asked for from a crash.
"""
from __future__ import annotations

import subprocess
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger

from .errors import MergeCancelled, OperationBusyError


class OperationContext:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._cancel = threading.Event()
        self._active = False
        self._proc: Optional[subprocess.Popen] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def begin(self) -> None:
        with self._lock:
            if self._active:
                raise OperationBusyError("a merge is already running on this context")
            self._active = True

    def end(self) -> None:
        with self._lock:
            self._active = False
            self._proc = None
            self._cancel.clear()

    @contextmanager
    def running(self) -> Iterator["OperationContext"]:
        self.begin()
        try:
            yield self
        finally:
            self.end()

    def attach(self, proc: subprocess.Popen) -> None:
        with self._lock:
            self._proc = proc
            cancelled = self._cancel.is_set()
        if cancelled:
            _kill(proc)

    def detach(self, proc: Optional[subprocess.Popen] = None) -> None:
        with self._lock:
            if proc is None or self._proc is proc:
                self._proc = None

    def cancel(self) -> None:
        """Stop the running merge now. Safe to call from any thread, any time."""
        self._cancel.set()
        with self._lock:
            proc = self._proc
        if proc is not None:
            logger.info("Cancelling merge: killing ffmpeg (pid {})", proc.pid)
            _kill(proc)

    def raise_if_cancelled(self) -> None:
        if self._cancel.is_set():
            raise MergeCancelled()


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        try:
            proc.kill()
        except OSError:
            # Already gone between poll() and kill()
            pass
