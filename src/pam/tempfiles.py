"""Process-wide registry of temporary merge artifacts.

Every raw concatenation file and sidecar is registered when created and
released (unlinked) when its step ends. Whatever is still registered at
interpreter exit is removed by an atexit hook.
"""
from __future__ import annotations

import atexit
import os
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Optional, Set, Union

from loguru import logger

from .errors import ErrorKind
from .logging import log_event


class TempFileRegistry:
    def __init__(self) -> None:
        self._paths: Set[Path] = set()
        self._lock = threading.Lock()

    def new_path(self, prefix: str, suffix: str, directory: Optional[Union[str, Path]] = None) -> Path:
        """Reserve and register a unique temp path (the file itself is not created)."""
        base = Path(directory) if directory else Path(tempfile.gettempdir())
        name = f"{prefix}{int(time.time() * 1000)}_{os.getpid()}_{uuid.uuid4().hex[:8]}{suffix}"
        path = (base / name).resolve()
        self.track(path)
        return path

    def track(self, path: Path) -> Path:
        with self._lock:
            self._paths.add(Path(path))
        return path

    def release(self, path: Path) -> bool:
        """Unlink `path` and forget it. Returns False if removal failed."""
        p = Path(path)
        with self._lock:
            self._paths.discard(p)
        try:
            if p.exists():
                p.unlink()
        except OSError as e:
            log_event(
                "cleanup",
                level="WARNING",
                msg=f"Temp cleanup failed: {p}",
                kind=ErrorKind.IO_FAILURE.value,
                file=str(p),
                reason=str(e),
            )
            return False
        return True

    def cleanup_all(self) -> int:
        """Remove every tracked file; returns how many could not be removed."""
        with self._lock:
            pending = list(self._paths)
        failures = 0
        for p in pending:
            if not self.release(p):
                failures += 1
        if pending:
            logger.debug("Cleaned {} temp file(s), {} failure(s)", len(pending), failures)
        return failures

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return Path(path) in self._paths  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


TEMP_FILES = TempFileRegistry()
atexit.register(TEMP_FILES.cleanup_all)
