"""Loguru setup and structured event helpers.

Console output is human oriented; the optional JSON sink carries the
structured fields attached by `log_event` (action, file, stage, ...).
"""
from __future__ import annotations

import sys
import uuid
from typing import Any, Dict, Optional, Sequence

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{message}</cyan>"
)


def setup_console(level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=_CONSOLE_FORMAT,
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )


def setup_json(path: str, level: str = "DEBUG") -> None:
    logger.add(path, level=level.upper(), serialize=True, enqueue=True)


def configure_logging(log_level: str = "INFO", log_json_path: Optional[str] = None) -> None:
    """Configure the console sink and, when a path is given, a JSON lines sink."""
    setup_console(log_level)
    if log_json_path:
        setup_json(log_json_path)


def bind_run(run_id: Optional[str] = None) -> str:
    rid = run_id or str(uuid.uuid4())
    # Applies to every logger, including ones bound before this call
    logger.configure(extra={"run_id": rid})
    return rid


def get_logger():
    return logger


def log_event(action: str, **fields: Any) -> None:
    clean: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
    msg = clean.pop("msg", action)
    level = clean.pop("level", "INFO").upper()
    logger.bind(action=action, **clean).log(level, msg)


def log_engine_failure(action: str, returncode: int, stderr: str, *, cmd: Optional[Sequence[str]] = None) -> None:
    """Record an abnormal ffmpeg exit with a bounded stderr excerpt."""
    log_event(
        action,
        level="ERROR",
        msg=f"ffmpeg exited with code {returncode}",
        returncode=returncode,
        stderr=truncate(stderr),
        cmd=" ".join(cmd) if cmd else None,
    )


def truncate(text: str, max_len: int = 4096, max_lines: int = 20) -> str:
    """Keep the tail of `text`: at most `max_lines` lines and `max_len` chars."""
    if not text:
        return ""
    lines = text.strip().splitlines()
    if len(lines) > max_lines:
        text = "\n".join(["... (truncated)"] + lines[-max_lines:])
    if len(text) > max_len:
        text = "... (truncated)\n" + text[-max_len:]
    return text
