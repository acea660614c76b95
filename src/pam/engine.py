"""Run ffmpeg as a stream of progress signals.

Commands are started with `-progress pipe:1 -nostats`, so stdout carries
`key=value` blocks; each `out_time` becomes an `EngineProgress`. stderr is
drained on a side thread and attached to `EngineFailure` on a bad exit.
"""
from __future__ import annotations

import os
import shlex
import subprocess
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, List, Optional

from loguru import logger

from .errors import EngineFailure, ErrorKind, MergeCancelled, MergeError
from .logging import log_engine_failure, log_event
from .operation import OperationContext
from .progress import parse_timemark

PROGRESS_ARGS = ["-progress", "pipe:1", "-nostats"]


@dataclass(frozen=True)
class EngineProgress:
    timemark: Optional[str] = None
    percent: Optional[float] = None
    speed: Optional[str] = None


def cmd_to_string(cmd: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in cmd)


def with_progress(cmd: List[str]) -> List[str]:
    """Insert the progress flags right after the binary."""
    if "-progress" in cmd:
        return list(cmd)
    return [cmd[0], *PROGRESS_ARGS, *cmd[1:]]


def _drain(stream: IO[str], sink: List[str]) -> None:
    for line in stream:
        sink.append(line)


def iter_progress_lines(lines: Iterator[str], expected_seconds: Optional[float] = None) -> Iterator[EngineProgress]:
    """Turn `-progress` output into signals, one per reported block."""
    block: dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        block[key] = value.strip()
        if key != "progress":
            continue
        timemark = block.get("out_time")
        if timemark in (None, "", "N/A"):
            timemark = None
        percent = None
        if timemark is not None and expected_seconds and expected_seconds > 0:
            percent = min(100.0, parse_timemark(timemark) / expected_seconds * 100.0)
        yield EngineProgress(timemark=timemark, percent=percent, speed=block.get("speed"))
        block = {}


def run_ffmpeg(
    cmd: List[str],
    ctx: OperationContext,
    *,
    expected_seconds: Optional[float] = None,
    action: str = "engine",
) -> Iterator[EngineProgress]:
    """Start `cmd`, yield progress while it runs, raise when it ends badly.

    Raises `MergeCancelled` when the context was cancelled (whatever the exit
    code) and `EngineFailure` for any other non-zero exit.
    """
    full = with_progress(cmd)
    ctx.raise_if_cancelled()
    log_event("engine_start", level="DEBUG", msg=f"Running ffmpeg: {cmd_to_string(full)}", step=action)
    try:
        proc = subprocess.Popen(
            full,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        raise EngineFailure(-1, str(e), detail=f"Could not start ffmpeg: {e}") from e

    ctx.attach(proc)
    err_lines: List[str] = []
    drainer = threading.Thread(target=_drain, args=(proc.stderr, err_lines), daemon=True)
    drainer.start()
    try:
        assert proc.stdout is not None
        yield from iter_progress_lines(proc.stdout, expected_seconds)
        rc = proc.wait()
        drainer.join(timeout=5)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        ctx.detach(proc)

    stderr = "".join(err_lines)
    if ctx.cancelled:
        logger.info("ffmpeg stopped by cancellation ({})", action)
        raise MergeCancelled()
    if rc != 0:
        log_engine_failure(action, rc, stderr, cmd=full)
        raise EngineFailure(rc, stderr)
    log_event("engine_exit", level="DEBUG", step=action, returncode=rc)


def temp_output_path(final_path: Path) -> Path:
    """Return a unique temp file path in the same directory as final_path."""
    suffix = f".part-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    return final_path.with_name(final_path.name + suffix)


def finalize_output(out_tmp: Path, dest: Path) -> None:
    """Atomically move a finished temp output over `dest`."""
    try:
        os.replace(str(out_tmp), str(dest))
    except OSError as e:
        raise MergeError(f"Rename failed: {e}", kind=ErrorKind.IO_FAILURE) from e
