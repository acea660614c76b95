"""Fast path: append MP3 bytes, then one ffmpeg pass to repair headers and tags.

Raw concatenation takes the first `share` percent of progress, split evenly
per file and advanced by the byte ratio of the file being copied. The repair
pass (`-c copy`, tags and cover from the first input) takes the rest.
Any failure here asks the merger to fall back instead of raising.
"""
from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Generator, List, Optional

from loguru import logger

from .engine import finalize_output, run_ffmpeg, temp_output_path
from .errors import EngineFailure, ErrorKind, MergeCancelled, MergeError
from .logging import log_event
from .models import (
    Cancelled,
    FallbackRequired,
    Fatal,
    MergePlan,
    ProgressSnapshot,
    Stage,
    StrategyResult,
    Success,
    ValidatedFile,
)
from .operation import OperationContext
from .progress import ProgressTracker, parse_timemark
from .tempfiles import TEMP_FILES

DEFAULT_CHUNK_SIZE = 1024 * 1024
DEFAULT_SHARE = 90.0


def build_repair_cmd(raw: Path, first: ValidatedFile, out_tmp: Path, *, ffmpeg: str = "ffmpeg") -> List[str]:
    cmd = [
        ffmpeg,
        "-nostdin",
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-i",
        str(raw),
        "-i",
        str(first.path),
        "-map",
        "0:a",
    ]
    if first.has_cover_art:
        cmd += ["-map", "1:v", "-disposition:v:0", "attached_pic"]
    cmd += [
        "-map_metadata",
        "1",
        "-c",
        "copy",
        "-id3v2_version",
        "3",
        "-f",
        "mp3",
        str(out_tmp),
    ]
    return cmd


def _copy_files(
    files: List[ValidatedFile],
    raw: Path,
    ctx: OperationContext,
    tracker: ProgressTracker,
    *,
    share: float,
    chunk_size: int,
    interval: float,
    clock: Callable[[], float],
) -> Generator[ProgressSnapshot, None, None]:
    per_file = share / len(files)
    processed = 0.0
    with raw.open("wb") as out:
        # Strictly one file after another, one bounded buffer at a time
        for i, f in enumerate(files):
            try:
                size = f.path.stat().st_size
            except OSError:
                size = 0
            done = 0
            last = 0.0
            base = i * per_file
            with f.path.open("rb") as src:
                while True:
                    ctx.raise_if_cancelled()
                    chunk = src.read(chunk_size)
                    if not chunk:
                        break
                    out.write(chunk)
                    done += len(chunk)
                    now = clock()
                    if size > 0 and now - last >= interval:
                        last = now
                        ratio = min(1.0, done / size)
                        yield tracker.snapshot(
                            min(share, base + ratio * per_file),
                            processed + ratio * f.duration,
                            stage=Stage.MERGING,
                        )
            processed += f.duration
            yield tracker.snapshot((i + 1) * per_file, processed, stage=Stage.MERGING)


def concatenate(
    plan: MergePlan,
    output_path: Path,
    ctx: OperationContext,
    tracker: ProgressTracker,
    *,
    ffmpeg: str = "ffmpeg",
    temp_dir: Optional[str] = None,
    share: float = DEFAULT_SHARE,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    interval: float = 0.1,
    clock: Callable[[], float] = time.monotonic,
) -> Generator[ProgressSnapshot, None, StrategyResult]:
    """Run both fast-path phases; the generator's return value is the outcome."""
    if not output_path.parent.is_dir():
        # The standard path would hit the same wall; no point falling back
        return Fatal(f"Output folder does not exist: {output_path.parent}", kind=ErrorKind.IO_FAILURE)
    files = list(plan.ordered_files)
    total = plan.total_seconds
    raw = TEMP_FILES.new_path("pam_raw_", ".mp3", temp_dir)
    out_tmp = TEMP_FILES.track(temp_output_path(output_path))
    try:
        yield from _copy_files(
            files, raw, ctx, tracker, share=share, chunk_size=chunk_size, interval=interval, clock=clock
        )
        yield tracker.snapshot(share, total, stage=Stage.FINALIZING)

        cmd = build_repair_cmd(raw, plan.first_file, out_tmp, ffmpeg=ffmpeg)
        for sig in run_ffmpeg(cmd, ctx, expected_seconds=total, action="binary_repair"):
            if sig.timemark is not None and total > 0:
                step = parse_timemark(sig.timemark) / total * 100.0
            elif sig.percent is not None:
                step = sig.percent
            else:
                step = 0.0
            step = min(max(step, 0.0), 100.0)
            yield tracker.snapshot(share + step * (100.0 - share) / 100.0, total, stage=Stage.FINALIZING)

        finalize_output(out_tmp, output_path)
        return Success(output_path)
    except MergeCancelled:
        return Cancelled()
    except (OSError, EngineFailure, MergeError) as e:
        log_event(
            "strategy_fallback",
            level="WARNING",
            msg=f"Binary merge failed, falling back to standard path: {e}",
            kind=ErrorKind.STRATEGY_FALLBACK.value,
            reason=str(e),
        )
        return FallbackRequired(str(e))
    finally:
        TEMP_FILES.release(raw)
        TEMP_FILES.release(out_tmp)
        logger.debug("Binary concat temp files released")
