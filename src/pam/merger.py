"""Merge entry point.

`merge()` is a generator of events: any number of `ProgressEvent`s followed
by one terminal event (`ConflictsDetected`, `MergeComplete`,
`MergeCompleteWithWarning` or `MergeFailed`). A merge cancelled through its
`OperationContext` simply stops, with no terminal event.

Flow: validate -> resolve conflicts -> plan -> fast path (binary concat) or
standard path (transcode). A fast path that returns `FallbackRequired` is
retried on the standard path before anything reaches the caller.
"""
from __future__ import annotations

from pathlib import Path
from typing import Generator, Iterator, Optional, TypeVar

from loguru import logger

from . import binary_concat, transcode
from .config import PamSettings
from .conflicts import resolve_conflicts
from .errors import ErrorKind, MergeCancelled, MergeError
from .ffmpeg_check import EngineTools, resolve_tools
from .logging import log_event
from .models import (
    Cancelled,
    ConflictsDetected,
    Fatal,
    FallbackRequired,
    MergeComplete,
    MergeCompleteWithWarning,
    MergeEvent,
    MergeFailed,
    MergeOptions,
    MergePlan,
    MergeRequest,
    OutputFormat,
    ProgressEvent,
    ProgressSnapshot,
    Success,
)
from .operation import OperationContext
from .progress import ProgressTracker, analyzing_snapshot
from .strategy import Strategy, build_plan, select_strategy
from .validator import validate_files

T = TypeVar("T")


def options_from_settings(settings: PamSettings) -> MergeOptions:
    return MergeOptions(
        output_format=OutputFormat(settings.output_format),
        bitrate=settings.bitrate,
        auto_fix=settings.auto_fix,
        use_custom_bitrate=settings.use_custom_bitrate,
    )


def _relay(gen: Generator[ProgressSnapshot, None, T]) -> Generator[ProgressEvent, None, T]:
    """Wrap snapshots as events and hand back the inner generator's return value."""
    try:
        while True:
            try:
                snap = next(gen)
            except StopIteration as stop:
                return stop.value
            yield ProgressEvent(snap)
    finally:
        gen.close()


def _completed(plan: MergePlan, output_path: Path) -> MergeEvent:
    log_event(
        "merge_complete",
        msg=f"Wrote: {output_path}",
        output=str(output_path),
        skipped=list(plan.skipped) or None,
    )
    if plan.skipped:
        return MergeCompleteWithWarning(output_path=output_path, skipped=plan.skipped)
    return MergeComplete(output_path=output_path)


def merge(
    request: MergeRequest,
    ctx: OperationContext,
    settings: Optional[PamSettings] = None,
    *,
    tools: Optional[EngineTools] = None,
) -> Iterator[MergeEvent]:
    cfg = settings or PamSettings()
    tools = tools or resolve_tools(cfg.ffmpeg_path, cfg.ffprobe_path)
    opts = request.options
    output_path = Path(request.output_path)

    with ctx.running():
        yield ProgressEvent(analyzing_snapshot())
        if not request.files:
            yield MergeFailed("No input files.", kind=ErrorKind.IO_FAILURE)
            return

        try:
            validation = validate_files(
                request.files,
                timeout=cfg.probe_timeout,
                max_workers=cfg.probe_workers,
                ffprobe=tools.ffprobe,
            )
        except Exception as e:
            logger.exception("Validation failed: {}", e)
            yield MergeFailed("Validation failed.")
            return
        if ctx.cancelled:
            logger.info("Merge cancelled during validation")
            return

        resolution = resolve_conflicts(validation, auto_fix=opts.auto_fix)
        if resolution.halted:
            yield ConflictsDetected(
                conflicts=tuple(resolution.conflicts),
                target_sample_rate=resolution.target_sample_rate,
            )
            return
        if not resolution.files:
            yield MergeFailed("No valid files.", kind=ErrorKind.CORRUPT)
            return

        plan = build_plan(
            resolution.files,
            opts,
            target_sample_rate=resolution.target_sample_rate,
            force_reencode=resolution.force_reencode,
            skipped=resolution.skipped,
        )
        tracker = ProgressTracker(
            plan.total_seconds,
            re_encode=plan.re_encode,
            fast_speed=cfg.fast_speed_threshold,
        )

        if select_strategy(plan, opts) is Strategy.BINARY:
            result = yield from _relay(
                binary_concat.concatenate(
                    plan,
                    output_path,
                    ctx,
                    tracker,
                    ffmpeg=tools.ffmpeg,
                    temp_dir=cfg.temp_dir,
                    share=cfg.fast_path_share,
                    chunk_size=cfg.chunk_size,
                    interval=cfg.progress_interval,
                )
            )
            if isinstance(result, Success):
                yield ProgressEvent(tracker.complete())
                yield _completed(plan, result.output_path)
                return
            if isinstance(result, Cancelled):
                logger.info("Merge cancelled during binary concatenation")
                return
            if isinstance(result, Fatal):
                yield MergeFailed(result.message, kind=result.kind)
                return
            if isinstance(result, FallbackRequired):
                logger.warning("Retrying with the standard path ({})", result.reason)

        try:
            written = yield from _relay(
                transcode.transcode(
                    plan,
                    output_path,
                    ctx,
                    tracker,
                    ffmpeg=tools.ffmpeg,
                    temp_dir=cfg.temp_dir,
                )
            )
        except MergeCancelled:
            logger.info("Merge cancelled during transcode")
            return
        except MergeError as e:
            yield MergeFailed(e.detail, kind=e.kind)
            return

        yield ProgressEvent(tracker.complete())
        yield _completed(plan, written)
