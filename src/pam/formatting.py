"""Human-readable sizes, durations and progress lines for console output."""
from __future__ import annotations

import math

from .models import ProgressSnapshot, Stage

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")

STAGE_MESSAGES = {
    Stage.ANALYZING: "Analyzing audio streams...",
    Stage.TRANSCODING: "Transcoding audio data...",
    Stage.MERGING: "Concatenating segments...",
    Stage.FINALIZING: "Writing metadata and finalizing container...",
}


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(_SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[i]}"


def format_time(seconds: float) -> str:
    """m:ss, or --:-- for unknown/zero."""
    if not seconds or not math.isfinite(seconds):
        return "--:--"
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}:{secs:02d}"


def format_speed(speed_factor: float) -> str:
    return f"{speed_factor:.1f}x"


def format_progress(snap: ProgressSnapshot) -> str:
    return (
        f"{snap.percent:6.2f}% | {snap.stage.value:<11} | "
        f"{format_time(snap.current_seconds)} / {format_time(snap.total_seconds)} | "
        f"{format_speed(snap.speed_factor)} | ETA {format_time(snap.eta_seconds)}"
    )
