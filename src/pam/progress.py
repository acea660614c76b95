"""Progress normalization: timemarks or raw percents in, `ProgressSnapshot` out.

Percent stays within [0, 99] and never goes backwards while work is in
flight; 100 is produced only by `complete()`.
"""
from __future__ import annotations

import math
import time
from typing import Callable, Optional, Union

from .models import ProgressSnapshot, Stage

IN_FLIGHT_CEILING = 99.0
FINALIZING_ABOVE = 98.0
DEFAULT_FAST_SPEED = 50.0
MIN_WALL_SECONDS = 1.0


def parse_timemark(timemark: Union[str, float, int, None]) -> float:
    """Seconds from "HH:MM:SS.ms", "MM:SS.ms" or raw seconds; 0 when unreadable."""
    if isinstance(timemark, (int, float)):
        return float(timemark) if math.isfinite(timemark) and timemark > 0 else 0.0
    if not timemark:
        return 0.0
    clean = str(timemark).strip()
    try:
        if ":" not in clean:
            seconds = float(clean)
        else:
            parts = [float(p) if p else 0.0 for p in clean.split(":")]
            if len(parts) == 3:
                seconds = parts[0] * 3600 + parts[1] * 60 + parts[2]
            elif len(parts) == 2:
                seconds = parts[0] * 60 + parts[1]
            else:
                return 0.0
    except ValueError:
        return 0.0
    if not math.isfinite(seconds) or seconds < 0:
        return 0.0
    return seconds


def classify_stage(percent: float, speed_factor: float, *, re_encode: bool, fast_speed: float) -> Stage:
    # Label only: "merging" tells the user stream copy is racing along
    if percent > FINALIZING_ABOVE:
        return Stage.FINALIZING
    if not re_encode and speed_factor > fast_speed:
        return Stage.MERGING
    return Stage.TRANSCODING


class ProgressTracker:
    def __init__(
        self,
        total_seconds: float,
        *,
        re_encode: bool,
        fast_speed: float = DEFAULT_FAST_SPEED,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.total_seconds = max(0.0, float(total_seconds or 0.0))
        self.re_encode = re_encode
        self.fast_speed = fast_speed
        self._clock = clock
        self._started = clock()
        self._percent = 0.0

    @property
    def percent(self) -> float:
        return self._percent

    def restart(self) -> None:
        """Reset the wall clock (percent stays monotonic across phases)."""
        self._started = self._clock()

    def _clamp(self, percent: float) -> float:
        if not math.isfinite(percent):
            percent = 0.0
        percent = min(max(0.0, percent), IN_FLIGHT_CEILING)
        self._percent = max(self._percent, percent)
        return self._percent

    def _rates(self, processed: float) -> tuple[float, float]:
        elapsed = self._clock() - self._started
        if elapsed < MIN_WALL_SECONDS or processed <= 0:
            return 0.0, 0.0
        speed = processed / elapsed
        eta = 0.0
        if speed > 0 and self.total_seconds > 0:
            eta = max(0.0, (self.total_seconds - processed) / speed)
        return speed, eta

    def update(
        self,
        *,
        timemark: Union[str, float, None] = None,
        percent: Optional[float] = None,
        stage: Optional[Stage] = None,
    ) -> ProgressSnapshot:
        """Fold one engine signal into a snapshot.

        The timemark is preferred; the raw percent is used only when the total
        duration is unknown.
        """
        processed = parse_timemark(timemark) if timemark is not None else 0.0
        if self.total_seconds > 0:
            raw = processed / self.total_seconds * 100.0
        else:
            raw = percent or 0.0
        return self.snapshot(raw, processed, stage=stage)

    def snapshot(self, percent: float, current_seconds: float, *, stage: Optional[Stage] = None) -> ProgressSnapshot:
        pct = self._clamp(percent)
        speed, eta = self._rates(current_seconds)
        if stage is None:
            stage = classify_stage(pct, speed, re_encode=self.re_encode, fast_speed=self.fast_speed)
        return ProgressSnapshot(
            stage=stage,
            percent=round(pct, 2),
            speed_factor=round(speed, 1),
            eta_seconds=float(math.ceil(eta)),
            current_seconds=current_seconds,
            total_seconds=self.total_seconds,
        )

    def complete(self) -> ProgressSnapshot:
        self._percent = 100.0
        return ProgressSnapshot(
            stage=Stage.FINALIZING,
            percent=100.0,
            speed_factor=0.0,
            eta_seconds=0.0,
            current_seconds=self.total_seconds,
            total_seconds=self.total_seconds,
        )


def analyzing_snapshot() -> ProgressSnapshot:
    return ProgressSnapshot(stage=Stage.ANALYZING, percent=0.0)
