"""Majority sample rate and conflict resolution (with optional auto-fix)."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .logging import log_event
from .models import Conflict, ConflictReason, ValidatedFile
from .validator import ValidationResult

DEFAULT_SAMPLE_RATE = 44100


def majority_sample_rate(rates: Iterable[int], default: int = DEFAULT_SAMPLE_RATE) -> int:
    """Most frequent positive rate; ties go to the rate seen first."""
    counts: Dict[int, int] = {}
    for rate in rates:
        if rate and rate > 0:
            counts[rate] = counts.get(rate, 0) + 1
    if not counts:
        return default
    # dicts keep first-seen order and max() keeps the first of equal keys
    return max(counts, key=counts.__getitem__)


@dataclass
class Resolution:
    target_sample_rate: int
    conflicts: List[Conflict] = field(default_factory=list)
    files: List[ValidatedFile] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    # True when conflicts exist and auto-fix was not requested
    halted: bool = False
    force_reencode: bool = False


def resolve_conflicts(validation: ValidationResult, *, auto_fix: bool = False) -> Resolution:
    valid = validation.valid
    target = majority_sample_rate(f.sample_rate for f in valid)

    conflicts: List[Conflict] = list(validation.rejected)
    mismatched: List[ValidatedFile] = []
    for f in valid:
        if f.sample_rate != target:
            mismatched.append(f)
            conflicts.append(
                Conflict(
                    file_name=f.name,
                    reason=ConflictReason.SAMPLE_RATE_MISMATCH,
                    details=f"Rate: {f.sample_rate}Hz",
                )
            )

    res = Resolution(target_sample_rate=target, conflicts=conflicts)
    if conflicts and not auto_fix:
        res.halted = True
        log_event(
            "conflicts",
            level="WARNING",
            msg=f"{len(conflicts)} conflict(s) detected; merge halted",
            count=len(conflicts),
            target_sample_rate=target,
        )
        return res

    res.files = list(valid)
    res.skipped = [c.file_name for c in validation.rejected]
    res.force_reencode = bool(mismatched)
    if conflicts:
        log_event(
            "conflicts",
            msg="auto-fix applied",
            skipped=res.skipped or None,
            resampled=[f.name for f in mismatched] or None,
            target_sample_rate=target,
        )
    return res
