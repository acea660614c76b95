"""Concurrent input validation (fan-out one probe per file, fan-in once all settle)."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from loguru import logger

from .logging import log_event
from .models import CandidateFile, Conflict, ConflictReason, ValidatedFile
from .probe import DEFAULT_PROBE_TIMEOUT, ProbeResult, probe_file


@dataclass
class ValidationResult:
    """Outcome of validating one batch, in input order."""

    candidates: List[CandidateFile] = field(default_factory=list)
    probes: List[ProbeResult] = field(default_factory=list)
    valid: List[ValidatedFile] = field(default_factory=list)
    # CORRUPT and EMPTY only; rate mismatches are the resolver's business
    rejected: List[Conflict] = field(default_factory=list)


def _probe_all(
    candidates: List[CandidateFile],
    *,
    timeout: float,
    max_workers: Optional[int],
    ffprobe: str,
) -> List[ProbeResult]:
    if not candidates:
        return []
    workers = max_workers or len(candidates)
    results: List[Optional[ProbeResult]] = [None] * len(candidates)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pam-probe") as executor:
        future_to_idx = {
            executor.submit(probe_file, c.path, timeout=timeout, ffprobe=ffprobe): i
            for i, c in enumerate(candidates)
        }
        for future in as_completed(future_to_idx):
            idx = future_to_idx[future]
            try:
                results[idx] = future.result()
            except Exception as e:  # probe_file folds its own errors; this is a bug guard
                logger.warning("Probe crashed for {}: {}", candidates[idx].path, e)
                results[idx] = ProbeResult(path=candidates[idx].path, ok=False, error="Corrupt")
    return [r for r in results if r is not None]


def classify(candidate: CandidateFile, probe: ProbeResult) -> Union[ValidatedFile, Conflict]:
    name = candidate.path.name
    if not probe.ok:
        return Conflict(file_name=name, reason=ConflictReason.CORRUPT, details=probe.error or "Corrupt")
    if probe.duration <= 0:
        return Conflict(file_name=name, reason=ConflictReason.EMPTY, details="Zero duration")
    return ValidatedFile(
        path=candidate.path,
        duration=probe.duration,
        sample_rate=probe.sample_rate,
        codec=probe.codec,
        channels=probe.channels,
        has_cover_art=probe.has_cover_art,
        inferred_title=candidate.path.stem,
    )


def validate_files(
    paths: Iterable[Union[str, Path]],
    *,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
    max_workers: Optional[int] = None,
    ffprobe: str = "ffprobe",
) -> ValidationResult:
    candidates = [CandidateFile.from_path(p) for p in paths]
    probes = _probe_all(candidates, timeout=timeout, max_workers=max_workers, ffprobe=ffprobe)

    result = ValidationResult(candidates=candidates, probes=probes)
    for cand, probe in zip(candidates, probes):
        outcome = classify(cand, probe)
        if isinstance(outcome, Conflict):
            result.rejected.append(outcome)
            log_event("probe", level="DEBUG", file=cand.path.name, status=outcome.reason.value, reason=outcome.details)
        else:
            result.valid.append(outcome)
            log_event(
                "probe",
                level="DEBUG",
                file=cand.path.name,
                status="ok",
                duration=outcome.duration,
                sample_rate=outcome.sample_rate,
                codec=outcome.codec,
            )
    log_event(
        "validate",
        msg=f"validated {len(result.valid)}/{len(candidates)} files",
        valid=len(result.valid),
        rejected=len(result.rejected),
    )
    return result


def scan_files(
    paths: Iterable[Union[str, Path]],
    *,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
    max_workers: Optional[int] = None,
    ffprobe: str = "ffprobe",
) -> List[Dict[str, Any]]:
    """Probe files for display: one dict per path with `error` or `metadata`."""
    candidates = [CandidateFile.from_path(p) for p in paths]
    probes = _probe_all(candidates, timeout=timeout, max_workers=max_workers, ffprobe=ffprobe)
    rows: List[Dict[str, Any]] = []
    for cand, probe in zip(candidates, probes):
        if not probe.ok:
            rows.append({"path": str(cand.path), "error": True, "reason": probe.error})
        else:
            meta = probe.describe()
            if not meta["size"]:
                meta["size"] = cand.declared_size
            rows.append({"path": str(cand.path), "metadata": meta})
    return rows
