"""Data model shared by the validator, resolver, strategies and merger."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import ErrorKind


class OutputFormat(str, Enum):
    MP3 = "MP3"
    M4B = "M4B"

    @property
    def extension(self) -> str:
        return "." + self.value.lower()


class ConflictReason(str, Enum):
    CORRUPT = "CORRUPT"
    EMPTY = "EMPTY"
    SAMPLE_RATE_MISMATCH = "SAMPLE_RATE_MISMATCH"


class Stage(str, Enum):
    ANALYZING = "analyzing"
    TRANSCODING = "transcoding"
    MERGING = "merging"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class CandidateFile:
    path: Path
    declared_size: int = 0

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "CandidateFile":
        p = Path(path)
        try:
            size = p.stat().st_size
        except OSError:
            size = 0
        return cls(path=p, declared_size=size)


@dataclass(frozen=True)
class ValidatedFile:
    path: Path
    duration: float
    sample_rate: int
    codec: str
    channels: int
    has_cover_art: bool
    inferred_title: str

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()


@dataclass(frozen=True)
class Conflict:
    file_name: str
    reason: ConflictReason
    details: str


@dataclass(frozen=True)
class Chapter:
    start_ms: int
    end_ms: int
    title: str


@dataclass(frozen=True)
class MergePlan:
    ordered_files: Tuple[ValidatedFile, ...]
    target_sample_rate: int
    output_format: OutputFormat
    bitrate: str
    re_encode: bool
    # Names dropped under auto-fix; they never reach the engine
    skipped: Tuple[str, ...] = ()

    @property
    def total_seconds(self) -> float:
        return sum(f.duration for f in self.ordered_files)

    @property
    def first_file(self) -> ValidatedFile:
        return self.ordered_files[0]


@dataclass(frozen=True)
class ProgressSnapshot:
    stage: Stage
    percent: float
    speed_factor: float = 0.0
    eta_seconds: float = 0.0
    current_seconds: float = 0.0
    total_seconds: float = 0.0


@dataclass
class MergeOptions:
    output_format: OutputFormat = OutputFormat.MP3
    bitrate: str = "64k"
    auto_fix: bool = False
    use_custom_bitrate: bool = False


@dataclass
class MergeRequest:
    files: List[Path]
    output_path: Path
    options: MergeOptions = field(default_factory=MergeOptions)


# Outbound events. Exactly one terminal event ends a merge stream, except
# for caller-initiated cancellation, which ends it with none.


@dataclass(frozen=True)
class ProgressEvent:
    snapshot: ProgressSnapshot


@dataclass(frozen=True)
class ConflictsDetected:
    conflicts: Tuple[Conflict, ...]
    target_sample_rate: int


@dataclass(frozen=True)
class MergeComplete:
    output_path: Path


@dataclass(frozen=True)
class MergeCompleteWithWarning:
    output_path: Path
    skipped: Tuple[str, ...]


@dataclass(frozen=True)
class MergeFailed:
    message: str
    kind: ErrorKind = ErrorKind.ENGINE_FAILURE


MergeEvent = Union[ProgressEvent, ConflictsDetected, MergeComplete, MergeCompleteWithWarning, MergeFailed]
TERMINAL_EVENTS = (ConflictsDetected, MergeComplete, MergeCompleteWithWarning, MergeFailed)


def is_terminal(event: MergeEvent) -> bool:
    return isinstance(event, TERMINAL_EVENTS)


# Strategy outcomes: the fallback decision is an explicit branch in the merger.


@dataclass(frozen=True)
class Success:
    output_path: Path


@dataclass(frozen=True)
class FallbackRequired:
    reason: str


@dataclass(frozen=True)
class Fatal:
    message: str
    kind: ErrorKind = ErrorKind.ENGINE_FAILURE


@dataclass(frozen=True)
class Cancelled:
    pass


StrategyResult = Union[Success, FallbackRequired, Fatal, Cancelled]


def optional_int(value: object) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
