"""Choose between binary concatenation and the ffmpeg transcode path."""
from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Sequence

from .logging import log_event
from .models import MergeOptions, MergePlan, OutputFormat, ValidatedFile


class Strategy(str, Enum):
    BINARY = "binary"
    TRANSCODE = "transcode"


# Extensions whose frames can be appended byte-for-byte
RAW_CONCAT_EXTENSIONS: FrozenSet[str] = frozenset({".mp3"})

# Codecs each container can take by stream copy
COPY_CODECS: Dict[OutputFormat, FrozenSet[str]] = {
    OutputFormat.MP3: frozenset({"mp3"}),
    OutputFormat.M4B: frozenset({"aac", "alac"}),
}


def needs_reencode(
    files: Sequence[ValidatedFile],
    output_format: OutputFormat,
    *,
    use_custom_bitrate: bool,
    forced: bool = False,
) -> bool:
    """True when stream copy cannot produce the requested output."""
    if forced or use_custom_bitrate:
        return True
    codecs = {f.codec.lower() for f in files}
    if len(codecs) > 1:
        return True
    return not codecs <= COPY_CODECS[output_format]


def fast_path_eligible(plan: MergePlan, options: MergeOptions) -> bool:
    if plan.output_format is not OutputFormat.MP3 or options.use_custom_bitrate:
        return False
    if plan.re_encode:
        return False
    exts = {f.extension for f in plan.ordered_files}
    return len(exts) == 1 and exts <= RAW_CONCAT_EXTENSIONS


def build_plan(
    files: Sequence[ValidatedFile],
    options: MergeOptions,
    *,
    target_sample_rate: int,
    force_reencode: bool = False,
    skipped: Sequence[str] = (),
) -> MergePlan:
    if not files:
        raise ValueError("a merge plan needs at least one file")
    return MergePlan(
        ordered_files=tuple(files),
        target_sample_rate=target_sample_rate,
        output_format=options.output_format,
        bitrate=options.bitrate,
        re_encode=needs_reencode(
            files,
            options.output_format,
            use_custom_bitrate=options.use_custom_bitrate,
            forced=force_reencode,
        ),
        skipped=tuple(skipped),
    )


def select_strategy(plan: MergePlan, options: MergeOptions) -> Strategy:
    strategy = Strategy.BINARY if fast_path_eligible(plan, options) else Strategy.TRANSCODE
    log_event(
        "strategy",
        msg=f"strategy: {strategy.value}",
        strategy=strategy.value,
        re_encode=plan.re_encode,
        output_format=plan.output_format.value,
        files=len(plan.ordered_files),
    )
    return strategy
