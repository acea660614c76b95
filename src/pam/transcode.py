"""Standard path: concat demuxer + chapter sidecar + first file for tags/cover.

Inputs, in order:
  0. concat list (`file '<path>'` per line)
  1. ffmetadata chapter sidecar
  2. the first validated file, used only for global tags and cover art
"""
from __future__ import annotations

from pathlib import Path
from typing import Generator, List, Optional, Sequence

from .chapters import build_chapters, render_ffmetadata
from .engine import finalize_output, run_ffmpeg, temp_output_path
from .errors import SidecarWriteError
from .logging import log_event
from .models import MergePlan, OutputFormat, ProgressSnapshot, ValidatedFile
from .operation import OperationContext
from .progress import ProgressTracker
from .tempfiles import TEMP_FILES

ENCODERS = {
    OutputFormat.MP3: "libmp3lame",
    OutputFormat.M4B: "aac",
}


def concat_line(path: Path) -> str:
    """One concat-demuxer directive with separators and quotes made safe."""
    normalized = str(path.resolve()).replace("\\", "/")
    escaped = normalized.replace("'", "'\\''")
    return f"file '{escaped}'"


def render_concat_list(files: Sequence[ValidatedFile]) -> str:
    return "\n".join(concat_line(f.path) for f in files)


def _write_sidecar(path: Path, content: str, what: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise SidecarWriteError(f"{what} error: {e}") from e


def write_sidecars(plan: MergePlan, temp_dir: Optional[str] = None) -> tuple[Path, Path]:
    """Write and register the concat list and chapter metadata files."""
    meta = TEMP_FILES.new_path("pam_meta_", ".txt", temp_dir)
    concat = TEMP_FILES.new_path("pam_concat_", ".txt", temp_dir)
    try:
        _write_sidecar(meta, render_ffmetadata(build_chapters(plan.ordered_files)), "Metadata")
        _write_sidecar(concat, render_concat_list(plan.ordered_files), "Concat list")
    except SidecarWriteError:
        TEMP_FILES.release(meta)
        TEMP_FILES.release(concat)
        raise
    return concat, meta


def build_transcode_cmd(
    plan: MergePlan,
    concat_list: Path,
    metadata: Path,
    out_tmp: Path,
    *,
    ffmpeg: str = "ffmpeg",
) -> List[str]:
    first = plan.first_file
    cmd = [
        ffmpeg,
        "-nostdin",
        "-hide_banner",
        "-loglevel",
        "error",
        "-y",
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(concat_list),
        "-f",
        "ffmetadata",
        "-i",
        str(metadata),
        "-i",
        str(first.path),
        "-map",
        "0:a",
        "-map_metadata",
        "2",
        "-map_chapters",
        "1",
    ]
    if first.has_cover_art:
        cmd += ["-map", "2:v", "-c:v", "copy", "-disposition:v:0", "attached_pic"]

    if plan.re_encode:
        cmd += ["-c:a", ENCODERS[plan.output_format], "-b:a", plan.bitrate]
        if any(f.sample_rate != plan.target_sample_rate for f in plan.ordered_files):
            cmd += ["-ar", str(plan.target_sample_rate)]
    else:
        cmd += ["-c:a", "copy"]

    if plan.output_format is OutputFormat.M4B:
        cmd += ["-movflags", "+faststart", "-f", "mp4"]
    else:
        cmd += ["-id3v2_version", "3", "-f", "mp3"]
    cmd.append(str(out_tmp))
    return cmd


def transcode(
    plan: MergePlan,
    output_path: Path,
    ctx: OperationContext,
    tracker: ProgressTracker,
    *,
    ffmpeg: str = "ffmpeg",
    temp_dir: Optional[str] = None,
) -> Generator[ProgressSnapshot, None, Path]:
    """Run the standard path; raises `EngineFailure`, `SidecarWriteError` or `MergeCancelled`."""
    concat = meta = None
    out_tmp = TEMP_FILES.track(temp_output_path(output_path))
    try:
        concat, meta = write_sidecars(plan, temp_dir)
        cmd = build_transcode_cmd(plan, concat, meta, out_tmp, ffmpeg=ffmpeg)
        log_event(
            "transcode",
            msg="Starting standard merge",
            files=len(plan.ordered_files),
            re_encode=plan.re_encode,
            output_format=plan.output_format.value,
        )
        tracker.restart()
        yield tracker.snapshot(0.0, 0.0)
        for sig in run_ffmpeg(cmd, ctx, expected_seconds=plan.total_seconds, action="transcode"):
            yield tracker.update(timemark=sig.timemark, percent=sig.percent)
        finalize_output(out_tmp, output_path)
        return output_path
    finally:
        for p in (concat, meta, out_tmp):
            if p is not None:
                TEMP_FILES.release(p)
