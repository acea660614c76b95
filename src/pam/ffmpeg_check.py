"""FFmpeg/ffprobe preflight checks and binary resolution.

Uses only the Python standard library.
"""
from __future__ import annotations

import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_VERSION_RE = re.compile(r"(?:ffmpeg|ffprobe) version (\S+)")


@dataclass
class FFmpegStatus:
    available: bool
    ffmpeg_path: Optional[str] = None
    ffmpeg_version: Optional[str] = None
    has_libmp3lame: Optional[bool] = None
    has_aac: Optional[bool] = None
    error: Optional[str] = None


@dataclass
class FFprobeStatus:
    available: bool
    ffprobe_path: Optional[str] = None
    ffprobe_version: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class EngineTools:
    """Resolved engine binaries handed to the probe adapter and runners."""

    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"


def _run(cmd: list[str]) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            text=True,
        )
        return proc.returncode, proc.stdout, proc.stderr
    except OSError as exc:
        return 1, "", str(exc)


def parse_version(text: str) -> Optional[str]:
    """Return the version token from `ffmpeg -version` style output."""
    m = _VERSION_RE.search(text or "")
    return m.group(1) if m else None


def _sibling_ffprobe(ffmpeg_path: str) -> Optional[str]:
    name = "ffprobe.exe" if os.name == "nt" else "ffprobe"
    candidate = Path(ffmpeg_path).parent / name
    return str(candidate) if candidate.exists() else None


def resolve_tools(ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None) -> EngineTools:
    """Pick the binaries to run.

    An explicit ffprobe wins; otherwise an ffprobe beside a custom ffmpeg is
    preferred over the one on PATH so both come from the same build.
    """
    ffmpeg = ffmpeg_path or shutil.which("ffmpeg") or "ffmpeg"
    ffprobe = ffprobe_path
    if not ffprobe and ffmpeg_path:
        ffprobe = _sibling_ffprobe(ffmpeg_path)
    if not ffprobe:
        ffprobe = shutil.which("ffprobe") or "ffprobe"
    return EngineTools(ffmpeg=ffmpeg, ffprobe=ffprobe)


def probe_ffmpeg(path: Optional[str] = None) -> FFmpegStatus:
    path = path or shutil.which("ffmpeg")
    if not path:
        return FFmpegStatus(available=False, error="ffmpeg not found in PATH")

    rc_v, out_v, err_v = _run([path, "-version"])
    version = parse_version(out_v) or (out_v.splitlines()[0].strip() if out_v else None)

    rc_e, out_e, _ = _run([path, "-hide_banner", "-encoders"])
    encoders_text = (out_e or "").lower()

    return FFmpegStatus(
        available=(rc_v == 0),
        ffmpeg_path=path,
        ffmpeg_version=version,
        has_libmp3lame=("libmp3lame" in encoders_text if rc_e == 0 else False),
        has_aac=(" aac " in encoders_text if rc_e == 0 else False),
        error=None if rc_v == 0 else (err_v or "ffmpeg -version failed"),
    )


def probe_ffprobe(path: Optional[str] = None) -> FFprobeStatus:
    path = path or shutil.which("ffprobe")
    if not path:
        return FFprobeStatus(available=False, error="ffprobe not found in PATH")
    rc, out, err = _run([path, "-version"])
    if rc != 0:
        return FFprobeStatus(available=False, ffprobe_path=path, error=err or "ffprobe -version failed")
    return FFprobeStatus(available=True, ffprobe_path=path, ffprobe_version=parse_version(out))


def validate_custom_ffmpeg(path: str) -> FFmpegStatus:
    """Check that a user-supplied binary exists, runs, and really is ffmpeg."""
    if not path or not Path(path).exists():
        return FFmpegStatus(available=False, ffmpeg_path=path, error="Invalid path provided")
    rc, out, err = _run([path, "-version"])
    if rc != 0:
        return FFmpegStatus(available=False, ffmpeg_path=path, error="Not a valid executable.")
    if "ffmpeg version" not in out and "ffmpeg version" not in err:
        return FFmpegStatus(available=False, ffmpeg_path=path, error="Not FFmpeg.")
    return probe_ffmpeg(path)


if __name__ == "__main__":
    print(probe_ffmpeg())
    print(probe_ffprobe())
