"""ffprobe wrapper that folds every outcome into a `ProbeResult`.

A probe never raises: a timeout, a non-zero exit, unreadable JSON or a
missing binary all come back as `ok=False` with a short error label.
"""
from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from .models import optional_int

DEFAULT_PROBE_TIMEOUT = 5.0


@dataclass
class ProbeResult:
    path: Path
    ok: bool
    duration: float = 0.0
    sample_rate: int = 0
    codec: str = ""
    channels: int = 0
    bit_rate: Optional[int] = None
    size: Optional[int] = None
    has_cover_art: bool = False
    error: Optional[str] = None

    def describe(self) -> Dict[str, Any]:
        """Display-oriented metadata (codec label, channel layout, kbps)."""
        if self.channels == 1:
            channels = "Mono"
        elif self.channels == 2:
            channels = "Stereo"
        elif self.channels > 0:
            channels = f"{self.channels} Ch"
        else:
            channels = "Unknown"
        return {
            "codec": (self.codec or "mp3").upper() if self.ok else "Unknown",
            "sample_rate": self.sample_rate,
            "bitrate": f"{round(self.bit_rate / 1000)}k" if self.bit_rate else "Unknown",
            "channels": channels,
            "duration": self.duration,
            "size": self.size or 0,
        }


def build_ffprobe_cmd(path: Path, ffprobe: str = "ffprobe") -> List[str]:
    return [
        ffprobe,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_ffprobe_json(path: Path, payload: Dict[str, Any]) -> ProbeResult:
    streams = payload.get("streams") or []
    fmt = payload.get("format") or {}
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)
    # An attached picture shows up as a video stream
    video = next((s for s in streams if s.get("codec_type") == "video"), None)

    duration = _float(fmt.get("duration"))
    if not duration and audio is not None:
        duration = _float(audio.get("duration"))

    if audio is None and duration <= 0:
        return ProbeResult(path=path, ok=False, error="No audio stream")

    return ProbeResult(
        path=path,
        ok=True,
        duration=duration,
        sample_rate=optional_int((audio or {}).get("sample_rate")) or 0,
        codec=str((audio or {}).get("codec_name") or ""),
        channels=optional_int((audio or {}).get("channels")) or 0,
        bit_rate=optional_int(fmt.get("bit_rate")),
        size=optional_int(fmt.get("size")),
        has_cover_art=video is not None,
    )


def probe_file(
    path: Union[str, Path],
    *,
    timeout: float = DEFAULT_PROBE_TIMEOUT,
    ffprobe: str = "ffprobe",
) -> ProbeResult:
    p = Path(path)
    cmd = build_ffprobe_cmd(p, ffprobe)
    try:
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug("ffprobe timed out after {}s: {}", timeout, p)
        return ProbeResult(path=p, ok=False, error="Timeout")
    except OSError as e:
        logger.debug("ffprobe could not start for {}: {}", p, e)
        return ProbeResult(path=p, ok=False, error="Corrupt")

    if proc.returncode != 0:
        logger.debug("ffprobe rc={} for {}: {}", proc.returncode, p, (proc.stderr or "").strip())
        return ProbeResult(path=p, ok=False, error="Corrupt")
    try:
        payload = json.loads(proc.stdout or "{}")
    except json.JSONDecodeError:
        return ProbeResult(path=p, ok=False, error="Corrupt")
    if not isinstance(payload, dict):
        return ProbeResult(path=p, ok=False, error="Corrupt")
    return parse_ffprobe_json(p, payload)
