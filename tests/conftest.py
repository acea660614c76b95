"""Shared fixtures: fake probes and a fake ffmpeg runner (no real ffmpeg needed)."""
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from loguru import logger

from pam.config import PamSettings
from pam.engine import EngineProgress
from pam.errors import MergeCancelled
from pam.models import ValidatedFile
from pam.probe import ProbeResult


@pytest.fixture(autouse=True)
def quiet_logger():
    logger.remove()
    yield
    logger.remove()


def make_file(
    name: str,
    duration: float = 100.0,
    *,
    sample_rate: int = 44100,
    codec: str = "mp3",
    cover: bool = False,
    folder: Path = Path("/books"),
) -> ValidatedFile:
    path = folder / name
    return ValidatedFile(
        path=path,
        duration=duration,
        sample_rate=sample_rate,
        codec=codec,
        channels=2,
        has_cover_art=cover,
        inferred_title=path.stem,
    )


class FakeProbe:
    """Stand-in for `probe_file`, keyed by file name."""

    def __init__(self, table: Dict[str, ProbeResult]) -> None:
        self.table = table
        self.calls: List[str] = []

    def __call__(self, path, *, timeout=5.0, ffprobe="ffprobe") -> ProbeResult:
        p = Path(path)
        self.calls.append(p.name)
        res = self.table[p.name]
        res.path = p
        return res


def ok_probe(duration: float, sample_rate: int = 44100, codec: str = "mp3", cover: bool = False) -> ProbeResult:
    return ProbeResult(
        path=Path("."),
        ok=True,
        duration=duration,
        sample_rate=sample_rate,
        codec=codec,
        channels=2,
        has_cover_art=cover,
    )


def bad_probe(error: str = "Corrupt") -> ProbeResult:
    return ProbeResult(path=Path("."), ok=False, error=error)


class FakeEngine:
    """Replacement for `run_ffmpeg`.

    Copies the first `-i` input to the output path (last argument) and reports
    progress as timemarks up to `expected_seconds`. Set `fail` to an exception
    to raise it after the first signal, or `cancel_ctx` to simulate a kill.
    """

    def __init__(self, *, fail: Optional[Exception] = None, cancel_ctx=None, steps: int = 4) -> None:
        self.fail = fail
        self.cancel_ctx = cancel_ctx
        self.steps = steps
        self.commands: List[List[str]] = []

    def __call__(self, cmd, ctx, *, expected_seconds=None, action="engine"):
        self.commands.append(list(cmd))
        total = expected_seconds or 0.0
        for i in range(1, self.steps + 1):
            secs = total * i / self.steps
            yield EngineProgress(timemark=f"{int(secs // 3600):02d}:{int(secs % 3600 // 60):02d}:{secs % 60:05.2f}")
            if i == 1 and self.cancel_ctx is not None:
                self.cancel_ctx.cancel()
                raise MergeCancelled()
            if i == 1 and self.fail is not None:
                raise self.fail
        src = Path(cmd[cmd.index("-i") + 1])
        out = Path(cmd[-1])
        if src.suffix == ".txt":
            out.write_bytes(b"transcoded")
        else:
            shutil.copyfile(src, out)


@pytest.fixture
def settings(tmp_path) -> PamSettings:
    tmp = tmp_path / "tmp"
    tmp.mkdir()
    return PamSettings(temp_dir=str(tmp), progress_interval=0.0, chunk_size=4)
