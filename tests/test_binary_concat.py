from unittest.mock import patch

import pytest

from conftest import FakeEngine, make_file
from pam.binary_concat import build_repair_cmd, concatenate
from pam.errors import EngineFailure, ErrorKind
from pam.models import Cancelled, FallbackRequired, Fatal, MergePlan, OutputFormat, Stage, Success
from pam.operation import OperationContext
from pam.progress import ProgressTracker
from pam.tempfiles import TEMP_FILES


def drain(gen):
    snaps = []
    while True:
        try:
            snaps.append(next(gen))
        except StopIteration as stop:
            return snaps, stop.value


@pytest.fixture
def book(tmp_path):
    src = tmp_path / "books"
    src.mkdir()
    tmp = tmp_path / "tmp"
    tmp.mkdir()
    payloads = {"01.mp3": b"AAAAAAAAAA", "02.mp3": b"BBBBBB", "03.mp3": b"CCCCCCCCCCCCCC"}
    files = []
    for i, (name, data) in enumerate(payloads.items(), start=1):
        (src / name).write_bytes(data)
        files.append(make_file(name, 100.0 * i, folder=src))
    plan = MergePlan(
        ordered_files=tuple(files),
        target_sample_rate=44100,
        output_format=OutputFormat.MP3,
        bitrate="64k",
        re_encode=False,
    )
    return plan, b"".join(payloads.values()), tmp


def _run(plan, output, ctx, tmp, engine):
    tracker = ProgressTracker(plan.total_seconds, re_encode=False)
    with patch("pam.binary_concat.run_ffmpeg", engine):
        return drain(concatenate(plan, output, ctx, tracker, temp_dir=str(tmp), chunk_size=4, interval=0.0))


def test_repair_cmd_copies_tags_and_cover_from_first_file(tmp_path):
    first = make_file("01.mp3", cover=True)
    cmd = build_repair_cmd(tmp_path / "raw.mp3", first, tmp_path / "out.part")
    assert cmd[cmd.index("-map_metadata") + 1] == "1"
    assert cmd[cmd.index("-c") + 1] == "copy"
    assert "1:v" in cmd and "attached_pic" in cmd
    assert cmd[-1] == str(tmp_path / "out.part")

    plain = build_repair_cmd(tmp_path / "raw.mp3", make_file("01.mp3"), tmp_path / "out.part")
    assert "1:v" not in plain


def test_bytes_are_appended_in_order(book, tmp_path):
    plan, expected, tmp = book
    out = tmp_path / "book.mp3"
    engine = FakeEngine()
    snaps, result = _run(plan, out, OperationContext(), tmp, engine)

    assert result == Success(out)
    assert out.read_bytes() == expected
    assert len(engine.commands) == 1

    percents = [s.percent for s in snaps]
    assert percents == sorted(percents)
    assert max(percents) <= 99.0
    assert all(s.total_seconds == 600.0 for s in snaps)
    copy_phase = [s for s in snaps if s.stage is Stage.MERGING]
    assert copy_phase and max(s.percent for s in copy_phase) == 90.0
    assert snaps[-1].stage is Stage.FINALIZING


def test_temp_files_are_released(book, tmp_path):
    plan, _, tmp = book
    _run(plan, tmp_path / "book.mp3", OperationContext(), tmp, FakeEngine())
    assert list(tmp.iterdir()) == []
    assert [p.name for p in tmp_path.iterdir() if ".part-" in p.name] == []


def test_engine_failure_asks_for_fallback(book, tmp_path):
    plan, _, tmp = book
    out = tmp_path / "book.mp3"
    snaps, result = _run(plan, out, OperationContext(), tmp, FakeEngine(fail=EngineFailure(1, "Header missing")))
    assert result == FallbackRequired("Header missing")
    assert not out.exists()
    assert list(tmp.iterdir()) == []


def test_unreadable_input_asks_for_fallback(book, tmp_path):
    plan, _, tmp = book
    plan.ordered_files[1].path.unlink()
    engine = FakeEngine()
    _, result = _run(plan, tmp_path / "book.mp3", OperationContext(), tmp, engine)
    assert isinstance(result, FallbackRequired)
    assert engine.commands == []


def test_cancel_during_copy(book, tmp_path):
    plan, _, tmp = book
    ctx = OperationContext()
    ctx.cancel()
    engine = FakeEngine()
    _, result = _run(plan, tmp_path / "book.mp3", ctx, tmp, engine)
    assert result == Cancelled()
    assert engine.commands == []
    assert list(tmp.iterdir()) == []


def test_cancel_during_repair(book, tmp_path):
    plan, _, tmp = book
    ctx = OperationContext()
    out = tmp_path / "book.mp3"
    _, result = _run(plan, out, ctx, tmp, FakeEngine(cancel_ctx=ctx))
    assert result == Cancelled()
    assert not out.exists()


def test_missing_output_folder_is_fatal(book, tmp_path):
    plan, _, tmp = book
    engine = FakeEngine()
    before = len(TEMP_FILES)
    _, result = _run(plan, tmp_path / "nope" / "book.mp3", OperationContext(), tmp, engine)
    assert isinstance(result, Fatal)
    assert result.kind is ErrorKind.IO_FAILURE
    assert engine.commands == []
    assert len(TEMP_FILES) == before
