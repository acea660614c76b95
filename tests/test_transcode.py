from pathlib import Path

import pytest

from conftest import make_file
from pam.errors import SidecarWriteError
from pam.models import MergePlan, OutputFormat
from pam.tempfiles import TEMP_FILES
from pam.transcode import build_transcode_cmd, concat_line, render_concat_list, write_sidecars


def _plan(files, *, fmt=OutputFormat.MP3, re_encode=False, target=44100):
    return MergePlan(
        ordered_files=tuple(files),
        target_sample_rate=target,
        output_format=fmt,
        bitrate="96k",
        re_encode=re_encode,
    )


def _cmd(plan):
    return build_transcode_cmd(plan, Path("/t/list.txt"), Path("/t/meta.txt"), Path("/out/book.part"))


def test_concat_line_escapes_single_quotes(tmp_path):
    p = tmp_path / "it's here.mp3"
    line = concat_line(p)
    assert line.startswith("file '") and line.endswith("'")
    assert "it'\\''s here.mp3" in line
    assert "\\" not in line.replace("'\\''", "")


def test_concat_list_keeps_order(tmp_path):
    files = [make_file(n, folder=tmp_path) for n in ("b.mp3", "a.mp3", "c.mp3")]
    lines = render_concat_list(files).splitlines()
    assert [ln.rsplit("/", 1)[1] for ln in lines] == ["b.mp3'", "a.mp3'", "c.mp3'"]


def test_input_layout_and_copy():
    cmd = _cmd(_plan([make_file("1.mp3"), make_file("2.mp3")]))
    inputs = [cmd[i + 1] for i, a in enumerate(cmd) if a == "-i"]
    assert inputs == ["/t/list.txt", "/t/meta.txt", str(Path("/books/1.mp3"))]
    assert cmd[cmd.index("-map_metadata") + 1] == "2"
    assert cmd[cmd.index("-map_chapters") + 1] == "1"
    assert cmd[cmd.index("-c:a") + 1] == "copy"
    assert "-ar" not in cmd and "attached_pic" not in cmd
    assert cmd[-3:] == ["-f", "mp3", "/out/book.part"]
    assert "-id3v2_version" in cmd


def test_cover_art_from_first_file():
    cmd = _cmd(_plan([make_file("1.mp3", cover=True), make_file("2.mp3")]))
    assert cmd[cmd.index("-map", cmd.index("0:a")) + 1] == "2:v"
    assert "attached_pic" in cmd


def test_reencode_resamples_only_when_rates_differ():
    same = _cmd(_plan([make_file("1.mp3"), make_file("2.mp3")], re_encode=True))
    assert same[same.index("-c:a") + 1] == "libmp3lame"
    assert same[same.index("-b:a") + 1] == "96k"
    assert "-ar" not in same

    mixed = _cmd(_plan([make_file("1.mp3"), make_file("2.mp3", sample_rate=22050)], re_encode=True))
    assert mixed[mixed.index("-ar") + 1] == "44100"


def test_m4b_output():
    cmd = _cmd(_plan([make_file("1.m4a", codec="aac")], fmt=OutputFormat.M4B, re_encode=True))
    assert cmd[cmd.index("-c:a") + 1] == "aac"
    assert cmd[cmd.index("-movflags") + 1] == "+faststart"
    assert cmd[-3:] == ["-f", "mp4", "/out/book.part"]
    assert "-id3v2_version" not in cmd


def test_write_sidecars(tmp_path):
    plan = _plan([make_file("01 Prologue.mp3", 1.5, folder=tmp_path), make_file("02.mp3", 2.0, folder=tmp_path)])
    concat, meta = write_sidecars(plan, str(tmp_path))
    try:
        assert concat in TEMP_FILES and meta in TEMP_FILES
        assert meta.read_text(encoding="utf-8").startswith(";FFMETADATA1\n")
        assert "title=Prologue" in meta.read_text(encoding="utf-8")
        assert "END=3500" in meta.read_text(encoding="utf-8")
        assert len(concat.read_text(encoding="utf-8").splitlines()) == 2
    finally:
        TEMP_FILES.release(concat)
        TEMP_FILES.release(meta)


def test_write_sidecars_failure_is_typed_and_cleans_up(tmp_path):
    plan = _plan([make_file("1.mp3")])
    missing = tmp_path / "does-not-exist"
    before = len(TEMP_FILES)
    with pytest.raises(SidecarWriteError) as ei:
        write_sidecars(plan, str(missing))
    assert str(ei.value).startswith("Metadata error:")
    assert len(TEMP_FILES) == before


def test_unknown_rate_is_resampled_when_reencoding():
    cmd = _cmd(_plan([make_file("1.mp3"), make_file("2.mp3", sample_rate=0)], re_encode=True))
    assert cmd[cmd.index("-ar") + 1] == "44100"
