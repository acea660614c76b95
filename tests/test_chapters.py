import pytest

from conftest import make_file
from pam.chapters import (
    build_chapters,
    chapter_titles,
    clean_name,
    escape_metadata,
    label_matches,
    parse_ffmetadata,
    render_ffmetadata,
)
from pam.models import Chapter


def test_clean_name_strips_leading_ordinals():
    assert clean_name("01 - Prologue.mp3") == "prologue"
    assert clean_name("003_intro.mp3") == "intro"
    assert clean_name("42.mp3") == "42"


@pytest.mark.parametrize(
    "name,label,expected",
    [
        ("prologue", "prologue", True),
        ("prologue - part one", "prologue", False),
        ("prologue!!", "prologue", True),
        ("prologues", "prologue", False),
        ("introduction", "intro", False),
    ],
)
def test_label_match_rule(name, label, expected):
    assert label_matches(name, label) is expected


def test_special_chapters_do_not_consume_numbers():
    names = ["00 Opening Credits.mp3", "01 Prologue.mp3", "02.mp3", "03.mp3", "04.mp3", "05 Epilogue.mp3", "06 End Credits.mp3"]
    assert chapter_titles(names) == [
        "Opening Credits",
        "Prologue",
        "Chapter 1",
        "Chapter 2",
        "Chapter 3",
        "Epilogue",
        "End Credits",
    ]


def test_special_labels_only_at_the_edges():
    names = [f"{i:02d}.mp3" for i in range(4)] + ["04 Prologue.mp3"] + [f"{i:02d}.mp3" for i in range(5, 10)]
    titles = chapter_titles(names)
    assert titles[4] == "Chapter 5"
    assert titles[-1] == "Chapter 10"


def test_intro_matches_before_ending_table():
    assert chapter_titles(["intro.mp3", "outro.mp3"]) == ["Introduction", "Outro"]


def test_first_table_entry_wins():
    assert chapter_titles(["opening credits.mp3", "a.mp3", "b.mp3", "c.mp3"])[0] == "Opening Credits"
    assert chapter_titles(["a.mp3", "b.mp3", "c.mp3", "the end.mp3"])[-1] == "The End"


def test_numbering_is_gap_free_with_specials_interspersed():
    names = ["intro.mp3", "preface.mp3", "x.mp3", "y.mp3", "afterword.mp3", "credits.mp3"]
    numbered = [t for t in chapter_titles(names) if t.startswith("Chapter ")]
    assert numbered == ["Chapter 1", "Chapter 2"]


def test_escape_metadata():
    assert escape_metadata("a=b;c#d\\e") == r"a\=b\;c\#d\\e"
    assert escape_metadata("line1\nline2") == "line1\\nline2"
    assert escape_metadata("") == "Untitled"


def test_build_chapters_back_to_back_in_ms():
    chapters = build_chapters([make_file("1.mp3", 100.0), make_file("2.mp3", 200.5), make_file("3.mp3", 0.25)])
    assert [(c.start_ms, c.end_ms) for c in chapters] == [(0, 100000), (100000, 300500), (300500, 300750)]


def test_render_format():
    text = render_ffmetadata([Chapter(0, 1500, "Prologue")])
    assert text.splitlines() == [
        ";FFMETADATA1",
        "[CHAPTER]",
        "TIMEBASE=1/1000",
        "START=0",
        "END=1500",
        "title=Prologue",
        "",
    ]


def test_sidecar_round_trip():
    chapters = [
        Chapter(0, 1000, "Opening Credits"),
        Chapter(1000, 2500, "Tricky = ; # \\ title"),
        Chapter(2500, 9000, "two\nlines"),
    ]
    assert parse_ffmetadata(render_ffmetadata(chapters)) == chapters


def test_parse_requires_header():
    with pytest.raises(ValueError):
        parse_ffmetadata("[CHAPTER]\nSTART=0\n")


def test_half_milliseconds_round_up():
    chapters = build_chapters([make_file("1.mp3", 0.0625), make_file("2.mp3", 0.125)])
    assert [(c.start_ms, c.end_ms) for c in chapters] == [(0, 63), (63, 188)]
