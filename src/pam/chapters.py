"""Chapter titles and the ffmetadata chapter sidecar.

Titles come from filenames. Only the first and last three positions are
checked against the opening/ending label tables; a label matches when the
cleaned name equals it or starts with it followed by nothing alphanumeric.
Everything else becomes "Chapter N", where N counts only those chapters.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .models import Chapter, ValidatedFile

FFMETADATA_HEADER = ";FFMETADATA1"
CHAPTER_TIMEBASE = "1/1000"
SPECIAL_WINDOW = 3

# Ordered (label, title) tables; the first matching label wins.
OPENING_LABELS: Tuple[Tuple[str, str], ...] = (
    ("opening credits", "Opening Credits"),
    ("opening credit", "Opening Credits"),
    ("opening", "Opening Credits"),
    ("prologue", "Prologue"),
    ("introduction", "Introduction"),
    ("intro", "Introduction"),
    ("preface", "Preface"),
    ("foreword", "Foreword"),
)

ENDING_LABELS: Tuple[Tuple[str, str], ...] = (
    ("end credits", "End Credits"),
    ("ending credits", "End Credits"),
    ("credits", "End Credits"),
    ("epilogue", "Epilogue"),
    ("afterword", "Afterword"),
    ("outro", "Outro"),
    ("the end", "The End"),
    ("conclusion", "Conclusion"),
)

_LEADING_ORDINAL_RE = re.compile(r"^[\d\s.\-_]+")
_ALNUM_RE = re.compile(r"[a-z0-9]", re.IGNORECASE)
_ESCAPE_RE = re.compile(r"([=;#\\])")


def clean_name(filename: str) -> str:
    """Lower-cased stem with leading track numbers and separators removed."""
    stem = Path(filename).stem.lower()
    cleaned = _LEADING_ORDINAL_RE.sub("", stem).strip()
    return cleaned or stem


def label_matches(name: str, label: str) -> bool:
    if name == label:
        return True
    return name.startswith(label) and not _ALNUM_RE.search(name[len(label):])


def match_label(name: str, table: Sequence[Tuple[str, str]]) -> Optional[str]:
    for label, title in table:
        if label_matches(name, label):
            return title
    return None


def special_title(filename: str, index: int, total: int) -> Optional[str]:
    name = clean_name(filename)
    if index < SPECIAL_WINDOW:
        title = match_label(name, OPENING_LABELS)
        if title:
            return title
    if index >= total - SPECIAL_WINDOW:
        return match_label(name, ENDING_LABELS)
    return None


def chapter_titles(filenames: Sequence[str]) -> List[str]:
    titles: List[str] = []
    number = 1
    total = len(filenames)
    for idx, name in enumerate(filenames):
        special = special_title(name, idx, total)
        if special:
            titles.append(special)
        else:
            titles.append(f"Chapter {number}")
            number += 1
    return titles


def escape_metadata(value: Optional[str]) -> str:
    if not value:
        return "Untitled"
    return _ESCAPE_RE.sub(r"\\\1", value).replace("\r\n", "\n").replace("\n", "\\n")


def unescape_metadata(value: str) -> str:
    out: List[str] = []
    it = iter(value)
    for ch in it:
        if ch == "\\":
            nxt = next(it, "")
            out.append("\n" if nxt == "n" else nxt)
        else:
            out.append(ch)
    return "".join(out)


def _round_half_up(ms: float) -> int:
    return int(ms + 0.5)


def build_chapters(files: Sequence[ValidatedFile]) -> List[Chapter]:
    """Back-to-back chapters, one per file, in milliseconds."""
    titles = chapter_titles([f.name for f in files])
    chapters: List[Chapter] = []
    start = 0.0
    for f, title in zip(files, titles):
        end = start + f.duration * 1000.0
        chapters.append(Chapter(start_ms=_round_half_up(start), end_ms=_round_half_up(end), title=title))
        start = end
    return chapters


def render_ffmetadata(chapters: Sequence[Chapter]) -> str:
    lines = [FFMETADATA_HEADER]
    for ch in chapters:
        lines.extend(
            [
                "[CHAPTER]",
                f"TIMEBASE={CHAPTER_TIMEBASE}",
                f"START={ch.start_ms}",
                f"END={ch.end_ms}",
                f"title={escape_metadata(ch.title)}",
                "",
            ]
        )
    return "\n".join(lines) + "\n"


def parse_ffmetadata(text: str) -> List[Chapter]:
    """Read chapter blocks back from an ffmetadata document."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != FFMETADATA_HEADER:
        raise ValueError("missing ;FFMETADATA1 header")
    chapters: List[Chapter] = []
    current: Optional[dict] = None

    def flush() -> None:
        if current is not None:
            chapters.append(
                Chapter(
                    start_ms=int(current.get("START", 0)),
                    end_ms=int(current.get("END", 0)),
                    title=current.get("title", ""),
                )
            )

    for raw in lines[1:]:
        line = raw.rstrip("\r")
        if not line or line.startswith((";", "#")):
            continue
        if line.startswith("["):
            flush()
            current = {} if line.strip() == "[CHAPTER]" else None
            continue
        if current is None or "=" not in line:
            continue
        key, _, value = line.partition("=")
        current[key] = unescape_metadata(value) if key == "title" else value
    flush()
    return chapters
