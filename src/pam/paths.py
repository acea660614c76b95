"""Default output naming for merged files."""
from __future__ import annotations

import re
import unicodedata
from pathlib import Path
from typing import Optional, Sequence, Union

from .models import OutputFormat

_ILLEGAL_CHARS_RE = re.compile(r'[\x00-\x1F\x7F<>:\/\\\|\?\*"]+')
_MULTIPLE_UNDERSCORES_RE = re.compile(r"_+")

# Many filesystems have a 255 byte/char filename limit per path segment.
_MAX_SEGMENT_LEN = 255

MERGED_PREFIX = "[MERGED]"

# Applied in order to a file stem to guess the book/album name
_SUGGEST_STEPS = (
    (re.compile(r"[-_.\s]*(opening|ending|credits|intro|outro|prologue|epilogue).*", re.IGNORECASE), ""),
    (re.compile(r"[-_.\s]*(chapter|part|track)\s*[\d.]+", re.IGNORECASE), ""),
    (re.compile(r"^\d+[\s._-]+"), ""),
    (re.compile(r"[\s._-]+\d+$"), ""),
    (re.compile(r"\[.*?\]"), ""),
    (re.compile(r"\(\d{4}\)"), ""),
    (re.compile(r"[._]"), " "),
    (re.compile(r"[^a-zA-Z0-9\s]+$"), ""),
    (re.compile(r"^[^a-zA-Z0-9\s]+"), ""),
    (re.compile(r"\s{2,}"), " "),
)


def sanitize_segment(name: str, *, preserve_ext: Optional[str] = None) -> str:
    """Make a single filename safe across common filesystems.

    - Normalize Unicode to NFC
    - Replace illegal characters with '_'
    - Trim trailing spaces/dots (NTFS/SMB safety)
    - Collapse multiple underscores
    - Enforce max length (preserving extension if provided)
    """
    s = unicodedata.normalize("NFC", name)
    s = _ILLEGAL_CHARS_RE.sub("_", s)
    s = s.rstrip(" .")
    if not s:
        s = "_"
    s = _MULTIPLE_UNDERSCORES_RE.sub("_", s)
    if len(s) > _MAX_SEGMENT_LEN:
        if preserve_ext and s.lower().endswith(preserve_ext.lower()) and len(preserve_ext) < _MAX_SEGMENT_LEN:
            s = s[: _MAX_SEGMENT_LEN - len(preserve_ext)] + preserve_ext
        else:
            s = s[:_MAX_SEGMENT_LEN]
    return s


def suggest_name(filename: str) -> str:
    """Strip track numbers, chapter words and bracketed noise from a filename."""
    name = Path(filename).stem
    for pattern, repl in _SUGGEST_STEPS:
        name = pattern.sub(repl, name)
    return name.strip() or "Audio"


def suggest_output_name(files: Sequence[Union[str, Path]], output_format: OutputFormat) -> str:
    base = f"{MERGED_PREFIX} {suggest_name(Path(files[0]).name)}" if files else f"{MERGED_PREFIX} Audio"
    ext = output_format.extension
    return sanitize_segment(base + ext, preserve_ext=ext)


def default_output_path(files: Sequence[Union[str, Path]], output_format: OutputFormat) -> Path:
    """Suggested output beside the first input (or in the cwd when there is none)."""
    folder = Path(files[0]).resolve().parent if files else Path.cwd()
    return folder / suggest_output_name(files, output_format)
