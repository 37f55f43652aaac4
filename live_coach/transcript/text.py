"""Text normalisation and word counting shared by the buffer, scheduler and retrieval."""
from __future__ import annotations

import re

_UNICODE_SPACES = re.compile(r"[\t\u00a0\u1680\u2000-\u200b\u202f\u205f\u3000]")
_RUN_OF_SPACES = re.compile(r" {2,}")
_SPACE_BEFORE_PUNCT = re.compile(r" +([.,;:!?])")
_REPEATED_PUNCT = re.compile(r"([.!?,;:])\1+")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")
_SPACES_AROUND_NEWLINE = re.compile(r" *\n *")


def normalize_text(text: str | None) -> str:
    """
    Clean one transcription fragment. Idempotent.

    - tabs and Unicode spaces become ASCII spaces; runs of spaces collapse
    - no space before punctuation; repeated punctuation collapses ("!!" -> "!")
    - at most two consecutive newlines; leading/trailing whitespace removed
    """
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _UNICODE_SPACES.sub(" ", text)
    text = _RUN_OF_SPACES.sub(" ", text)
    text = _SPACES_AROUND_NEWLINE.sub("\n", text)
    text = _SPACE_BEFORE_PUNCT.sub(r"\1", text)
    text = _REPEATED_PUNCT.sub(r"\1", text)
    text = _EXTRA_NEWLINES.sub("\n\n", text)
    return text.strip()


def count_words(text: str | None) -> int:
    """Split on runs of whitespace; empty tokens are not words."""
    if not text:
        return 0
    return len(text.split())


def ends_sentence(text: str | None) -> bool:
    """Trimmed text ends in . ! or ?"""
    trimmed = (text or "").strip()
    return bool(trimmed) and trimmed[-1] in ".!?"
