"""Transcript buffering: fragments in, flushed utterances out."""
from .buffer import TranscriptBuffer, get_adaptive_timeout, handle_speaker_change, should_flush_buffer
from .models import BufferUpdate, DiscardEvent, FlushEvent, FlushReason, TurnHistoryEntry
from .text import count_words, normalize_text

__all__ = [
    "BufferUpdate",
    "DiscardEvent",
    "FlushEvent",
    "FlushReason",
    "TranscriptBuffer",
    "TurnHistoryEntry",
    "count_words",
    "get_adaptive_timeout",
    "handle_speaker_change",
    "normalize_text",
    "should_flush_buffer",
]
