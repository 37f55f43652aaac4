"""
Transcript buffer events.

- FlushEvent: a completed utterance, shown on the display and remembered in the
  turn history. Speaker is the label that owned the buffer.
- DiscardEvent: a short fragment dropped on a speaker change (log-only); such
  fragments are more likely misattributed noise than real short utterances.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class FlushReason(str, Enum):
    SPEAKER_TURN = "speaker_turn"
    SENTENCE_COMPLETE = "sentence_complete"
    TIMEOUT = "timeout"


@dataclass
class TurnHistoryEntry:
    speaker: str
    text: str
    at: float  # unix ms


@dataclass
class FlushEvent:
    speaker: str
    text: str
    reason: FlushReason
    at: float
    word_count: int


@dataclass
class DiscardEvent:
    speaker: str
    text: str
    word_count: int
    at: float


@dataclass
class SpeakerChangeDecision:
    should_flush: bool
    should_discard: bool
    word_count: int


@dataclass
class BufferUpdate:
    """Outcome of feeding one fragment into the buffer."""

    accepted: bool
    flushes: list[FlushEvent] = field(default_factory=list)
    discarded: Optional[DiscardEvent] = None
