"""
Audio chunk bookkeeping for arrival-order correlation.

An AudioChunkRecord is created when a chunk is handed to an AI session and is
removed exactly once: either a transcription event consumes it, or it goes stale.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AudioSource(str, Enum):
    """Which participant produced an audio chunk."""

    LOCAL = "LOCAL"  # microphone: the coached participant
    REMOTE = "REMOTE"  # system audio: the other side of the call

    @classmethod
    def parse(cls, value: "AudioSource | str") -> Optional["AudioSource"]:
        """Accept enum members, their names, and the capture layer's "mic"/"system" tags."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().upper()
        if key in ("LOCAL", "MIC"):
            return cls.LOCAL
        if key in ("REMOTE", "SYSTEM"):
            return cls.REMOTE
        return None


@dataclass
class AudioChunkRecord:
    """One "chunk was sent" marker. submitted_at is in milliseconds."""

    correlation_id: str
    source: AudioSource
    submitted_at: float

    def age_ms(self, now: float) -> float:
        return max(0.0, now - self.submitted_at)


@dataclass
class QueueSnapshot:
    """Raw queue figures used for confidence scoring, taken before eviction."""

    size: int
    oldest_age_ms: Optional[float]
    size_variance: Optional[float]  # None until enough samples exist
