"""Arrival-order correlation of audio chunks with transcription results."""
from __future__ import annotations

from live_coach.correlation.models import AudioChunkRecord, AudioSource, QueueSnapshot
from live_coach.correlation.queue import CorrelationQueue, generate_correlation_id

__all__ = [
    "AudioChunkRecord",
    "AudioSource",
    "CorrelationQueue",
    "QueueSnapshot",
    "generate_correlation_id",
]
