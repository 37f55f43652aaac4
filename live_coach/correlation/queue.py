"""
CorrelationQueue: source-tagged FIFO of audio chunks awaiting a transcript.

The transcription provider does not say which chunk a result came from, so the
first unresolved chunk is matched to the next transcript. Records older than the
staleness horizon are more likely left over from a desynchronised stream than
genuinely unattributed audio, so they are evicted rather than used.

- submit(): always succeeds; beyond the hard cap the oldest record is dropped.
- evict_stale(): removes every record at or past the horizon (not just the head),
  then drains from the front down to the live bound; records one size sample.
- resolve_next(): evict, then pop the oldest record's source.
"""
from __future__ import annotations

import logging
import uuid
from collections import OrderedDict, deque
from typing import Optional

import numpy as np

from live_coach.clock import Clock, LoopClock
from live_coach.config import get_settings
from live_coach.correlation.models import AudioChunkRecord, AudioSource, QueueSnapshot

logger = logging.getLogger(__name__)


def generate_correlation_id(now_ms: float) -> str:
    """<ms timestamp>_<9 hex chars>: unique and sortable by creation time."""
    return f"{int(now_ms)}_{uuid.uuid4().hex[:9]}"


class CorrelationQueue:
    """
    One queue per AI session. Keyed by correlation id so a record can also be
    resolved directly when the provider echoes the id back.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        max_size: int | None = None,
        stale_ms: int | None = None,
        max_live_size: int | None = None,
        sample_size: int | None = None,
        min_variance_samples: int | None = None,
    ) -> None:
        settings = get_settings()
        self._clock = clock or LoopClock()
        self._max_size = max_size if max_size is not None else settings.CORRELATION_MAX_QUEUE_SIZE
        self._stale_ms = stale_ms if stale_ms is not None else settings.CORRELATION_STALE_MS
        self._max_live_size = (
            max_live_size if max_live_size is not None else settings.CORRELATION_MAX_LIVE_SIZE
        )
        sample_size = sample_size if sample_size is not None else settings.CORRELATION_SIZE_SAMPLES
        self._min_variance_samples = (
            min_variance_samples if min_variance_samples is not None else settings.CONFIDENCE_MIN_SAMPLES
        )
        self._records: OrderedDict[str, AudioChunkRecord] = OrderedDict()
        self._size_samples: deque[int] = deque(maxlen=sample_size)
        self.dropped_overflow = 0
        self.evicted_stale = 0

    def __len__(self) -> int:
        return len(self._records)

    @property
    def size_samples(self) -> list[int]:
        return list(self._size_samples)

    def records(self) -> list[AudioChunkRecord]:
        """Queued records, oldest first (copy)."""
        return list(self._records.values())

    def submit(self, source: AudioSource | str, timestamp: float | None = None) -> Optional[str]:
        """Register one chunk handed to a session. Returns its correlation id (None for a bad source)."""
        parsed = AudioSource.parse(source)
        if parsed is None:
            logger.error("Rejected audio chunk with invalid source %r", source)
            return None
        now = self._clock.now_ms()
        submitted_at = float(timestamp) if timestamp is not None else now
        correlation_id = generate_correlation_id(now)
        while correlation_id in self._records:
            correlation_id = generate_correlation_id(now)
        self._records[correlation_id] = AudioChunkRecord(correlation_id, parsed, submitted_at)
        while len(self._records) > self._max_size:
            dropped_id, _ = self._records.popitem(last=False)
            self.dropped_overflow += 1
            logger.debug("Correlation queue over %d, dropped oldest %s", self._max_size, dropped_id)
        return correlation_id

    def evict_stale(self, now: float | None = None) -> int:
        """Remove stale records and enforce the live bound. Returns how many were removed."""
        now = self._clock.now_ms() if now is None else now
        stale = [cid for cid, rec in self._records.items() if now - rec.submitted_at >= self._stale_ms]
        for cid in stale:
            del self._records[cid]
        removed = len(stale)
        while len(self._records) > self._max_live_size:
            self._records.popitem(last=False)
            removed += 1
        self._size_samples.append(len(self._records))
        if removed:
            self.evicted_stale += removed
            logger.debug("Correlation queue evicted %d records (remaining %d)", removed, len(self._records))
        return removed

    def pop_next(self) -> Optional[AudioChunkRecord]:
        """Pop the oldest record without evicting first."""
        if not self._records:
            return None
        _, record = self._records.popitem(last=False)
        return record

    def resolve_next(self) -> Optional[AudioSource]:
        """Evict stale records, then return the oldest remaining record's source (or None)."""
        self.evict_stale()
        record = self.pop_next()
        return record.source if record is not None else None

    def resolve(self, correlation_id: str) -> Optional[AudioChunkRecord]:
        """Resolve a specific id (one-time use). None if unknown or stale."""
        record = self._records.pop(correlation_id, None)
        if record is None:
            return None
        if self._clock.now_ms() - record.submitted_at >= self._stale_ms:
            logger.debug("Correlation id %s expired before resolution", correlation_id)
            return None
        return record

    def size_variance(self) -> Optional[float]:
        """Population variance of the size samples; None with too few samples."""
        if len(self._size_samples) < self._min_variance_samples:
            return None
        return float(np.var(np.asarray(self._size_samples, dtype=np.float64)))

    def snapshot(self, now: float | None = None) -> QueueSnapshot:
        now = self._clock.now_ms() if now is None else now
        oldest = next(iter(self._records.values()), None)
        return QueueSnapshot(
            size=len(self._records),
            oldest_age_ms=oldest.age_ms(now) if oldest is not None else None,
            size_variance=self.size_variance(),
        )

    def stats(self) -> dict:
        oldest = next(iter(self._records.values()), None)
        return {
            "size": len(self._records),
            "oldest_timestamp": oldest.submitted_at if oldest is not None else None,
            "dropped_overflow": self.dropped_overflow,
            "evicted_stale": self.evicted_stale,
        }

    def clear(self) -> None:
        """Session reset: drop all records and samples."""
        self._records.clear()
        self._size_samples.clear()
