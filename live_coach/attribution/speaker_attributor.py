"""
Speaker attribution by arrival-order correlation.

- Each transcription event consumes the oldest queued audio chunk; its source
  decides the label (REMOTE -> remote label, LOCAL -> local label).
- Empty queue: continuity fallback to the last resolved speaker, else the local label.
- Confidence starts at the base score and is adjusted by queue backlog, chunk
  age, speaker continuity and queue-size stability, then clamped to [0, 1].

Limitations (MUST be kept in sync with product behavior):
- Simultaneous speech from both sources cannot be separated by arrival order.
- A burst from one source followed by a burst from the other before either is
  transcribed will be misattributed; the transcript buffer's discard rule absorbs
  most of the resulting short fragments.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Optional

from live_coach.attribution.models import AttributionResult, AttributionWarning, ValidationMetrics
from live_coach.clock import Clock, LoopClock
from live_coach.config import Settings, get_settings
from live_coach.correlation.models import AudioSource, QueueSnapshot
from live_coach.correlation.queue import CorrelationQueue

logger = logging.getLogger(__name__)


def count_speaker_changes(history: list[str], window: int = 5) -> int:
    """Entries in the last `window` that differ from their predecessor."""
    recent = history[-window:]
    return sum(1 for prev, cur in zip(recent, recent[1:]) if prev != cur)


def calculate_confidence(
    snapshot: QueueSnapshot,
    fallback: bool,
    history: list[str],
    settings: Settings,
) -> float:
    """Heuristic confidence in [0, 1] for one attribution."""
    score = settings.CONFIDENCE_BASE
    if fallback:
        score -= settings.CONFIDENCE_FALLBACK_PENALTY
    age = snapshot.oldest_age_ms
    if snapshot.size > settings.CONFIDENCE_LARGE_QUEUE or (
        age is not None and age > settings.CONFIDENCE_OLD_CHUNK_MS
    ):
        score -= settings.CONFIDENCE_DRIFT_PENALTY
    if snapshot.size < settings.CONFIDENCE_SMALL_QUEUE:
        score += settings.CONFIDENCE_SMALL_QUEUE_BONUS
    if age is not None and age < settings.CONFIDENCE_RECENT_CHUNK_MS:
        score += settings.CONFIDENCE_RECENT_BONUS
    if len(history) >= 3 and len(set(history[-3:])) == 1:
        score += settings.CONFIDENCE_CONTINUITY_BONUS
    if snapshot.size_variance is not None and snapshot.size_variance < settings.CONFIDENCE_STABLE_VARIANCE:
        score += settings.CONFIDENCE_STABILITY_BONUS
    return min(1.0, max(0.0, score))


class SpeakerAttributor:
    """
    Assigns a speaker label to each transcription event from one correlation queue.
    Keeps the last few resolved speakers for fallback and continuity scoring.
    """

    def __init__(
        self,
        queue: CorrelationQueue,
        clock: Clock | None = None,
        settings: Settings | None = None,
        fixed_label: str | None = None,
    ) -> None:
        self._queue = queue
        self._clock = clock or LoopClock()
        self._settings = settings or get_settings()
        # Queues fed by a single source: the label never depends on the queue state
        self.fixed_label = fixed_label
        self._history: deque[str] = deque(maxlen=self._settings.SPEAKER_HISTORY_SIZE)
        self.metrics = ValidationMetrics()

    @property
    def history(self) -> list[str]:
        return list(self._history)

    @property
    def queue(self) -> CorrelationQueue:
        return self._queue

    def label_for(self, source: AudioSource) -> str:
        if source is AudioSource.REMOTE:
            return self._settings.REMOTE_SPEAKER_LABEL
        return self._settings.LOCAL_SPEAKER_LABEL

    def attribute(self, transcript_text: str = "") -> AttributionResult:
        """Resolve the speaker for one transcription event and update metrics."""
        now = self._clock.now_ms()
        snapshot = self._queue.snapshot(now)
        self._queue.evict_stale(now)
        record = self._queue.pop_next()

        if record is not None:
            speaker = self.fixed_label or self.label_for(record.source)
            self._history.append(speaker)
        elif self.fixed_label is not None:
            speaker = self.fixed_label
        elif self._history:
            speaker = self._history[-1]
        else:
            speaker = self._settings.LOCAL_SPEAKER_LABEL

        history = list(self._history)
        confidence = calculate_confidence(snapshot, record is None, history, self._settings)
        result = AttributionResult(
            speaker=speaker,
            confidence=confidence,
            warnings=self._warnings(confidence, snapshot, record is None, history),
            source=record.source if record is not None else None,
            latency_ms=record.age_ms(now) if record is not None else None,
            queue_size=snapshot.size,
            queue_age_ms=snapshot.oldest_age_ms,
            timestamp=now,
        )
        self.metrics.record(result, self._settings.CONFIDENCE_LOW_THRESHOLD)

        if record is None:
            logger.debug("Queue empty, fallback speaker %s for %r", speaker, transcript_text[:40])
        else:
            logger.debug(
                "Matched transcript to %s audio (confidence %.2f, queue remaining %d)",
                record.source.value, confidence, len(self._queue),
            )
        if result.warnings:
            logger.info(
                "Attribution warnings for %s: %s (confidence %.2f)",
                speaker, ", ".join(w.value for w in result.warnings), confidence,
            )
        return result

    def _warnings(
        self,
        confidence: float,
        snapshot: QueueSnapshot,
        fallback: bool,
        history: list[str],
    ) -> list[AttributionWarning]:
        s = self._settings
        warnings: list[AttributionWarning] = []
        if confidence < s.CONFIDENCE_LOW_THRESHOLD:
            warnings.append(AttributionWarning.LOW_CONFIDENCE)
        if snapshot.size > s.QUEUE_DRIFT_WARN_SIZE:
            warnings.append(AttributionWarning.QUEUE_DRIFT)
        if count_speaker_changes(history) >= s.RAPID_CHANGES_WARN_COUNT:
            warnings.append(AttributionWarning.RAPID_CHANGES)
        if fallback:
            warnings.append(AttributionWarning.FALLBACK_MODE)
        return warnings

    def last_speaker(self) -> Optional[str]:
        return self._history[-1] if self._history else None

    def reset(self) -> None:
        """Session restart: history, metrics and the queue start empty."""
        self._history.clear()
        self.metrics = ValidationMetrics()
        self._queue.clear()
