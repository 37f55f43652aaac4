"""
Attribution results and cumulative validation metrics.

Attribution is a heuristic: two genuinely simultaneous speakers, or a burst from
one source followed by a burst from the other before either is transcribed, will
be misattributed. Confidence and warnings make that visible; they never fail a
transcript.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from live_coach.correlation.models import AudioSource


class AttributionWarning(str, Enum):
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    QUEUE_DRIFT = "QUEUE_DRIFT"
    RAPID_CHANGES = "RAPID_CHANGES"
    FALLBACK_MODE = "FALLBACK_MODE"


@dataclass
class AttributionResult:
    """
    Speaker label for one transcription event.

    source: the correlated chunk's source, None when the label came from fallback.
    latency_ms: time from chunk submission to attribution, None on fallback.
    queue_size / queue_age_ms: raw queue state when the event arrived.
    """

    speaker: str
    confidence: float
    warnings: list[AttributionWarning] = field(default_factory=list)
    source: Optional[AudioSource] = None
    latency_ms: Optional[float] = None
    queue_size: int = 0
    queue_age_ms: Optional[float] = None
    timestamp: float = 0.0  # unix ms

    @property
    def fallback(self) -> bool:
        return self.source is None


@dataclass
class ValidationMetrics:
    """Cumulative counters; only grow for the life of a session."""

    total_attributions: int = 0
    low_confidence_count: int = 0
    confidence_sum: float = 0.0
    warnings_by_type: dict[str, int] = field(default_factory=dict)

    @property
    def average_confidence(self) -> float:
        if self.total_attributions == 0:
            return 0.0
        return self.confidence_sum / self.total_attributions

    def record(self, result: AttributionResult, low_threshold: float) -> None:
        self.total_attributions += 1
        self.confidence_sum += result.confidence
        if result.confidence < low_threshold:
            self.low_confidence_count += 1
        for warning in result.warnings:
            self.warnings_by_type[warning.value] = self.warnings_by_type.get(warning.value, 0) + 1

    def to_dict(self) -> dict:
        return {
            "total_attributions": self.total_attributions,
            "low_confidence_count": self.low_confidence_count,
            "average_confidence": round(self.average_confidence, 3),
            "warnings_by_type": dict(self.warnings_by_type),
        }
