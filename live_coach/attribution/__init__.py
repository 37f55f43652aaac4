"""
Speaker attribution (arrival-order correlation only).

- No audio separation; each source arrives on its own stream.
- Labels come from which source's chunk a transcript is matched to.

Limitations (see speaker_attributor.py):
- Simultaneous speech from both sources may be misattributed.
- Confidence is a heuristic score, not a probability.
"""
from __future__ import annotations

from live_coach.attribution.labels import format_speaker_results, normalize_profile, speaker_label
from live_coach.attribution.models import AttributionResult, AttributionWarning, ValidationMetrics
from live_coach.attribution.speaker_attributor import SpeakerAttributor, calculate_confidence

__all__ = [
    "AttributionResult",
    "AttributionWarning",
    "SpeakerAttributor",
    "ValidationMetrics",
    "calculate_confidence",
    "format_speaker_results",
    "normalize_profile",
    "speaker_label",
]
