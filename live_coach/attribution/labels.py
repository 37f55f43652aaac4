"""
Speaker labels per conversation profile.

Each profile provides its own label set indexed by a 1-based speaker slot; slot 2
is always the coached participant. Slots past the set fall back to "Speaker <n>".
"""
from __future__ import annotations

from typing import Any, Iterable

SPEAKER_LABEL_MAPS: dict[str, list[str]] = {
    "interview": ["Interviewer 1", "You", "Interviewer 2", "Interviewer 3", "Interviewer 4", "Interviewer 5"],
    "sales": ["Prospect", "You", "Decision Maker", "Stakeholder", "Client", "Executive"],
    "meeting": ["Manager", "You", "Colleague", "Stakeholder", "Team Lead", "Director"],
    "presentation": ["Audience Member", "You", "Questioner", "Attendee", "Executive", "Participant"],
    "negotiation": ["Counterparty", "You", "Mediator", "Legal", "Decision Maker", "Advisor"],
    "exam": ["Proctor", "You", "Student 2", "Student 3", "Student 4", "Student 5"],
}

DEFAULT_PROFILE = "interview"
PROFILES = tuple(SPEAKER_LABEL_MAPS)


def normalize_profile(profile: str | None) -> str:
    """Unknown or empty profiles fall back to interview."""
    key = (profile or "").strip().lower()
    return key if key in SPEAKER_LABEL_MAPS else DEFAULT_PROFILE


def speaker_label(speaker_id: int, profile: str | None = None) -> str:
    labels = SPEAKER_LABEL_MAPS[normalize_profile(profile)]
    index = speaker_id - 1
    if 0 <= index < len(labels):
        return labels[index]
    return f"Speaker {speaker_id}"


def format_speaker_results(results: Iterable[dict[str, Any]], profile: str | None = None) -> str:
    """Structured diarisation results -> "[Label]: text" lines. Entries without text or id are skipped."""
    lines: list[str] = []
    for result in results:
        transcript = result.get("transcript")
        speaker_id = result.get("speakerId", result.get("speaker_id"))
        if not transcript or not speaker_id:
            continue
        try:
            slot = int(speaker_id)
        except (TypeError, ValueError):
            continue
        lines.append(f"[{speaker_label(slot, profile)}]: {transcript}")
    return "".join(line + "\n" for line in lines)
