"""
Coaching feedback loop: what the AI last suggested and how closely the coached
participant followed it.

States: IDLE -> SUGGESTING (suggestion tracked) -> MONITORING (participant is
answering). The transcript buffer waits longer before a timeout flush while
MONITORING, because the participant is mid-answer.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

_MAX_TURN_HISTORY = 10


class ConversationState(str, Enum):
    IDLE = "IDLE"
    SUGGESTING = "SUGGESTING"
    MONITORING = "MONITORING"
    EVALUATING = "EVALUATING"


@dataclass
class Suggestion:
    text: str
    turn_id: int
    timestamp: float  # unix ms
    speaker: str = "AI Coach"


@dataclass
class ResponseComparison:
    actual_text: str
    adherence: int  # 0-100
    analysis: str
    has_suggestion: bool
    suggestion: Optional[str] = None
    turn_id: Optional[int] = None


def _words(text: str) -> set[str]:
    return {w for w in re.sub(r"[^\w\s]", "", text.lower()).split() if w}


def calculate_adherence(suggested: str, actual: str) -> int:
    """Average of suggestion coverage and answer coverage over unique words, 0-100."""
    suggested_words = _words(suggested)
    actual_words = _words(actual)
    if not suggested_words or not actual_words:
        return 0
    matches = len(suggested_words & actual_words)
    adherence = (matches / len(suggested_words) + matches / len(actual_words)) / 2 * 100
    return round(min(100.0, max(0.0, adherence)))


def adherence_analysis(adherence: int) -> str:
    if adherence >= 80:
        return "Excellent adherence - followed the suggestion very closely"
    if adherence >= 60:
        return "Good adherence - followed key points with some variation"
    if adherence >= 40:
        return "Moderate adherence - partially followed the suggestion"
    if adherence >= 20:
        return "Low adherence - deviated significantly from the suggestion"
    return "Minimal adherence - did not follow the suggestion"


class ConversationStateMachine:
    """Per-session coaching state. Not shared between sessions."""

    def __init__(self) -> None:
        self.state = ConversationState.IDLE
        self.current_suggestion: Optional[Suggestion] = None
        self.turn_history: list[dict] = []
        self._turn_id = 0

    def set_state(self, new_state: ConversationState) -> None:
        if new_state is not self.state:
            logger.debug("Conversation state %s -> %s", self.state.value, new_state.value)
        self.state = new_state

    def track_suggestion(self, text: str, speaker: str = "AI Coach") -> Optional[Suggestion]:
        """Remember the AI's latest suggestion. Empty text is ignored."""
        text = (text or "").strip()
        if not text:
            logger.warning("Ignored empty suggestion")
            return None
        self._turn_id += 1
        self.current_suggestion = Suggestion(
            text=text, turn_id=self._turn_id, timestamp=time.time() * 1000, speaker=speaker
        )
        self.set_state(ConversationState.SUGGESTING)
        logger.info("Tracked suggestion #%d: %r", self._turn_id, text[:50])
        return self.current_suggestion

    def compare_response(self, actual_text: str) -> Optional[ResponseComparison]:
        """Score what the participant said against the current suggestion."""
        actual_text = (actual_text or "").strip()
        if not actual_text:
            return None
        suggestion = self.current_suggestion
        if suggestion is None:
            return ResponseComparison(
                actual_text=actual_text,
                adherence=0,
                analysis="No suggestion available to compare",
                has_suggestion=False,
            )
        self.set_state(ConversationState.MONITORING)
        adherence = calculate_adherence(suggestion.text, actual_text)
        self.turn_history.append(
            {
                "turn_id": suggestion.turn_id,
                "suggestion": suggestion.text,
                "actual": actual_text,
                "adherence": adherence,
                "timestamp": time.time() * 1000,
            }
        )
        if len(self.turn_history) > _MAX_TURN_HISTORY:
            self.turn_history.pop(0)
        return ResponseComparison(
            actual_text=actual_text,
            adherence=adherence,
            analysis=adherence_analysis(adherence),
            has_suggestion=True,
            suggestion=suggestion.text,
            turn_id=suggestion.turn_id,
        )

    def reset(self) -> None:
        self.state = ConversationState.IDLE
        self.current_suggestion = None
        self.turn_history = []
        self._turn_id = 0

    def summary(self) -> dict:
        return {
            "state": self.state.value,
            "has_suggestion": self.current_suggestion is not None,
            "current_turn_id": self.current_suggestion.turn_id if self.current_suggestion else None,
            "history_length": len(self.turn_history),
        }
