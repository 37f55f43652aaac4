"""Coaching feedback loop state."""
from .state import (
    ConversationState,
    ConversationStateMachine,
    ResponseComparison,
    Suggestion,
    calculate_adherence,
)

__all__ = [
    "ConversationState",
    "ConversationStateMachine",
    "ResponseComparison",
    "Suggestion",
    "calculate_adherence",
]
