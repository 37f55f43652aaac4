"""Context injection: debounced, truncated, retried-once sends to the coaching session."""
from .message import build_context_message, build_reconnection_context, build_relevant_history_message
from .scheduler import TRIGGER_FALLBACK, ContextScheduler

__all__ = [
    "TRIGGER_FALLBACK",
    "ContextScheduler",
    "build_context_message",
    "build_reconnection_context",
    "build_relevant_history_message",
]
