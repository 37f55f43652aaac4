"""Pydantic schemas for WebSocket control messages and API responses."""
from live_coach.schemas.session import (
    ConversationTurn,
    SessionDataResponse,
    StartMessage,
    StopMessage,
)

__all__ = [
    "ConversationTurn",
    "SessionDataResponse",
    "StartMessage",
    "StopMessage",
]
