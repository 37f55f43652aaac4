"""
Schemas for the coaching WebSocket control messages and the session HTTP API.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class StartMessage(BaseModel):
    """First text message on /ws/session."""

    type: Literal["start"]
    profile: str | None = Field(None, description="interview | sales | meeting | presentation | negotiation | exam")
    language: str | None = Field(None, description="BCP-47 language tag, e.g. en-US")
    custom_prompt: str = Field("", description="User-provided context appended to the system prompt")


class StopMessage(BaseModel):
    type: Literal["stop"]


class ConversationTurn(BaseModel):
    timestamp: int = Field(..., description="Unix ms when the AI finished the response")
    transcription: str = Field("", description="Last utterance before the response")
    ai_response: str = Field("", description="Full AI response")


class SessionDataResponse(BaseModel):
    """Response body for GET /api/sessions/{session_id}."""

    session_id: str
    profile: str
    language: str
    created_at: float = Field(..., description="Unix seconds")
    history: list[ConversationTurn] = Field(default_factory=list)
