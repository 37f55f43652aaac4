"""
In-memory store of coaching sessions. session_id is generated on the backend
(WebSocket start); the HTTP API only reads.
"""
from __future__ import annotations

import time
import uuid
from typing import Any

# session_id -> {
#   "profile": str,
#   "language": str,
#   "created_at": float,        # unix seconds
#   "history": [ {"timestamp": unix_ms, "transcription": str, "ai_response": str}, ... ],
# }
_session_store: dict[str, dict[str, Any]] = {}


def generate_session_id() -> str:
    """Generate a new session_id (UUID hex, 12 chars). Backend only."""
    return uuid.uuid4().hex[:12]


def get_session(session_id: str) -> dict[str, Any] | None:
    return _session_store.get(session_id)


def ensure_session(session_id: str, profile: str, language: str) -> dict[str, Any]:
    """Create the session record if missing. Called when a session starts."""
    if session_id not in _session_store:
        _session_store[session_id] = {
            "profile": profile,
            "language": language,
            "created_at": time.time(),
            "history": [],
        }
    return _session_store[session_id]


def record_turn(session_id: str, transcription: str, ai_response: str) -> None:
    """Append one conversation turn (on generation complete). Unknown sessions are ignored."""
    s = _session_store.get(session_id)
    if s is None:
        return
    s["history"].append(
        {
            "timestamp": int(time.time() * 1000),
            "transcription": transcription,
            "ai_response": ai_response,
        }
    )


def delete_session(session_id: str) -> bool:
    """Remove session from store. Return True if it existed."""
    if session_id in _session_store:
        del _session_store[session_id]
        return True
    return False


def clear_sessions() -> None:
    _session_store.clear()
