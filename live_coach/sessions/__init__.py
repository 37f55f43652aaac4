"""AI sessions: abstract channel, Cloudflare backend, factory."""
from live_coach.config import Settings, get_settings

from .base import (
    AISession,
    AudioPayload,
    EventCallback,
    SessionConfig,
    SessionEvent,
    SessionEventKind,
    SessionRole,
    TextPayload,
    is_auth_failure,
)
from .cloudflare import CloudflareSession
from .retry import RetryStrategy


def create_session(config: SessionConfig, on_event: EventCallback, settings: Settings | None = None) -> AISession:
    """Return the AI session backend selected by AI_BACKEND."""
    s = settings or get_settings()
    if s.AI_BACKEND == "cloudflare":
        return CloudflareSession(config, on_event, settings=s)
    raise ValueError(f"Unknown AI_BACKEND {s.AI_BACKEND!r}")


__all__ = [
    "AISession",
    "AudioPayload",
    "CloudflareSession",
    "EventCallback",
    "RetryStrategy",
    "SessionConfig",
    "SessionEvent",
    "SessionEventKind",
    "SessionRole",
    "TextPayload",
    "create_session",
    "is_auth_failure",
]
