"""
AISession: abstract bidirectional channel to the AI backend.

Implementations: CloudflareSession (Workers AI Whisper + chat model).
Everything the backend reports is delivered as a SessionEvent to the single
on_event callback given at construction; the callback runs on the event loop.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from live_coach.config import Settings, get_settings
from live_coach.correlation.models import AudioSource
from live_coach.sessions.prompts import build_system_prompt

logger = logging.getLogger(__name__)


class SessionRole(str, Enum):
    REMOTE = "remote"  # transcription only
    LOCAL = "local"  # coaching: transcription + generation
    SINGLE = "single"  # single-session mode: both sources, coaching


class SessionEventKind(str, Enum):
    TRANSCRIPT = "transcript"
    GENERATION_CHUNK = "generation_chunk"
    GENERATION_COMPLETE = "generation_complete"
    INTERRUPTED = "interrupted"
    CLOSE = "close"
    ERROR = "error"


@dataclass
class SessionEvent:
    kind: SessionEventKind
    role: SessionRole
    text: str = ""
    reason: str = ""  # CLOSE / ERROR
    error: Optional[BaseException] = None
    # diarised TRANSCRIPT: [{"transcript": ..., "speakerId": n}, ...]
    results: list[dict] = field(default_factory=list)


@dataclass
class AudioPayload:
    """PCM 16-bit mono at SAMPLE_RATE."""

    pcm: bytes
    source: AudioSource


@dataclass
class TextPayload:
    text: str


Payload = Union[AudioPayload, TextPayload]
EventCallback = Callable[[SessionEvent], None]


@dataclass
class SessionConfig:
    role: SessionRole
    profile: str
    language: str
    generate: bool
    system_prompt: str = ""
    tools: list[str] = field(default_factory=list)

    @classmethod
    def for_role(
        cls,
        role: SessionRole,
        profile: str,
        language: str,
        custom_prompt: str = "",
        settings: Settings | None = None,
    ) -> "SessionConfig":
        """Remote sessions only transcribe: no generation, no tools, no prompt."""
        s = settings or get_settings()
        if role is SessionRole.REMOTE:
            return cls(role=role, profile=profile, language=language, generate=False)
        tools = ["google_search"] if s.GOOGLE_SEARCH_ENABLED else []
        prompt = build_system_prompt(profile, custom_prompt[: s.CUSTOM_PROMPT_MAX_CHARS], bool(tools))
        return cls(role=role, profile=profile, language=language, generate=True, system_prompt=prompt, tools=tools)


_AUTH_FAILURE_MARKERS = (
    "api key not valid",
    "invalid api key",
    "authentication failed",
    "unauthorized",
)


def is_auth_failure(reason: str | None) -> bool:
    """Close/error reasons that make reconnecting pointless."""
    lowered = (reason or "").lower()
    return any(marker in lowered for marker in _AUTH_FAILURE_MARKERS)


class AISession(ABC):
    def __init__(self, config: SessionConfig, on_event: EventCallback) -> None:
        self.config = config
        self._on_event = on_event
        self.closed = False

    @property
    def role(self) -> SessionRole:
        return self.config.role

    @abstractmethod
    async def connect(self) -> None:
        """Open the channel. Raises SessionStartError."""
        ...

    @abstractmethod
    async def send(self, payload: Payload) -> None:
        """Deliver audio or text. Raises SessionSendError."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Local close. Does not emit a CLOSE event. Safe to call twice."""
        ...

    async def send_text(self, text: str) -> None:
        await self.send(TextPayload(text))

    def _emit(self, kind: SessionEventKind, text: str = "", reason: str = "", error: BaseException | None = None) -> None:
        try:
            self._on_event(SessionEvent(kind=kind, role=self.role, text=text, reason=reason, error=error))
        except Exception:
            logger.exception("Session event handler failed (%s, %s)", self.role.value, kind.value)
