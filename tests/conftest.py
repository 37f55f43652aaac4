"""Shared fixtures: deterministic clock, fake AI sessions, recording display sink."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Optional

import pytest

from live_coach.config import Settings
from live_coach.display import DisplaySink
from live_coach.errors import SessionSendError, SessionStartError
from live_coach.sessions.base import (
    AISession,
    EventCallback,
    Payload,
    SessionConfig,
    SessionEventKind,
    SessionRole,
    TextPayload,
)

START_MS = 1_700_000_000_000.0


class FakeHandle:
    def __init__(self, due: float, seq: int, fn: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """Manual time. advance() fires due callbacks in order; settle() runs spawned tasks."""

    def __init__(self, start: float = START_MS) -> None:
        self.now = start
        self._handles: list[FakeHandle] = []
        self._seq = 0
        self.tasks: list[asyncio.Task] = []

    def now_ms(self) -> float:
        return self.now

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> FakeHandle:
        self._seq += 1
        handle = FakeHandle(self.now + max(0.0, delay_ms), self._seq, fn)
        self._handles.append(handle)
        return handle

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self.tasks.append(task)
        return task

    def pending_timers(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)

    def advance(self, ms: float) -> None:
        target = self.now + ms
        while True:
            due = [h for h in self._handles if not h.cancelled and h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.due, h.seq))
            self._handles.remove(handle)
            self.now = handle.due
            handle.fn()
        self._handles = [h for h in self._handles if not h.cancelled]
        self.now = target

    async def settle(self) -> None:
        for _ in range(50):
            await asyncio.sleep(0)
            pending = [t for t in self.tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)


class RecordingDisplaySink(DisplaySink):
    def __init__(self) -> None:
        self.transcripts: list[tuple[str, str]] = []
        self.latencies: list[float] = []
        self.responses: list[str] = []
        self.statuses: list[str] = []

    def transcript(self, speaker: str, text: str) -> None:
        self.transcripts.append((speaker, text))

    def latency(self, ms: float) -> None:
        self.latencies.append(ms)

    def response(self, text: str) -> None:
        self.responses.append(text)

    def status(self, text: str) -> None:
        self.statuses.append(text)


class FakeSession(AISession):
    def __init__(self, config: SessionConfig, on_event: EventCallback, fail_connect: bool = False) -> None:
        super().__init__(config, on_event)
        self.fail_connect = fail_connect
        self.fail_sends = 0
        self.connected = False
        self.close_calls = 0
        self.sent: list[Payload] = []

    async def connect(self) -> None:
        if self.fail_connect:
            raise SessionStartError(f"{self.role.value} connect refused")
        self.connected = True

    async def send(self, payload: Payload) -> None:
        if self.fail_sends > 0:
            self.fail_sends -= 1
            raise SessionSendError("send refused")
        self.sent.append(payload)

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    def emit(self, kind: SessionEventKind, text: str = "", reason: str = "") -> None:
        self._emit(kind, text=text, reason=reason)

    @property
    def texts(self) -> list[str]:
        return [p.text for p in self.sent if isinstance(p, TextPayload)]


class FakeSessionFactory:
    """Records every session it creates; fail_roles makes connect() fail for those roles."""

    def __init__(self) -> None:
        self.created: list[FakeSession] = []
        self.fail_roles: set[SessionRole] = set()

    def __call__(self, config: SessionConfig, on_event: EventCallback) -> FakeSession:
        session = FakeSession(config, on_event, fail_connect=config.role in self.fail_roles)
        self.created.append(session)
        return session

    def latest(self, role: SessionRole) -> Optional[FakeSession]:
        for session in reversed(self.created):
            if session.role is role:
                return session
        return None


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        CLOUDFLARE_ACCOUNT_ID="acct",
        CLOUDFLARE_API_TOKEN="token",
        RAG_URL="",
        LOG_FILE="",
    )


@pytest.fixture
def sink() -> RecordingDisplaySink:
    return RecordingDisplaySink()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()
