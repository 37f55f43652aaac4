"""
DualSessionCoordinator: one coaching conversation over two AI sessions.

Dual-session mode (DUAL_SESSION_ENABLED=true):
- remote session: REMOTE audio only, transcription only;
- local session: LOCAL audio only, full coaching generation.
Each session has its own correlation queue and attributor, so a transcript is
only ever matched against chunks of the session that produced it. Remote text is
bridged into the local session as context (plus retrieval for long questions).

Single-session mode: one coaching session receives both sources and one shared
queue attributes its transcripts.

Lifecycle:
- start(): both sessions connect or neither stays open (SessionStartError).
- a server-side CLOSE of either session tears the pair down, hard-resets every
  buffer, queue and timer, refuses new work, then reconnects with exponential
  backoff unless the close reason is an authentication failure. After a
  successful reconnect the recent turns are replayed to the coaching session.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from live_coach.attribution.labels import format_speaker_results
from live_coach.attribution.models import AttributionResult
from live_coach.attribution.speaker_attributor import SpeakerAttributor
from live_coach.clock import Clock, LoopClock, Timer
from live_coach.config import Settings, get_settings
from live_coach.context.message import build_reconnection_context, build_relevant_history_message
from live_coach.correlation.models import AudioSource
from live_coach.correlation.queue import CorrelationQueue
from live_coach.display import DisplaySink
from live_coach.errors import CoachError, SessionStartError
from live_coach.retrieval.base import NoOpRetriever, Retriever, query_rag_if_needed
from live_coach.session_store import record_turn
from live_coach.sessions import create_session
from live_coach.sessions.base import (
    AISession,
    AudioPayload,
    EventCallback,
    SessionConfig,
    SessionEvent,
    SessionEventKind,
    SessionRole,
    is_auth_failure,
)
from live_coach.sessions.pipeline import TranscriptPipeline
from live_coach.sessions.retry import RetryStrategy
from live_coach.transcript.models import TurnHistoryEntry

logger = logging.getLogger(__name__)

SessionFactory = Callable[[SessionConfig, EventCallback], AISession]


async def _close_all(sessions: list[AISession]) -> None:
    results = await asyncio.gather(*(s.close() for s in sessions), return_exceptions=True)
    for session, result in zip(sessions, results):
        if isinstance(result, Exception):
            logger.warning("Closing %s session failed: %s", session.role.value, result)


@dataclass
class SessionPair:
    """Created together, torn down together. remote is None in single-session mode."""

    remote: Optional[AISession]
    local: AISession

    def session_for(self, role: SessionRole) -> AISession:
        if role is SessionRole.REMOTE and self.remote is not None:
            return self.remote
        return self.local

    def sessions(self) -> list[AISession]:
        return [s for s in (self.remote, self.local) if s is not None]

    async def close(self) -> None:
        await _close_all(self.sessions())


class DualSessionCoordinator:
    def __init__(
        self,
        session_id: str,
        sink: DisplaySink | None = None,
        retriever: Retriever | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.session_id = session_id
        self._clock = clock or LoopClock()
        self._settings = settings or get_settings()
        self._retriever = retriever or NoOpRetriever()
        self._session_factory = session_factory or (
            lambda config, on_event: create_session(config, on_event, self._settings)
        )
        self.dual = self._settings.DUAL_SESSION_ENABLED
        self.pipeline = TranscriptPipeline(self._clock, self._settings, sink)
        roles = (SessionRole.REMOTE, SessionRole.LOCAL) if self.dual else (SessionRole.SINGLE,)
        self._queues: dict[SessionRole, CorrelationQueue] = {role: CorrelationQueue(self._clock) for role in roles}
        self._attributors: dict[SessionRole, SpeakerAttributor] = {
            role: SpeakerAttributor(self._queues[role], self._clock, self._settings, self._label_for_role(role))
            for role in roles
        }
        self.pair: Optional[SessionPair] = None
        self.active = False
        self._stopped = True
        self._pair_generation = 0
        self._retry = RetryStrategy(
            self._settings.RECONNECT_MAX_ATTEMPTS,
            self._settings.RECONNECT_BASE_DELAY_MS,
            self._settings.RECONNECT_MAX_DELAY_MS,
        )
        self._reconnect_timer = Timer(self._clock, "reconnect")
        self._reconnect_history: list[TurnHistoryEntry] = []
        self.profile = self._settings.DEFAULT_PROFILE
        self.language = self._settings.DEFAULT_LANGUAGE
        self._custom_prompt = ""

    @property
    def sink(self) -> DisplaySink:
        return self.pipeline.sink

    def _label_for_role(self, role: SessionRole) -> str | None:
        """Dual mode: each session hears one source, so its role decides the speaker."""
        if role is SessionRole.REMOTE:
            return self._settings.REMOTE_SPEAKER_LABEL
        if role is SessionRole.LOCAL:
            return self._settings.LOCAL_SPEAKER_LABEL
        return None

    def queue_for(self, role: SessionRole) -> CorrelationQueue:
        return self._queues[role]

    def attributor_for(self, role: SessionRole) -> SpeakerAttributor:
        return self._attributors[role]

    def _role_for(self, source: AudioSource) -> SessionRole:
        if not self.dual:
            return SessionRole.SINGLE
        return SessionRole.REMOTE if source is AudioSource.REMOTE else SessionRole.LOCAL

    # --- lifecycle ---

    async def start(self, profile: str | None = None, language: str | None = None, custom_prompt: str = "") -> None:
        """Open the session pair. Raises SessionStartError; no partial state remains."""
        if self.pair is not None:
            await self.stop()
        self.profile = profile or self._settings.DEFAULT_PROFILE
        self.language = language or self._settings.DEFAULT_LANGUAGE
        self._custom_prompt = custom_prompt or ""
        self._hard_reset()
        self._retry.reset()
        self._stopped = False
        try:
            await self._open_pair()
        except SessionStartError:
            self._stopped = True
            raise
        self.active = True
        self.sink.status("Live")
        logger.info("Coaching session %s started (%s mode, profile=%s, language=%s)",
                    self.session_id, "dual" if self.dual else "single", self.profile, self.language)

    async def _open_pair(self) -> None:
        roles = (SessionRole.REMOTE, SessionRole.LOCAL) if self.dual else (SessionRole.SINGLE,)
        self._pair_generation += 1
        generation = self._pair_generation
        opened: dict[SessionRole, AISession] = {}
        try:
            for role in roles:
                config = SessionConfig.for_role(role, self.profile, self.language, self._custom_prompt, self._settings)
                session = self._session_factory(config, self._handler(generation))
                opened[role] = session
                await session.connect()
        except Exception as e:
            logger.error("Session start failed (%s), closing %d session(s)", e, len(opened))
            await _close_all(list(opened.values()))
            self.pair = None
            if isinstance(e, SessionStartError):
                raise
            raise SessionStartError(str(e)) from e
        local = opened.get(SessionRole.LOCAL) or opened[SessionRole.SINGLE]
        self.pair = SessionPair(remote=opened.get(SessionRole.REMOTE), local=local)
        self.pipeline.scheduler.set_sender(local.send_text)

    def _handler(self, generation: int) -> EventCallback:
        return lambda event: self.dispatch(event, generation)

    async def stop(self) -> None:
        """Local shutdown: no reconnection."""
        self._stopped = True
        self.active = False
        self._reconnect_timer.cancel()
        pair, self.pair = self.pair, None
        self._pair_generation += 1
        self._log_metrics()
        self._hard_reset()
        if pair is not None:
            await pair.close()
        self.sink.status("Stopped")
        logger.info("Coaching session %s stopped", self.session_id)

    def _hard_reset(self) -> None:
        self.pipeline.scheduler.set_sender(None)
        self.pipeline.reset()
        for attributor in self._attributors.values():
            attributor.reset()

    def _log_metrics(self) -> None:
        for role, attributor in self._attributors.items():
            m = attributor.metrics
            if m.total_attributions:
                logger.info(
                    "Attribution metrics (%s): %d total, %.2f avg confidence, %d low, warnings=%s",
                    role.value, m.total_attributions, m.average_confidence, m.low_confidence_count,
                    dict(m.warnings_by_type),
                )

    def stats(self) -> dict:
        return {
            "active": self.active,
            "mode": "dual" if self.dual else "single",
            "conversation": self.pipeline.conversation.summary(),
            "attribution": {role.value: a.metrics.to_dict() for role, a in self._attributors.items()},
            "queues": {role.value: q.stats() for role, q in self._queues.items()},
        }

    # --- audio in ---

    def submit_audio(self, source: AudioSource | str, pcm: bytes, timestamp: float | None = None) -> Optional[str]:
        """
        Route one chunk to its session and register it for correlation.
        Returns the correlation id, or None when the chunk was refused.
        """
        parsed = AudioSource.parse(source)
        if parsed is None:
            logger.error("Refused audio chunk with invalid source %r", source)
            return None
        if not self.active or self.pair is None:
            logger.debug("Refused %s audio chunk: no active session", parsed.value)
            return None
        role = self._role_for(parsed)
        session = self.pair.session_for(role)
        correlation_id = self._queues[role].submit(parsed, timestamp)
        self._clock.spawn(self._send_audio(session, AudioPayload(pcm=pcm, source=parsed)))
        return correlation_id

    async def _send_audio(self, session: AISession, payload: AudioPayload) -> None:
        try:
            await session.send(payload)
        except CoachError as e:
            logger.warning("Audio send to %s session failed: %s", session.role.value, e)

    # --- session events ---

    def dispatch(self, event: SessionEvent, generation: int | None = None) -> None:
        """Single entry point for every session event."""
        if generation is not None and generation != self._pair_generation:
            logger.debug("Ignored %s event from a closed session pair", event.kind.value)
            return
        try:
            if event.kind is SessionEventKind.TRANSCRIPT:
                text = event.text or format_speaker_results(event.results, self.profile).strip()
                self._on_transcript(event.role, text)
            elif event.kind is SessionEventKind.GENERATION_CHUNK:
                self.pipeline.on_generation_chunk(event.text)
            elif event.kind is SessionEventKind.GENERATION_COMPLETE:
                self._on_generation_complete()
            elif event.kind is SessionEventKind.INTERRUPTED:
                self.pipeline.on_interrupted()
            elif event.kind is SessionEventKind.CLOSE:
                self._on_close(event)
            elif event.kind is SessionEventKind.ERROR:
                self._on_error(event)
        except Exception:
            logger.exception("Failed to handle %s event from %s session", event.kind.value, event.role.value)

    def _on_transcript(self, role: SessionRole, text: str) -> None:
        if not self.active or not (text or "").strip():
            return
        attributor = self._attributors.get(role) or next(iter(self._attributors.values()))
        result = attributor.attribute(text)
        if result.speaker == self._settings.REMOTE_SPEAKER_LABEL:
            self.bridge(result, text)
        else:
            self.pipeline.ingest(result, text)

    def bridge(self, result: AttributionResult, text: str) -> None:
        """Remote text becomes context for the coaching session (and a retrieval query)."""
        self.pipeline.ingest(result, text)
        if not isinstance(self._retriever, NoOpRetriever):
            self._clock.spawn(self._send_relevant_history(text))

    async def _send_relevant_history(self, text: str) -> None:
        context = await query_rag_if_needed(self._retriever, text, self.session_id, self._settings)
        pair = self.pair
        if context is None or pair is None or not self.active:
            return
        try:
            await pair.local.send_text(build_relevant_history_message(context))
        except CoachError as e:
            logger.warning("Failed to send retrieved context: %s", e)

    def _on_generation_complete(self) -> None:
        response = self.pipeline.on_generation_complete()
        if response:
            record_turn(self.session_id, self.pipeline.last_utterance, response)

    def _on_error(self, event: SessionEvent) -> None:
        logger.warning("%s session error: %s", event.role.value, event.reason)
        if is_auth_failure(event.reason):
            self._retry.exhaust()
            self.sink.status("Error: Invalid API key")
        else:
            self.sink.status(f"Error: {event.reason}")

    def _on_close(self, event: SessionEvent) -> None:
        if not self.active:
            return
        logger.warning("%s session closed by server: %s", event.role.value, event.reason or "(no reason)")
        self._reconnect_history = self.pipeline.buffer.turn_history
        self.active = False
        pair, self.pair = self.pair, None
        self._pair_generation += 1
        self._hard_reset()
        if pair is not None:
            self._clock.spawn(pair.close())
        if is_auth_failure(event.reason):
            self._retry.exhaust()
            self.sink.status("Session closed: Invalid API key")
            return
        self._schedule_reconnect()

    # --- reconnection ---

    def _schedule_reconnect(self) -> None:
        if self._stopped:
            return
        if not self._retry.should_retry():
            logger.error("Reconnection failed after %d attempts", self._retry.attempts)
            self.sink.status("Reconnection failed")
            return
        delay = self._retry.next_delay()
        logger.info("Reconnecting in %d ms (attempt %d/%d)", delay, self._retry.attempts, self._retry.max_attempts)
        self.sink.status(f"Reconnecting ({self._retry.attempts}/{self._retry.max_attempts})")
        self._reconnect_timer.schedule(delay, lambda: self._clock.spawn(self.reconnect()))

    async def reconnect(self) -> bool:
        """One reconnection attempt; schedules the next one on failure."""
        if self._stopped or self.active:
            return False
        try:
            await self._open_pair()
        except SessionStartError as e:
            logger.warning("Reconnection attempt %d failed: %s", self._retry.attempts, e)
            if is_auth_failure(str(e)):
                self._retry.exhaust()
            self._schedule_reconnect()
            return False
        self.active = True
        self._retry.reset()
        self.sink.status("Reconnected")
        logger.info("Coaching session %s reconnected", self.session_id)
        message = build_reconnection_context(self._reconnect_history)
        if message and self.pair is not None:
            try:
                await self.pair.local.send_text(message)
            except CoachError as e:
                logger.warning("Failed to send reconnection context: %s", e)
        return True
