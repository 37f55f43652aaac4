"""
TranscriptPipeline: everything downstream of speaker attribution for one
coaching session (transcript buffer, context scheduler, conversation state,
display). Public entry points log and swallow errors; one bad fragment must not
stop the stream.
"""
from __future__ import annotations

import logging
from typing import Optional

from live_coach.attribution.models import AttributionResult
from live_coach.clock import Clock, LoopClock, Timer
from live_coach.config import Settings, get_settings
from live_coach.context.scheduler import ContextScheduler
from live_coach.conversation.state import ConversationStateMachine
from live_coach.display import DisplaySink, NoOpDisplaySink
from live_coach.transcript.buffer import TranscriptBuffer
from live_coach.transcript.models import FlushEvent

logger = logging.getLogger(__name__)

TRIGGER_SPEAKER_TURN = "speaker_turn"


class TranscriptPipeline:
    def __init__(
        self,
        clock: Clock | None = None,
        settings: Settings | None = None,
        sink: DisplaySink | None = None,
    ) -> None:
        self._clock = clock or LoopClock()
        self._settings = settings or get_settings()
        self.sink = sink or NoOpDisplaySink()
        self.conversation = ConversationStateMachine()
        self.buffer = TranscriptBuffer(self._clock, self._settings, lambda: self.conversation.state)
        self.scheduler = ContextScheduler(
            self._clock, self._settings, lambda: self.conversation.current_suggestion
        )
        self._check_timer = Timer(self._clock, "buffer-timeout-check")
        self._response = ""
        self._last_speaker: Optional[str] = None
        self.last_utterance = ""
        self.flushes: list[FlushEvent] = []  # this session's flushed utterances, in order

    def ingest(self, attribution: AttributionResult, text: str) -> None:
        """One attributed transcription fragment."""
        try:
            self._ingest(attribution, text)
        except Exception:
            logger.exception("Failed to process transcript fragment from %s", attribution.speaker)

    def _ingest(self, attribution: AttributionResult, text: str) -> None:
        speaker = attribution.speaker
        if attribution.latency_ms is not None:
            self.sink.latency(attribution.latency_ms)

        if speaker == self._settings.LOCAL_SPEAKER_LABEL:
            comparison = self.conversation.compare_response(text)
            if comparison is not None and comparison.has_suggestion:
                logger.info("Adherence to suggestion #%s: %d%% (%s)",
                            comparison.turn_id, comparison.adherence, comparison.analysis)

        speaker_changed = self._last_speaker is not None and speaker != self._last_speaker
        self._last_speaker = speaker
        self.scheduler.add_fragment(speaker, text)

        update = self.buffer.accept(speaker, text)
        for flush in update.flushes:
            self._on_flush(flush)
        if speaker_changed and not update.flushes:
            self.scheduler.schedule(TRIGGER_SPEAKER_TURN)
        self._arm_timeout_check()

    def _on_flush(self, flush: FlushEvent) -> None:
        self.flushes.append(flush)
        self.last_utterance = flush.text
        self.sink.transcript(flush.speaker, flush.text)
        self.scheduler.schedule(flush.reason.value)

    def _arm_timeout_check(self) -> None:
        if self.buffer.text and not self._check_timer.pending:
            self._check_timer.schedule(self._settings.BUFFER_CHECK_INTERVAL_MS, self.check_timeout)

    def check_timeout(self) -> None:
        """Periodic: flush a buffer that went quiet."""
        try:
            flush = self.buffer.check_timeout()
            if flush is not None:
                self._on_flush(flush)
        except Exception:
            logger.exception("Buffer timeout check failed")
        self._arm_timeout_check()

    def on_generation_chunk(self, text: str) -> None:
        if not text:
            return
        self._response += text
        self.sink.response(self._response)

    def on_generation_complete(self) -> str:
        """Finish the current response; it becomes the tracked suggestion. Returns it."""
        response = self._response.strip()
        self._response = ""
        if response:
            self.conversation.track_suggestion(response)
        return response

    def on_interrupted(self) -> None:
        logger.info("Generation interrupted, clearing response and transcript buffer")
        self._response = ""
        self.buffer.clear()
        self.sink.response("")

    def reset(self) -> None:
        """Hard reset: buffers, timers and coaching state."""
        self._check_timer.cancel()
        self.buffer.reset()
        self.scheduler.reset()
        self.conversation.reset()
        self._response = ""
        self._last_speaker = None
        self.last_utterance = ""
