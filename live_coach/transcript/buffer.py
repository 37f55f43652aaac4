"""
TranscriptBuffer: turns word-by-word transcription fragments into utterances.

Per accepted fragment (speaker, text):
- same speaker: append.
- speaker changed: the outgoing buffer is flushed under the outgoing speaker if it
  holds enough words, otherwise discarded (log-only). The fragment then starts
  the new speaker's buffer.
- then, independently: flush when the buffer ends a sentence (always), or when
  the adaptive timeout has elapsed since the previous update and the buffer
  holds enough words.

Text is append-only between flush points; flush, discard and clear are the only
ways it shrinks. A flush is remembered in a short turn history.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Optional

from live_coach.clock import Clock, LoopClock
from live_coach.config import Settings, get_settings
from live_coach.conversation.state import ConversationState
from live_coach.transcript.models import (
    BufferUpdate,
    DiscardEvent,
    FlushEvent,
    FlushReason,
    SpeakerChangeDecision,
    TurnHistoryEntry,
)
from live_coach.transcript.text import count_words, ends_sentence, normalize_text

logger = logging.getLogger(__name__)


def get_adaptive_timeout(
    state: ConversationState | str | None,
    word_count: int,
    settings: Settings | None = None,
) -> int:
    """Timeout (ms) before a silent buffer is considered done."""
    s = settings or get_settings()
    if word_count < s.BUFFER_SHORT_WORDS:
        return s.BUFFER_LONG_TIMEOUT_MS
    if state == ConversationState.MONITORING:
        return s.BUFFER_LONG_TIMEOUT_MS
    return s.BUFFER_TIMEOUT_MS


def should_flush_buffer(
    text: str,
    last_update_at: float,
    state: ConversationState | str | None,
    now: float,
    settings: Settings | None = None,
) -> bool:
    """Flush iff the text ends a sentence, or (timeout elapsed and enough words)."""
    s = settings or get_settings()
    if ends_sentence(text):
        return True
    words = count_words(text)
    if words < s.BUFFER_MIN_FLUSH_WORDS:
        return False
    return now - last_update_at >= get_adaptive_timeout(state, words, s)


def handle_speaker_change(
    buffer: str,
    previous_speaker: Optional[str],
    current_speaker: str,
    settings: Settings | None = None,
) -> SpeakerChangeDecision:
    """Decide what happens to the outgoing buffer when the speaker changes."""
    s = settings or get_settings()
    words = count_words(buffer)
    if previous_speaker is None or previous_speaker == current_speaker:
        return SpeakerChangeDecision(should_flush=False, should_discard=False, word_count=words)
    if words >= s.BUFFER_MIN_FLUSH_WORDS:
        return SpeakerChangeDecision(should_flush=True, should_discard=False, word_count=words)
    return SpeakerChangeDecision(should_flush=False, should_discard=True, word_count=words)


class TranscriptBuffer:
    """
    One live buffer per session, shared by both speakers.
    state_provider returns the conversation state used for the adaptive timeout.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        settings: Settings | None = None,
        state_provider: Callable[[], ConversationState] | None = None,
    ) -> None:
        self._clock = clock or LoopClock()
        self._settings = settings or get_settings()
        self._state_provider = state_provider or (lambda: ConversationState.IDLE)
        self.text = ""
        self.owner_speaker: Optional[str] = None
        self.previous_speaker: Optional[str] = None
        self.last_update_at: float = self._clock.now_ms()
        self._turn_history: deque[TurnHistoryEntry] = deque(maxlen=self._settings.TURN_HISTORY_SIZE)

    @property
    def word_count(self) -> int:
        return count_words(self.text)

    @property
    def turn_history(self) -> list[TurnHistoryEntry]:
        return list(self._turn_history)

    def accept(self, speaker: str, text: str, now: float | None = None) -> BufferUpdate:
        """Feed one attributed fragment. Empty fragments are rejected (logged, never raised)."""
        normalized = normalize_text(text)
        if not normalized or not speaker:
            logger.info("Rejected empty transcript fragment (speaker=%r)", speaker)
            return BufferUpdate(accepted=False)
        now = self._clock.now_ms() if now is None else now
        update = BufferUpdate(accepted=True)

        # Measured against the previous update, before this fragment refreshes it.
        elapsed: Optional[float] = now - self.last_update_at if self.text else None

        decision = handle_speaker_change(self.text, self.previous_speaker, speaker, self._settings)
        if decision.should_flush:
            update.flushes.append(self._flush(FlushReason.SPEAKER_TURN, now))
            elapsed = None
        elif decision.should_discard:
            if self.text:
                update.discarded = DiscardEvent(
                    speaker=self.owner_speaker or self.previous_speaker or "",
                    text=self.text,
                    word_count=decision.word_count,
                    at=now,
                )
                logger.info(
                    "Discarded %d-word fragment from %s on speaker change: %r",
                    decision.word_count, update.discarded.speaker, self.text[:50],
                )
            self._reset_text()
            elapsed = None

        self.text = f"{self.text} {normalized}" if self.text else normalized
        self.owner_speaker = speaker
        self.previous_speaker = speaker
        self.last_update_at = now

        words = self.word_count
        if ends_sentence(self.text):
            update.flushes.append(self._flush(FlushReason.SENTENCE_COMPLETE, now))
        elif (
            elapsed is not None
            and words >= self._settings.BUFFER_MIN_FLUSH_WORDS
            and elapsed >= get_adaptive_timeout(self._state_provider(), words, self._settings)
        ):
            update.flushes.append(self._flush(FlushReason.TIMEOUT, now))
        else:
            logger.debug("Buffering %d words from %s", words, speaker)
        return update

    def check_timeout(self, now: float | None = None) -> Optional[FlushEvent]:
        """Flush a silent buffer whose adaptive timeout has elapsed. Called periodically."""
        if not self.text:
            return None
        now = self._clock.now_ms() if now is None else now
        if should_flush_buffer(self.text, self.last_update_at, self._state_provider(), now, self._settings):
            reason = FlushReason.SENTENCE_COMPLETE if ends_sentence(self.text) else FlushReason.TIMEOUT
            return self._flush(reason, now)
        return None

    def _flush(self, reason: FlushReason, now: float) -> FlushEvent:
        text = self.text.strip()
        speaker = self.owner_speaker or self.previous_speaker or ""
        event = FlushEvent(speaker=speaker, text=text, reason=reason, at=now, word_count=count_words(text))
        self._turn_history.append(TurnHistoryEntry(speaker=speaker, text=text, at=now))
        logger.info("Flushed %d words from %s (%s)", event.word_count, speaker, reason.value)
        self._reset_text()
        return event

    def _reset_text(self) -> None:
        self.text = ""
        self.owner_speaker = None

    def clear(self) -> None:
        """Drop buffered text without emitting it (interruption)."""
        if self.text:
            logger.info("Cleared %d buffered words", self.word_count)
        self._reset_text()

    def reset(self) -> None:
        """Session reset: no buffer, no previous speaker, no turn history."""
        self._reset_text()
        self.previous_speaker = None
        self._turn_history.clear()
        self.last_update_at = self._clock.now_ms()
