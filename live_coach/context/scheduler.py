"""
ContextScheduler: debounced context injection into the coaching session.

Every attributed fragment is appended to one shared pending buffer as
"[speaker]: text ". schedule() turns the buffer into at most one send per
debounce window:

- pending larger than CONTEXT_IMMEDIATE_CHARS: cancel the debounce, send now;
- otherwise (re)start the debounce timer; the last trigger wins.

Dispatch takes the pending buffer and clears it, so fragments arriving while a
send is in flight start a fresh buffer. A send that fails is retried once after
CONTEXT_RETRY_DELAY_MS; a failing retry is logged and dropped.
reset() starts a new epoch: a send or retry begun before it never reaches the
next session.

A fallback timer sends when CONTEXT_FALLBACK_MS have elapsed since the last
successful send and the speaker has not changed, so monologues still reach the AI.
"""
from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from live_coach.clock import Clock, LoopClock, Timer
from live_coach.config import Settings, get_settings
from live_coach.context.message import build_context_message
from live_coach.conversation.state import Suggestion
from live_coach.errors import SessionClosedError
from live_coach.transcript.text import normalize_text

logger = logging.getLogger(__name__)

Sender = Callable[[str], Awaitable[None]]

TRIGGER_FALLBACK = "timeout_fallback"


class ContextScheduler:
    def __init__(
        self,
        clock: Clock | None = None,
        settings: Settings | None = None,
        suggestion_provider: Callable[[], Optional[Suggestion]] | None = None,
    ) -> None:
        self._clock = clock or LoopClock()
        self._settings = settings or get_settings()
        self._suggestion_provider = suggestion_provider or (lambda: None)
        self._debounce = Timer(self._clock, "context-debounce")
        self._fallback = Timer(self._clock, "context-fallback")
        self._retries: set[Timer] = set()
        # Bumped by reset(); sends started before a reset never send or retry after it
        self._epoch = 0
        self._sender: Optional[Sender] = None
        self.pending = ""
        self.last_sent_at: float = self._clock.now_ms()
        self._last_speaker: Optional[str] = None
        self._speaker_changed = False
        self.sent_count = 0
        self.failed_count = 0

    @property
    def debounce_pending(self) -> bool:
        return self._debounce.pending

    def set_sender(self, sender: Optional[Sender]) -> None:
        """Target session for context messages (None while disconnected)."""
        self._sender = sender

    def add_fragment(self, speaker: str, text: str) -> None:
        text = normalize_text(text)
        if not text:
            return
        if self._last_speaker is not None and speaker != self._last_speaker:
            self._speaker_changed = True
        self._last_speaker = speaker
        self.pending += f"[{speaker}]: {text} "
        self._arm_fallback()

    def schedule(self, trigger: str) -> None:
        """Request a send of the pending buffer."""
        if not self.pending.strip():
            return
        if len(self.pending) > self._settings.CONTEXT_IMMEDIATE_CHARS:
            self._debounce.cancel()
            logger.debug("Pending context %d chars, sending immediately (%s)", len(self.pending), trigger)
            self._dispatch(trigger)
            return
        self._debounce.schedule(self._settings.CONTEXT_DEBOUNCE_MS, lambda: self._dispatch(trigger))

    def _dispatch(self, trigger: str) -> None:
        context = self.pending.strip()
        self.pending = ""
        self._speaker_changed = False
        if not context:
            return
        self._clock.spawn(self.send(context, trigger, epoch=self._epoch))

    async def send(self, context: str, trigger: str, is_retry: bool = False, epoch: int | None = None) -> bool:
        """Deliver one context message. Returns True on success; failures never raise."""
        epoch = self._epoch if epoch is None else epoch
        if epoch != self._epoch:
            logger.info("Dropped %d chars of context from before a reset (%s)", len(context), trigger)
            return False
        max_chars = self._settings.CONTEXT_MAX_CHARS
        if len(context) > max_chars:
            logger.info("Context truncated from %d to %d chars (%s)", len(context), max_chars, trigger)
            context = context[-max_chars:]
        message = build_context_message(context, self._suggestion_provider())
        try:
            if self._sender is None:
                raise SessionClosedError("no active coaching session")
            await self._sender(message)
        except Exception as e:
            self.failed_count += 1
            if epoch != self._epoch:
                logger.info("Context send failed after a reset (%s), not retrying: %s", trigger, e)
                return False
            if is_retry:
                logger.error("Context retry failed (%s), dropping %d chars: %s", trigger, len(context), e)
                return False
            logger.warning("Context send failed (%s), retrying in %d ms: %s",
                           trigger, self._settings.CONTEXT_RETRY_DELAY_MS, e)
            self._schedule_retry(context, trigger, epoch)
            return False
        if epoch != self._epoch:
            return True
        self.last_sent_at = self._clock.now_ms()
        self.sent_count += 1
        logger.info("Context sent (%s, %d chars%s)", trigger, len(context), ", retry" if is_retry else "")
        self._arm_fallback()
        return True

    def _schedule_retry(self, context: str, trigger: str, epoch: int) -> None:
        timer = Timer(self._clock, "context-retry")

        def fire() -> None:
            self._retries.discard(timer)
            self._clock.spawn(self.send(context, trigger, is_retry=True, epoch=epoch))

        self._retries.add(timer)
        timer.schedule(self._settings.CONTEXT_RETRY_DELAY_MS, fire)

    def _arm_fallback(self) -> None:
        if not self.pending.strip() or self._fallback.pending:
            return
        due = self.last_sent_at + self._settings.CONTEXT_FALLBACK_MS
        self._fallback.schedule(max(0.0, due - self._clock.now_ms()), self._on_fallback)

    def _on_fallback(self) -> None:
        if not self.pending.strip():
            return
        if self._speaker_changed:
            # A speaker turn is scheduled through the debounce path instead.
            return
        self._debounce.cancel()
        self._dispatch(TRIGGER_FALLBACK)

    def cancel(self) -> None:
        """Drop pending content and every outstanding timer."""
        if self._debounce.cancel():
            logger.debug("Cancelled pending context send")
        self._fallback.cancel()
        for timer in list(self._retries):
            timer.cancel()
        self._retries.clear()
        self.pending = ""

    def reset(self) -> None:
        self.cancel()
        self._epoch += 1
        self.last_sent_at = self._clock.now_ms()
        self._last_speaker = None
        self._speaker_changed = False
