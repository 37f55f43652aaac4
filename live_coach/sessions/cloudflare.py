"""
CloudflareSession: AI session on Cloudflare Workers AI.

- Audio: PCM is accumulated into STT_WINDOW_SECONDS windows; each window is
  transcribed with Whisper by a worker task (in order) and emitted as TRANSCRIPT.
- Text (generating sessions only): appended to a bounded message history and
  answered with the chat model; the reply is emitted as GENERATION_CHUNK then
  GENERATION_COMPLETE. A newer text that arrives mid-generation interrupts the
  older reply (INTERRUPTED).
- 401/403 from the API closes the session with an authentication reason, which
  the coordinator treats as "do not reconnect".
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from live_coach.config import Settings, get_settings
from live_coach.errors import SessionClosedError, SessionSendError, SessionStartError
from live_coach.sessions.base import (
    AISession,
    AudioPayload,
    EventCallback,
    Payload,
    SessionConfig,
    SessionEventKind,
    TextPayload,
)

logger = logging.getLogger(__name__)

_API_ROOT = "https://api.cloudflare.com/client/v4/accounts"
_WHISPER_MODEL = "@cf/openai/whisper"


def _extract_text(data: Any, key: str) -> str:
    """Workers AI wraps output in {"result": {...}}; tolerate bare results."""
    result = data.get("result", data) if isinstance(data, dict) else data
    if isinstance(result, dict):
        text = result.get(key, result.get("text", result.get("transcript", "")))
    elif isinstance(result, str):
        text = result
    else:
        text = ""
    return (text or "").strip()


class CloudflareSession(AISession):
    def __init__(
        self,
        config: SessionConfig,
        on_event: EventCallback,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(config, on_event)
        self._settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None
        self._window = bytearray()
        bytes_per_second = self._settings.SAMPLE_RATE * self._settings.SAMPLE_WIDTH * self._settings.CHANNELS
        self._window_bytes = int(self._settings.STT_WINDOW_SECONDS * bytes_per_second)
        self._audio_queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._messages: list[dict[str, str]] = []
        self._generation = 0
        self._generating = False
        self._connected = False

    def _url(self, model: str) -> str:
        return f"{_API_ROOT}/{self._settings.CLOUDFLARE_ACCOUNT_ID.strip()}/ai/run/{model}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.CLOUDFLARE_API_TOKEN.strip()}",
            "Content-Type": "application/json",
        }

    async def connect(self) -> None:
        if not self._settings.CLOUDFLARE_ACCOUNT_ID.strip() or not self._settings.CLOUDFLARE_API_TOKEN.strip():
            raise SessionStartError("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required")
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=60.0)
        self.closed = False
        self._connected = True
        self._worker_task = asyncio.create_task(self._transcribe_worker())
        logger.info("Cloudflare session connected (%s, profile=%s)", self.role.value, self.config.profile)

    async def send(self, payload: Payload) -> None:
        if self.closed or not self._connected:
            raise SessionClosedError(f"{self.role.value} session is not connected")
        if isinstance(payload, AudioPayload):
            self._push_audio(payload.pcm)
        elif isinstance(payload, TextPayload):
            await self._send_text(payload.text)
        else:
            raise SessionSendError(f"unsupported payload {type(payload).__name__}")

    def _push_audio(self, pcm: bytes) -> None:
        if not pcm:
            return
        self._window.extend(pcm)
        while len(self._window) >= self._window_bytes:
            chunk = bytes(self._window[: self._window_bytes])
            del self._window[: self._window_bytes]
            self._audio_queue.put_nowait(chunk)

    async def _transcribe_worker(self) -> None:
        """Transcribe windows in submission order. None = stop."""
        while True:
            chunk = await self._audio_queue.get()
            if chunk is None:
                break
            try:
                text = await self._transcribe(chunk)
            except httpx.HTTPStatusError as e:
                if e.response.status_code in (401, 403):
                    await self._server_close("authentication failed: unauthorized")
                    break
                logger.warning("Whisper request failed (%s): %s", self.role.value, e)
                self._emit(SessionEventKind.ERROR, reason=str(e), error=e)
                continue
            except httpx.HTTPError as e:
                logger.warning("Whisper request failed (%s): %s", self.role.value, e)
                self._emit(SessionEventKind.ERROR, reason=str(e), error=e)
                continue
            if text and not self.closed:
                self._emit(SessionEventKind.TRANSCRIPT, text=text)

    async def _transcribe(self, pcm: bytes) -> str:
        assert self._client is not None
        resp = await self._client.post(
            self._url(_WHISPER_MODEL),
            headers=self._headers(),
            json={"audio": list(pcm)},
        )
        resp.raise_for_status()
        return _extract_text(resp.json(), "text")

    async def _send_text(self, text: str) -> None:
        text = (text or "").strip()
        if not text:
            return
        if not self.config.generate:
            logger.debug("Transcription-only session ignored %d chars of text", len(text))
            return
        max_messages = self._settings.COACH_HISTORY_MAX_MESSAGES
        self._messages.append({"role": "user", "content": text})
        self._messages = self._messages[-max_messages:]
        if self._generating:
            self._emit(SessionEventKind.INTERRUPTED)
        self._generation += 1
        generation = self._generation
        self._generating = True
        try:
            reply = await self._chat([{"role": "system", "content": self.config.system_prompt}, *self._messages])
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                await self._server_close("authentication failed: unauthorized")
            raise SessionSendError(f"chat request failed: {e}") from e
        except httpx.HTTPError as e:
            raise SessionSendError(f"chat request failed: {e}") from e
        finally:
            if generation == self._generation:
                self._generating = False
        if generation != self._generation or self.closed:
            logger.debug("Dropped superseded reply (generation %d)", generation)
            return
        if reply:
            self._messages.append({"role": "assistant", "content": reply})
            self._messages = self._messages[-max_messages:]
            self._emit(SessionEventKind.GENERATION_CHUNK, text=reply)
        self._emit(SessionEventKind.GENERATION_COMPLETE)

    async def _chat(self, messages: list[dict[str, str]]) -> str:
        assert self._client is not None
        model = self._settings.COACH_CF_MODEL
        logger.info("Chat request to Cloudflare: model=%s, messages=%d", model, len(messages))
        resp = await self._client.post(
            self._url(model),
            headers=self._headers(),
            json={"messages": messages, "max_tokens": self._settings.COACH_MAX_TOKENS, "temperature": 0.4},
        )
        resp.raise_for_status()
        return _extract_text(resp.json(), "response")

    async def _server_close(self, reason: str) -> None:
        """Backend-initiated close: tear down, then report CLOSE."""
        if self.closed:
            return
        logger.warning("Cloudflare session closed by server (%s): %s", self.role.value, reason)
        await self._teardown(wait_worker=False)
        self._emit(SessionEventKind.CLOSE, reason=reason)

    async def close(self) -> None:
        if self.closed:
            return
        await self._teardown(wait_worker=True)
        logger.info("Cloudflare session closed (%s)", self.role.value)

    async def _teardown(self, wait_worker: bool) -> None:
        self.closed = True
        self._connected = False
        self._window.clear()
        task, self._worker_task = self._worker_task, None
        if task is not None and task is not asyncio.current_task():
            self._audio_queue.put_nowait(None)
            try:
                if wait_worker:
                    await asyncio.wait_for(task, timeout=10.0)
                else:
                    task.cancel()
            except asyncio.TimeoutError:
                task.cancel()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
