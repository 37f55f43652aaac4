"""
WebSocketManager: one WebSocket = one coaching session.

Client -> server:
- text {"type": "start", "profile": ..., "language": ..., "custom_prompt": ...}
- binary frames: 1 source byte (0 = LOCAL microphone, 1 = REMOTE system audio)
  followed by PCM 16-bit mono 16kHz
- text {"type": "stop"}

Server -> client: JSON "session", "transcript", "latency", "response", "status",
"error" messages. Display messages go through the sink's queue; control replies
are sent directly.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import WebSocket
from pydantic import ValidationError

from live_coach.correlation.models import AudioSource
from live_coach.display import WebSocketDisplaySink
from live_coach.errors import SessionStartError
from live_coach.retrieval.base import Retriever
from live_coach.schemas.session import StartMessage, StopMessage
from live_coach.session_store import ensure_session, generate_session_id
from live_coach.sessions.coordinator import DualSessionCoordinator, SessionFactory

logger = logging.getLogger(__name__)

SOURCE_BYTES = {0: AudioSource.LOCAL, 1: AudioSource.REMOTE}


def parse_audio_frame(data: bytes) -> Optional[tuple[AudioSource, bytes]]:
    """Split one binary frame into (source, pcm). None for malformed frames."""
    if len(data) < 2:
        return None
    source = SOURCE_BYTES.get(data[0])
    if source is None:
        return None
    return source, data[1:]


class WebSocketManager:
    def __init__(
        self,
        websocket: WebSocket,
        retriever: Retriever | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self._ws = websocket
        self._closed = False
        # One session ID per WebSocket; used for the session store and logs
        self.session_id = generate_session_id()
        self._sink = WebSocketDisplaySink(websocket)
        self.coordinator = DualSessionCoordinator(
            self.session_id,
            sink=self._sink,
            retriever=retriever,
            session_factory=session_factory,
        )

    async def _send_json(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(json.dumps(payload))
        except Exception:
            self._closed = True

    async def _send_error(self, message: str) -> None:
        await self._send_json({"type": "error", "message": message})

    async def _handle_text(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            await self._send_error("invalid JSON")
            return
        kind = data.get("type") if isinstance(data, dict) else None
        if kind == "start":
            try:
                start = StartMessage.model_validate(data)
            except ValidationError as e:
                await self._send_error(f"invalid start message: {e.errors()[0].get('msg', 'invalid')}")
                return
            try:
                await self.coordinator.start(start.profile, start.language, start.custom_prompt)
            except SessionStartError as e:
                logger.warning("Session %s failed to start: %s", self.session_id, e)
                await self._send_error(f"session start failed: {e}")
                return
            ensure_session(self.session_id, self.coordinator.profile, self.coordinator.language)
            await self._send_json({"type": "status", "text": "started", "session_id": self.session_id})
        elif kind == "stop":
            StopMessage.model_validate(data)
            # Metrics are reset by stop(), so take them first
            stats = self.coordinator.stats()
            await self.coordinator.stop()
            await self._send_json({"type": "status", "text": "stopped", "session_id": self.session_id, "stats": stats})
        else:
            await self._send_error(f"unknown message type {kind!r}")

    def _handle_audio(self, data: bytes) -> None:
        frame = parse_audio_frame(data)
        if frame is None:
            logger.debug("Dropped malformed audio frame (%d bytes)", len(data))
            return
        source, pcm = frame
        self.coordinator.submit_audio(source, pcm)

    async def run(self) -> None:
        """Main loop: control messages and audio frames until disconnect."""
        await self._sink.start()
        await self._send_json({"type": "session", "session_id": self.session_id})
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except Exception:
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                if msg.get("bytes") is not None:
                    self._handle_audio(msg["bytes"])
                elif msg.get("text") is not None:
                    await self._handle_text(msg["text"])
        finally:
            self._closed = True
            await self.coordinator.stop()
            await self._sink.close()
