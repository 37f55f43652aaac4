"""
DisplaySink: where flushed transcripts, latency, AI responses and status go.

Calls are fire-and-forget and never block the pipeline: WebSocketDisplaySink
only enqueues, and a worker task drains the queue to the client.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class DisplaySink(ABC):
    async def start(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    def transcript(self, speaker: str, text: str) -> None:
        ...

    @abstractmethod
    def latency(self, ms: float) -> None:
        ...

    @abstractmethod
    def response(self, text: str) -> None:
        ...

    @abstractmethod
    def status(self, text: str) -> None:
        ...


class NoOpDisplaySink(DisplaySink):
    def transcript(self, speaker: str, text: str) -> None:
        pass

    def latency(self, ms: float) -> None:
        pass

    def response(self, text: str) -> None:
        pass

    def status(self, text: str) -> None:
        pass


class WebSocketDisplaySink(DisplaySink):
    """
    JSON messages to one WebSocket client:
    {"type": "transcript"|"latency"|"response"|"status", ..., "timestamp": unix_ms}
    A failed send marks the sink closed; later messages are dropped.
    """

    def __init__(self, websocket: WebSocket, max_queue: int = 1000) -> None:
        self._ws = websocket
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue(maxsize=max_queue)
        self._worker_task: Optional[asyncio.Task] = None
        self._closed = False

    async def _worker(self) -> None:
        while True:
            message = await self._queue.get()
            if message is None:
                break
            if self._closed:
                continue
            try:
                await self._ws.send_text(message)
            except Exception as e:
                logger.info("Display client gone, dropping further messages: %s", e)
                self._closed = True

    async def start(self) -> None:
        if self._worker_task is None:
            self._worker_task = asyncio.create_task(self._worker())

    def _put(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        payload["timestamp"] = int(time.time() * 1000)
        try:
            self._queue.put_nowait(json.dumps(payload))
        except asyncio.QueueFull:
            logger.warning("Display queue full, dropping %s message", payload.get("type"))

    def transcript(self, speaker: str, text: str) -> None:
        self._put({"type": "transcript", "speaker": speaker, "text": text})

    def latency(self, ms: float) -> None:
        self._put({"type": "latency", "ms": round(ms, 1)})

    def response(self, text: str) -> None:
        self._put({"type": "response", "text": text})

    def status(self, text: str) -> None:
        self._put({"type": "status", "text": text})

    async def close(self) -> None:
        """Drain what is queued, then stop the worker."""
        task, self._worker_task = self._worker_task, None
        if task is None:
            return
        try:
            await asyncio.wait_for(self._queue.put(None), timeout=5.0)
            await asyncio.wait_for(task, timeout=5.0)
        except asyncio.TimeoutError:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._closed = True
