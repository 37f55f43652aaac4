"""
FastAPI app: WebSocket endpoint for live coaching sessions;
HTTP API: health, stored conversation turns and their deletion.

Client sends JSON control messages and binary audio frames (1 source byte + PCM
16-bit mono 16kHz). Server responds with JSON:
{ "type": "session" | "transcript" | "latency" | "response" | "status" | "error", ... }
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from live_coach.logging_config import setup_logging
from live_coach.retrieval import Retriever, create_retriever
from live_coach.schemas.session import SessionDataResponse
from live_coach.session_store import delete_session, get_session
from live_coach.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # One retriever (and its HTTP connection pool) shared by all sessions
    app.state.retriever = create_retriever()
    yield
    retriever: Retriever = app.state.retriever
    await retriever.aclose()
    app.state.retriever = None


app = FastAPI(
    title="Live Conversation Coach",
    description="Speaker-attributed transcript correlation and AI coaching over WebSocket",
    lifespan=lifespan,
)


@app.websocket("/ws/session")
async def websocket_session(websocket: WebSocket) -> None:
    """
    WebSocket: {"type": "start"} then binary audio frames, {"type": "stop"} to end.
    Server sends JSON display and status messages.
    """
    await websocket.accept()
    manager = WebSocketManager(
        websocket,
        retriever=getattr(websocket.app.state, "retriever", None),
        session_factory=getattr(websocket.app.state, "session_factory", None),
    )
    try:
        await manager.run()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Session %s failed", manager.session_id)
        try:
            await websocket.close()
        except Exception:
            pass


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/api/sessions/{session_id}", response_model=SessionDataResponse)
async def session_data(session_id: str) -> SessionDataResponse:
    """Conversation turns recorded for a session (404 if unknown)."""
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionDataResponse(
        session_id=session_id,
        profile=session["profile"],
        language=session["language"],
        created_at=session["created_at"],
        history=session["history"],
    )


@app.delete("/api/sessions/{session_id}")
async def session_delete(session_id: str) -> dict:
    """Forget a session's stored turns (404 if unknown)."""
    if not delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"session_id": session_id, "deleted": True}
