"""HttpRetriever: retrieval backend behind a JSON HTTP endpoint (RAG_URL)."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from live_coach.config import get_settings
from live_coach.errors import RetrievalError
from live_coach.retrieval.base import RetrievalOptions, RetrievalResult, Retriever

logger = logging.getLogger(__name__)


def _parse_result(data: Any) -> RetrievalResult:
    if not isinstance(data, dict):
        raise RetrievalError(f"unexpected retrieval response: {type(data).__name__}")
    used = bool(data.get("used_rag", data.get("usedRAG", False)))
    context = data.get("context") or ""
    score = data.get("score", data.get("avg_score", data.get("avgScore", 0.0))) or 0.0
    chunks = data.get("chunks") or []
    return RetrievalResult(
        used_rag=used and bool(context.strip()),
        context=context,
        score=float(score),
        chunks=chunks if isinstance(chunks, list) else [],
        reason=data.get("reason"),
    )


class HttpRetriever(Retriever):
    """
    POST {url} with {question, session_id, top_k, min_score, max_tokens}.
    Pass client to share a connection pool (or a mock transport in tests).
    """

    def __init__(self, url: str, client: httpx.AsyncClient | None = None, timeout: float | None = None) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else get_settings().RAG_TIMEOUT_SECONDS
        )

    async def retrieve(
        self,
        query: str,
        session_id: str,
        options: RetrievalOptions | None = None,
    ) -> RetrievalResult:
        opts = options or RetrievalOptions()
        payload = {
            "question": query,
            "session_id": session_id,
            "top_k": opts.top_k,
            "min_score": opts.min_score,
            "max_tokens": opts.max_tokens,
            "include_metadata": opts.include_metadata,
        }
        try:
            resp = await self._client.post(self._url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RetrievalError(str(e)) from e
        return _parse_result(data)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
