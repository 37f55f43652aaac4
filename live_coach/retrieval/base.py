"""
Retriever: looks up earlier conversation material relevant to a remote question.

The retrieval backend is optional. Every failure is absorbed as "no context";
the coaching flow never waits on or breaks because of retrieval.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from live_coach.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class RetrievalOptions:
    top_k: int = 3
    min_score: float = 0.6
    max_tokens: int = 400
    include_metadata: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetrievalOptions":
        return cls(
            top_k=settings.RAG_TOP_K,
            min_score=settings.RAG_MIN_SCORE,
            max_tokens=settings.RAG_MAX_TOKENS,
        )


@dataclass
class RetrievalResult:
    used_rag: bool
    context: str = ""
    score: float = 0.0
    chunks: list[dict[str, Any]] = field(default_factory=list)
    reason: Optional[str] = None  # set when falling back

    @classmethod
    def fallback(cls, reason: str) -> "RetrievalResult":
        return cls(used_rag=False, reason=reason)


class Retriever(ABC):
    @abstractmethod
    async def retrieve(
        self,
        query: str,
        session_id: str,
        options: RetrievalOptions | None = None,
    ) -> RetrievalResult:
        """Return relevant context for query. May raise RetrievalError."""
        ...

    async def aclose(self) -> None:
        pass


class NoOpRetriever(Retriever):
    """Retrieval disabled: never any context."""

    async def retrieve(
        self,
        query: str,
        session_id: str,
        options: RetrievalOptions | None = None,
    ) -> RetrievalResult:
        return RetrievalResult.fallback("retrieval disabled")


async def query_rag_if_needed(
    retriever: Retriever,
    text: str,
    session_id: str,
    settings: Settings | None = None,
) -> Optional[str]:
    """
    Context for a remote question, or None.
    Only questions longer than RAG_MIN_CHARS characters (trimmed) are looked up.
    """
    s = settings or get_settings()
    if len((text or "").strip()) <= s.RAG_MIN_CHARS:
        return None
    try:
        result = await retriever.retrieve(text, session_id, RetrievalOptions.from_settings(s))
    except Exception as e:
        logger.warning("Retrieval failed, continuing without context: %s", e)
        return None
    if not result.used_rag or not result.context.strip():
        if result.reason:
            logger.debug("Retrieval fallback: %s", result.reason)
        return None
    logger.info("Retrieved %d relevant chunks (score %.2f)", len(result.chunks), result.score)
    return result.context
