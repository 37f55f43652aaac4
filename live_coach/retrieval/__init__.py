"""Retrieval-augmented context for remote questions."""
from live_coach.config import Settings, get_settings

from .base import NoOpRetriever, RetrievalOptions, RetrievalResult, Retriever, query_rag_if_needed
from .http import HttpRetriever


def create_retriever(settings: Settings | None = None) -> Retriever:
    """HttpRetriever when RAG_ENABLED and RAG_URL is set; else no-op."""
    s = settings or get_settings()
    if not s.RAG_ENABLED or not s.RAG_URL.strip():
        return NoOpRetriever()
    return HttpRetriever(s.RAG_URL.strip(), timeout=s.RAG_TIMEOUT_SECONDS)


__all__ = [
    "HttpRetriever",
    "NoOpRetriever",
    "RetrievalOptions",
    "RetrievalResult",
    "Retriever",
    "create_retriever",
    "query_rag_if_needed",
]
