"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz (same contract for both sources)
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 1

    # Correlation queue: one record per audio chunk handed to a session
    CORRELATION_MAX_QUEUE_SIZE: int = 50  # hard cap; oldest dropped
    CORRELATION_STALE_MS: int = 2000  # transcripts arrive within ~1-2s of their audio
    CORRELATION_MAX_LIVE_SIZE: int = 10  # forced drain after eviction
    CORRELATION_SIZE_SAMPLES: int = 20  # queue-length samples kept for variance

    # Speaker attribution
    SPEAKER_HISTORY_SIZE: int = 5
    LOCAL_SPEAKER_LABEL: str = "You"
    REMOTE_SPEAKER_LABEL: str = "Interviewer"

    # Confidence scoring: weights are empirical, thresholds kept for compatibility
    CONFIDENCE_BASE: float = 0.5
    CONFIDENCE_FALLBACK_PENALTY: float = 0.3
    CONFIDENCE_DRIFT_PENALTY: float = 0.2
    CONFIDENCE_SMALL_QUEUE_BONUS: float = 0.2
    CONFIDENCE_RECENT_BONUS: float = 0.1
    CONFIDENCE_CONTINUITY_BONUS: float = 0.2
    CONFIDENCE_STABILITY_BONUS: float = 0.1
    CONFIDENCE_LARGE_QUEUE: int = 10  # queue length above this is penalised
    CONFIDENCE_SMALL_QUEUE: int = 3  # queue length below this is rewarded
    CONFIDENCE_OLD_CHUNK_MS: int = 3000
    CONFIDENCE_RECENT_CHUNK_MS: int = 500
    CONFIDENCE_STABLE_VARIANCE: float = 2.0
    CONFIDENCE_MIN_SAMPLES: int = 5
    CONFIDENCE_LOW_THRESHOLD: float = 0.3
    QUEUE_DRIFT_WARN_SIZE: int = 15
    RAPID_CHANGES_WARN_COUNT: int = 3

    # Transcript buffer: flush on punctuation, speaker change or adaptive timeout
    BUFFER_MIN_FLUSH_WORDS: int = 5
    BUFFER_SHORT_WORDS: int = 3
    BUFFER_TIMEOUT_MS: int = 2000
    BUFFER_LONG_TIMEOUT_MS: int = 3000  # short buffers and MONITORING state
    BUFFER_CHECK_INTERVAL_MS: int = 500  # periodic timeout check while idle
    TURN_HISTORY_SIZE: int = 3

    # Context injection to the coaching session
    CONTEXT_DEBOUNCE_MS: int = 500
    CONTEXT_IMMEDIATE_CHARS: int = 1000  # larger backlog skips the debounce
    CONTEXT_MAX_CHARS: int = 2000  # keep only the trailing chars beyond this
    CONTEXT_RETRY_DELAY_MS: int = 1000  # exactly one retry
    CONTEXT_FALLBACK_MS: int = 3000  # send during long monologues

    # Retrieval-augmented context (external service). Disabled when RAG_URL is empty.
    RAG_ENABLED: bool = True
    RAG_URL: str = ""
    RAG_MIN_CHARS: int = 10  # only remote questions longer than this (trimmed) are looked up
    RAG_TOP_K: int = 3
    RAG_MIN_SCORE: float = 0.6
    RAG_MAX_TOKENS: int = 400
    RAG_TIMEOUT_SECONDS: float = 5.0

    # AI session backend: "cloudflare" (Workers AI Whisper + chat model)
    AI_BACKEND: Literal["cloudflare"] = "cloudflare"
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    COACH_CF_MODEL: str = "@cf/meta/llama-3.1-8b-instruct"
    COACH_MAX_TOKENS: int = 512
    COACH_HISTORY_MAX_MESSAGES: int = 20  # recent context messages kept per session
    STT_WINDOW_SECONDS: float = 2.0  # audio accumulated before one transcription call

    # Sessions
    DUAL_SESSION_ENABLED: bool = True
    DEFAULT_PROFILE: str = "interview"
    DEFAULT_LANGUAGE: str = "en-US"
    GOOGLE_SEARCH_ENABLED: bool = True  # advertised as a tool to the coaching session
    CUSTOM_PROMPT_MAX_CHARS: int = 10000

    # Reconnection after a server-side close: exponential backoff
    RECONNECT_MAX_ATTEMPTS: int = 3
    RECONNECT_BASE_DELAY_MS: int = 2000
    RECONNECT_MAX_DELAY_MS: int = 10000

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path empty = console only.
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # e.g. "logs/live_coach.log"

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
