import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default) in ("1", "true", "True")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


class Config:
    # Logging
    LOG_LEVEL = os.getenv("VOXFLOW_LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("VOXFLOW_LOG_DIR", "")

    # State debugger (transition history + action log)
    DEBUG = _env_flag("VOXFLOW_DEBUG", "0")
    DEBUG_HISTORY_SIZE = _env_int("VOXFLOW_DEBUG_HISTORY_SIZE", 100)
    DEBUG_ACTION_LOG_SIZE = _env_int("VOXFLOW_DEBUG_ACTION_LOG_SIZE", 200)

    # Providers: "api" or "local"; with fallback on, a failing local model falls back to the API.
    TRANSCRIPTION_METHOD = os.getenv("VOXFLOW_TRANSCRIPTION_METHOD", "api").lower()
    ENABLE_FALLBACK = _env_flag("VOXFLOW_ENABLE_FALLBACK", "1")
    DEFAULT_ENRICHMENT_TYPE = os.getenv("VOXFLOW_DEFAULT_ENRICHMENT", "format")

    # Retry/backoff for provider calls
    RETRY_MAX_ATTEMPTS = _env_int("VOXFLOW_RETRY_MAX_ATTEMPTS", 3)
    RETRY_BASE_DELAY_MS = _env_int("VOXFLOW_RETRY_BASE_DELAY_MS", 1000)
    RETRY_MAX_DELAY_MS = _env_int("VOXFLOW_RETRY_MAX_DELAY_MS", 10000)

    # Per-provider circuit breaker
    BREAKER_FAILURE_THRESHOLD = _env_int("VOXFLOW_BREAKER_FAILURES", 3)
    BREAKER_COOLDOWN_SECONDS = _env_float("VOXFLOW_BREAKER_COOLDOWN_S", 30.0)

    TRANSCRIPTION_METHODS = ("api", "local")

    @classmethod
    def set_debug(cls, enabled: bool) -> None:
        cls.DEBUG = bool(enabled)
        os.environ["VOXFLOW_DEBUG"] = "1" if enabled else "0"

    @classmethod
    def set_transcription_method(cls, method: str) -> None:
        value = (method or "").lower().strip()
        if value not in cls.TRANSCRIPTION_METHODS:
            raise ValueError(f"Unknown transcription method: {method!r}")
        cls.TRANSCRIPTION_METHOD = value
        os.environ["VOXFLOW_TRANSCRIPTION_METHOD"] = value

    @classmethod
    def set_enable_fallback(cls, enabled: bool) -> None:
        cls.ENABLE_FALLBACK = bool(enabled)
        os.environ["VOXFLOW_ENABLE_FALLBACK"] = "1" if enabled else "0"

    @classmethod
    def set_log_level(cls, level: str) -> None:
        cls.LOG_LEVEL = level.strip().upper()
        os.environ["VOXFLOW_LOG_LEVEL"] = cls.LOG_LEVEL
