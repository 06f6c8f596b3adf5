from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from voxflow.config import Config
from voxflow.core.error_taxonomy import classify_exception, is_retryable
from voxflow.runtime.providers import ProviderError

T = TypeVar("T")

_log = logger.bind(component="retry")


class RetryExhaustedError(ProviderError):
    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(
            f"Failed after {attempts} attempts. Last error: {last_error}",
            code=classify_exception(last_error),
            provider=getattr(last_error, "provider", None),
        )
        self.attempts = attempts
        self.last_error = last_error


def backoff_delay_ms(attempt: int, base_delay_ms: int, max_delay_ms: int) -> int:
    """Exponential backoff: ``base * 2**attempt`` capped at ``max_delay_ms`` (attempt is 0-indexed)."""
    return min(int(base_delay_ms * (2 ** max(0, attempt))), int(max_delay_ms))


def default_should_retry(exc: BaseException) -> bool:
    retryable = getattr(exc, "retryable", None)
    if isinstance(retryable, bool):
        return retryable
    return is_retryable(classify_exception(exc))


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int | None = None,
    base_delay_ms: int | None = None,
    max_delay_ms: int | None = None,
    should_retry: Callable[[BaseException], bool] = default_should_retry,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    attempts = max(1, Config.RETRY_MAX_ATTEMPTS if max_attempts is None else int(max_attempts))
    base = max(0, Config.RETRY_BASE_DELAY_MS if base_delay_ms is None else int(base_delay_ms))
    cap = max(0, Config.RETRY_MAX_DELAY_MS if max_delay_ms is None else int(max_delay_ms))
    last_error: Exception | None = None

    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as exc:
            last_error = exc
            if not should_retry(exc):
                raise
            if attempt == attempts - 1:
                break
            delay_ms = backoff_delay_ms(attempt, base, cap)
            _log.warning(f"Attempt {attempt + 1}/{attempts} failed ({exc}); retrying in {delay_ms}ms")
            await sleep(delay_ms / 1000.0)

    assert last_error is not None
    raise RetryExhaustedError(attempts, last_error) from last_error
