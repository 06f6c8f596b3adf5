from __future__ import annotations

from typing import Awaitable, Callable, Generic, Mapping, TypeVar

from loguru import logger

from voxflow.config import Config
from voxflow.core.error_taxonomy import ErrorCode, classify_exception, is_retryable
from voxflow.core.provider_circuit_breaker import ProviderCircuitBreaker
from voxflow.runtime.providers import ProviderError

P = TypeVar("P")
T = TypeVar("T")


class ProviderRouter(Generic[P]):
    """Orders providers (preferred first, then fallbacks) and tracks circuit-breaker health."""

    def __init__(
        self,
        *,
        providers: Mapping[str, P],
        preferred_getter: Callable[[], str],
        fallbacks: list[str] | None = None,
        fallback_enabled: Callable[[], bool] | None = None,
        breaker: ProviderCircuitBreaker | None = None,
        kind: str = "provider",
    ):
        self._providers = {name.strip(): provider for name, provider in providers.items() if name and name.strip()}
        self._preferred_getter = preferred_getter
        self._fallbacks = [p.strip() for p in (fallbacks or []) if p and p.strip()]
        self._fallback_enabled = fallback_enabled or (lambda: True)
        self._breaker = breaker or ProviderCircuitBreaker()
        self._kind = kind
        self._log = logger.bind(component=f"{kind}_router")

    @property
    def breaker(self) -> ProviderCircuitBreaker:
        return self._breaker

    def candidates(self) -> list[str]:
        primary = (self._preferred_getter() or "").strip()
        ordered = [primary]
        if self._fallback_enabled():
            ordered.extend(self._fallbacks)
        out: list[str] = []
        seen: set[str] = set()
        for entry in ordered:
            key = (entry or "").strip()
            if not key or key in seen or key not in self._providers:
                continue
            seen.add(key)
            out.append(key)
        return out

    def select(self) -> str:
        for name in self.candidates():
            if self._breaker.can_execute(name):
                return name
        raise ProviderError(
            f"No {self._kind} provider is currently available (all circuits are open)",
            code=ErrorCode.PROVIDER_UNAVAILABLE,
        )

    def record_success(self, name: str) -> None:
        if name:
            self._breaker.on_success(name)

    def record_failure(self, name: str, error: BaseException | str) -> None:
        if not name:
            return
        code = classify_exception(error) if isinstance(error, BaseException) else ProviderError(str(error)).code
        if is_retryable(code):
            self._breaker.on_failure(name)

    async def run(self, call: Callable[[P], Awaitable[T]]) -> tuple[str, T]:
        """Call providers in candidate order until one succeeds.

        Returns ``(provider_name, result)``. When every attempted provider
        fails the errors are combined into a single ``ProviderError``.
        """
        failures: list[tuple[str, Exception]] = []
        for name in self.candidates():
            if not self._breaker.can_execute(name):
                self._log.info(f"Skipping {name}: circuit open")
                continue
            if failures:
                prev_name, prev_error = failures[-1]
                self._log.warning(f"{prev_name} {self._kind} failed ({prev_error}); falling back to {name}")
            try:
                result = await call(self._providers[name])
            except Exception as exc:
                self.record_failure(name, exc)
                failures.append((name, exc))
                continue
            self.record_success(name)
            return name, result

        if not failures:
            raise ProviderError(
                f"No {self._kind} provider is currently available (all circuits are open)",
                code=ErrorCode.PROVIDER_UNAVAILABLE,
            )
        if len(failures) == 1:
            raise failures[0][1]

        (first_name, first_error), rest = failures[0], failures[1:]
        parts = [f"{first_name} {self._kind} failed: {first_error}"]
        parts += [f"{name} fallback also failed: {error}" for name, error in rest]
        last_error = rest[-1][1]
        raise ProviderError(
            ". ".join(parts),
            code=classify_exception(last_error),
            provider=rest[-1][0],
        ) from last_error


def build_transcription_router(providers: Mapping[str, P]) -> ProviderRouter[P]:
    """Router wired to ``Config``: preferred method first, API as the fallback."""
    return ProviderRouter(
        providers=providers,
        preferred_getter=lambda: Config.TRANSCRIPTION_METHOD,
        fallbacks=["api"],
        fallback_enabled=lambda: Config.ENABLE_FALLBACK,
        breaker=ProviderCircuitBreaker(
            failure_threshold=Config.BREAKER_FAILURE_THRESHOLD,
            cooldown_seconds=Config.BREAKER_COOLDOWN_SECONDS,
        ),
        kind="transcription",
    )
