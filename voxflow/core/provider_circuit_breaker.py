from __future__ import annotations

import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from loguru import logger


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitSnapshot:
    provider: str
    state: CircuitState
    consecutive_failures: int
    opened_until_monotonic: float


class ProviderCircuitBreaker:
    """Per-provider breaker that stops routing to a backend after repeated transient failures."""

    def __init__(
        self,
        *,
        failure_threshold: int = 3,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] | None = None,
    ):
        self._failure_threshold = max(1, int(failure_threshold))
        self._cooldown_seconds = max(0.1, float(cooldown_seconds))
        self._clock = clock or time.monotonic
        self._states: dict[str, CircuitSnapshot] = {}
        self._log = logger.bind(component="breaker")

    @staticmethod
    def _key(provider: str) -> str:
        return (provider or "").strip().lower()

    def _get(self, provider: str) -> CircuitSnapshot:
        key = self._key(provider)
        snap = self._states.get(key)
        if snap is None:
            snap = CircuitSnapshot(
                provider=key,
                state=CircuitState.CLOSED,
                consecutive_failures=0,
                opened_until_monotonic=0.0,
            )
            self._states[key] = snap
        return snap

    def snapshot(self, provider: str) -> CircuitSnapshot:
        return self._get(provider)

    def can_execute(self, provider: str) -> bool:
        snap = self._get(provider)
        if snap.state is not CircuitState.OPEN:
            return True
        if self._clock() < snap.opened_until_monotonic:
            return False
        self._states[snap.provider] = replace(snap, state=CircuitState.HALF_OPEN)
        self._log.info(f"Circuit half-open for {snap.provider}; allowing a trial call")
        return True

    def on_success(self, provider: str) -> None:
        snap = self._get(provider)
        if snap.state is not CircuitState.CLOSED:
            self._log.info(f"Circuit closed for {snap.provider}")
        self._states[snap.provider] = replace(
            snap,
            state=CircuitState.CLOSED,
            consecutive_failures=0,
            opened_until_monotonic=0.0,
        )

    def on_failure(self, provider: str) -> None:
        snap = self._get(provider)
        failures = snap.consecutive_failures + 1
        # A failed half-open trial re-opens immediately.
        should_open = failures >= self._failure_threshold or snap.state is CircuitState.HALF_OPEN
        if should_open:
            until = self._clock() + self._cooldown_seconds
            self._log.warning(
                f"Circuit opened for {snap.provider} after {failures} failure(s); "
                f"cooldown {self._cooldown_seconds:.1f}s"
            )
            self._states[snap.provider] = replace(
                snap,
                state=CircuitState.OPEN,
                consecutive_failures=failures,
                opened_until_monotonic=until,
            )
        else:
            self._states[snap.provider] = replace(snap, consecutive_failures=failures)

    def reset(self, provider: str | None = None) -> None:
        if provider is None:
            self._states.clear()
        else:
            self._states.pop(self._key(provider), None)
