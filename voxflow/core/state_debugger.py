from __future__ import annotations

import json
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from loguru import logger

from voxflow.core.actions import Action
from voxflow.core.session import SESSION_FIELDS, SessionSnapshot
from voxflow.core.state_machine import RecordingState, describe, next_states, STATE_ORDER

_log = logger.bind(component="debugger")


def _now_ms() -> float:
    return time.time() * 1000.0


@dataclass(frozen=True)
class StateTransition:
    timestamp_ms: float
    source: RecordingState
    target: RecordingState
    action_type: str
    duration_ms: float


@dataclass(frozen=True)
class ActionLogEntry:
    timestamp_ms: float
    action_type: str
    payload_keys: tuple[str, ...]
    state: RecordingState


class StateHistoryTracker:
    def __init__(self, max_size: int = 100, *, clock: Callable[[], float] | None = None):
        self._clock = clock or _now_ms
        self._history: deque[StateTransition] = deque(maxlen=max(1, int(max_size)))
        self._state_started_ms = self._clock()

    def record_transition(self, source: RecordingState, target: RecordingState, action: Action) -> StateTransition:
        now = self._clock()
        entry = StateTransition(
            timestamp_ms=now,
            source=source,
            target=target,
            action_type=action.type.value,
            duration_ms=now - self._state_started_ms,
        )
        self._history.append(entry)
        self._state_started_ms = now
        return entry

    def history(self) -> list[StateTransition]:
        return list(self._history)

    def recent(self, count: int = 10) -> list[StateTransition]:
        if count <= 0:
            return []
        return list(self._history)[-count:]

    def transitions_for(self, state: RecordingState) -> list[StateTransition]:
        return [t for t in self._history if t.source is state or t.target is state]

    def average_duration_ms(self, state: RecordingState) -> float:
        durations = [t.duration_ms for t in self._history if t.source is state and t.duration_ms]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    def restart_clock(self) -> None:
        self._state_started_ms = self._clock()

    def clear(self) -> None:
        self._history.clear()
        self._state_started_ms = self._clock()

    def export_json(self) -> str:
        return json.dumps([asdict(t) for t in self._history], indent=2)


class ActionLogger:
    def __init__(self, max_size: int = 200, *, clock: Callable[[], float] | None = None):
        self._clock = clock or _now_ms
        self._logs: deque[ActionLogEntry] = deque(maxlen=max(1, int(max_size)))

    def log(self, action: Action, state: RecordingState) -> ActionLogEntry:
        entry = ActionLogEntry(
            timestamp_ms=self._clock(),
            action_type=action.type.value,
            payload_keys=tuple(sorted(action.payload)),
            state=state,
        )
        self._logs.append(entry)
        return entry

    def logs(self) -> list[ActionLogEntry]:
        return list(self._logs)

    def logs_by_type(self, action_type: str) -> list[ActionLogEntry]:
        key = getattr(action_type, "value", action_type)
        return [entry for entry in self._logs if entry.action_type == key]

    def clear(self) -> None:
        self._logs.clear()

    def export_json(self) -> str:
        return json.dumps([asdict(entry) for entry in self._logs], indent=2)


@dataclass(frozen=True)
class StateDiff:
    changed: tuple[str, ...] = ()
    details: dict[str, tuple[Any, Any]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.changed


def calculate_state_diff(old: SessionSnapshot, new: SessionSnapshot) -> StateDiff:
    changed: list[str] = []
    details: dict[str, tuple[Any, Any]] = {}

    if old.state is not new.state:
        changed.append("state")
        details["state"] = (old.state.value, new.state.value)
    for name in SESSION_FIELDS:
        before = getattr(old.data, name)
        after = getattr(new.data, name)
        if before != after:
            key = f"data.{name}"
            changed.append(key)
            details[key] = (before, after)
    if old.error != new.error:
        changed.append("error")
        details["error"] = (
            old.error.to_dict() if old.error else None,
            new.error.to_dict() if new.error else None,
        )
    return StateDiff(changed=tuple(changed), details=details)


def visualize_state(snapshot: SessionSnapshot) -> str:
    data = snapshot.data
    allowed = [s.value for s in STATE_ORDER if s in next_states(snapshot.state)]
    duration = "N/A" if data.audio_duration_ms is None else f"{data.audio_duration_ms}ms"
    lines = [
        "=== Recording Session ===",
        "",
        f"Recording State: {snapshot.state.value}",
        f"Description: {describe(snapshot.state)}",
        f"Valid Next States: {', '.join(allowed)}",
        "",
        "Current Recording:",
        f"  Audio: {'Present' if data.audio is not None else 'None'}",
        f"  Duration: {duration}",
        f"  Transcription: {'Present' if data.transcription is not None else 'None'}",
        f"  Enrichment: {'Present' if data.enrichment is not None else 'None'}",
    ]
    if snapshot.error is not None:
        lines += [
            "",
            "Error:",
            f"  Message: {snapshot.error.message}",
            f"  Code: {snapshot.error.code or 'N/A'}",
        ]
        if snapshot.error.missing_fields:
            lines.append(f"  Missing: {', '.join(snapshot.error.missing_fields)}")
    return "\n".join(lines)


class StateDebugger:
    def __init__(
        self,
        *,
        enabled: bool = False,
        history_size: int = 100,
        action_log_size: int = 200,
        clock: Callable[[], float] | None = None,
    ):
        self._enabled = bool(enabled)
        self._clock = clock or _now_ms
        self.history = StateHistoryTracker(history_size, clock=self._clock)
        self.actions = ActionLogger(action_log_size, clock=self._clock)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        if enabled and not self._enabled:
            self.history.restart_clock()
        self._enabled = bool(enabled)

    def record_transition(self, source: RecordingState, target: RecordingState, action: Action) -> None:
        if not self._enabled:
            return
        self.history.record_transition(source, target, action)

    def log_action(self, action: Action, state: RecordingState) -> None:
        if not self._enabled:
            return
        self.actions.log(action, state)

    def clear_all(self) -> None:
        self.history.clear()
        self.actions.clear()

    def export_all(self) -> str:
        return json.dumps(
            {
                "history": [asdict(t) for t in self.history.history()],
                "logs": [asdict(entry) for entry in self.actions.logs()],
                "timestamp_ms": self._clock(),
            },
            indent=2,
        )

    def print_state(self, snapshot: SessionSnapshot) -> None:
        if not self._enabled:
            return
        _log.debug("\n" + visualize_state(snapshot))

    def print_diff(self, old: SessionSnapshot, new: SessionSnapshot) -> None:
        if not self._enabled:
            return
        diff = calculate_state_diff(old, new)
        if diff.is_empty:
            return
        # Field names only; payload values can hold transcript text.
        _log.debug(f"State diff: {old.state.value} -> {new.state.value}, changed={list(diff.changed)}")
