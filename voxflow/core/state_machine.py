from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping

from voxflow.core.error_taxonomy import ErrorCode, ErrorKind


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    ENRICHING = "enriching"
    COMPLETE = "complete"
    ERROR = "error"


_S = RecordingState

VALID_TRANSITIONS: Mapping[RecordingState, frozenset[RecordingState]] = {
    _S.IDLE: frozenset({_S.RECORDING, _S.ERROR}),
    _S.RECORDING: frozenset({_S.PROCESSING, _S.ERROR, _S.IDLE}),
    _S.PROCESSING: frozenset({_S.TRANSCRIBING, _S.ERROR, _S.IDLE}),
    _S.TRANSCRIBING: frozenset({_S.TRANSCRIBED, _S.ERROR, _S.IDLE}),
    _S.TRANSCRIBED: frozenset({_S.ENRICHING, _S.COMPLETE, _S.ERROR, _S.IDLE}),
    _S.ENRICHING: frozenset({_S.COMPLETE, _S.ERROR, _S.IDLE}),
    _S.COMPLETE: frozenset({_S.IDLE, _S.ERROR}),
    _S.ERROR: frozenset({_S.IDLE}),
}

STATE_DESCRIPTIONS: Mapping[RecordingState, str] = {
    _S.IDLE: "Ready to record",
    _S.RECORDING: "Recording audio",
    _S.PROCESSING: "Processing audio",
    _S.TRANSCRIBING: "Transcribing audio to text",
    _S.TRANSCRIBED: "Transcription complete",
    _S.ENRICHING: "Enriching text with AI",
    _S.COMPLETE: "Recording complete",
    _S.ERROR: "An error occurred",
}

IN_PROGRESS_STATES = frozenset({_S.RECORDING, _S.PROCESSING, _S.TRANSCRIBING, _S.ENRICHING})
TERMINAL_STATES = frozenset({_S.IDLE, _S.COMPLETE, _S.ERROR})
INTERACTIVE_STATES = frozenset({_S.IDLE, _S.RECORDING, _S.TRANSCRIBED, _S.COMPLETE, _S.ERROR})

# Ordering used when listing states in messages.
STATE_ORDER: tuple[RecordingState, ...] = tuple(RecordingState)
_STATE_VALUES = frozenset(state.value for state in RecordingState)


def _check_table_coverage() -> None:
    for name, table in (("VALID_TRANSITIONS", VALID_TRANSITIONS), ("STATE_DESCRIPTIONS", STATE_DESCRIPTIONS)):
        missing = [state.value for state in RecordingState if state not in table]
        if missing:
            raise RuntimeError(f"{name} is missing entries for: {', '.join(missing)}")


_check_table_coverage()


@dataclass(frozen=True)
class TransitionEdge:
    source: RecordingState
    target: RecordingState


@dataclass(frozen=True)
class TransitionError:
    """The requested edge is absent from the transition table."""

    source: RecordingState
    target: RecordingState
    allowed: frozenset[RecordingState]

    kind: ErrorKind = field(default=ErrorKind.TRANSITION, init=False)
    code: ErrorCode = field(default=ErrorCode.STATE_TRANSITION_ERROR, init=False)

    @property
    def allowed_names(self) -> list[str]:
        return [state.value for state in STATE_ORDER if state in self.allowed]

    @property
    def message(self) -> str:
        return (
            f'Invalid state transition from "{self.source.value}" to "{self.target.value}". '
            f'Valid transitions from "{self.source.value}": {", ".join(self.allowed_names)}'
        )

    def __str__(self) -> str:
        return self.message


def is_valid_state(value: object) -> bool:
    if isinstance(value, RecordingState):
        return True
    if not isinstance(value, str):
        return False
    return value in _STATE_VALUES


def parse_state(value: str | RecordingState) -> RecordingState:
    if not is_valid_state(value):
        raise ValueError(f"Unknown recording state: {value!r}")
    return RecordingState(value)


def next_states(source: RecordingState) -> frozenset[RecordingState]:
    return VALID_TRANSITIONS[source]


def is_valid_transition(source: RecordingState, target: RecordingState) -> bool:
    return target in VALID_TRANSITIONS[source]


def validate_transition(source: RecordingState, target: RecordingState) -> TransitionError | None:
    if is_valid_transition(source, target):
        return None
    return TransitionError(source=source, target=target, allowed=next_states(source))


def edges() -> tuple[TransitionEdge, ...]:
    return tuple(
        TransitionEdge(source=source, target=target)
        for source in STATE_ORDER
        for target in STATE_ORDER
        if target in VALID_TRANSITIONS[source]
    )


def is_in_progress(state: RecordingState) -> bool:
    return state in IN_PROGRESS_STATES


def is_terminal(state: RecordingState) -> bool:
    return state in TERMINAL_STATES


def is_interactive(state: RecordingState) -> bool:
    return state in INTERACTIVE_STATES


def describe(state: RecordingState) -> str:
    return STATE_DESCRIPTIONS[state]

