from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Union

from voxflow.core.error_taxonomy import ErrorCode, ErrorKind
from voxflow.core.session import SESSION_FIELDS, SessionData
from voxflow.core.state_machine import RecordingState, TransitionError, validate_transition

_S = RecordingState
_NONE: frozenset[str] = frozenset()

REQUIRED_FIELDS: Mapping[RecordingState, frozenset[str]] = {
    _S.IDLE: _NONE,
    _S.RECORDING: _NONE,
    _S.PROCESSING: frozenset({"audio", "audio_duration_ms"}),
    _S.TRANSCRIBING: frozenset({"audio", "audio_duration_ms"}),
    _S.TRANSCRIBED: frozenset({"audio", "transcription"}),
    _S.ENRICHING: frozenset({"transcription"}),
    _S.COMPLETE: frozenset({"audio", "transcription"}),
    _S.ERROR: _NONE,
}

if set(REQUIRED_FIELDS) != set(RecordingState):
    raise RuntimeError("REQUIRED_FIELDS must cover every RecordingState")


@dataclass(frozen=True)
class DataValidationError:
    """The edge is legal but the candidate payload lacks fields the target requires."""

    state: RecordingState
    missing_fields: tuple[str, ...]

    kind: ErrorKind = field(default=ErrorKind.DATA_VALIDATION, init=False)
    code: ErrorCode = field(default=ErrorCode.STATE_DATA_VALIDATION_ERROR, init=False)

    @property
    def message(self) -> str:
        return f'State "{self.state.value}" requires data that is missing: {", ".join(self.missing_fields)}'

    def __str__(self) -> str:
        return self.message


ValidationFailure = Union[TransitionError, DataValidationError]


@dataclass(frozen=True)
class ConsistencyReport:
    warnings: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.warnings


def required_fields(state: RecordingState) -> frozenset[str]:
    return REQUIRED_FIELDS[state]


def validate_state_data(
    state: RecordingState,
    data: SessionData,
    *,
    extra_required: Iterable[str] = (),
) -> DataValidationError | None:
    wanted = required_fields(state) | frozenset(extra_required)
    unknown = wanted.difference(SESSION_FIELDS)
    if unknown:
        raise ValueError(f"Unknown session fields: {', '.join(sorted(unknown))}")
    missing = tuple(name for name in SESSION_FIELDS if name in wanted and not data.has(name))
    if missing:
        return DataValidationError(state=state, missing_fields=missing)
    return None


def validate_consistency(state: RecordingState, data: SessionData) -> ConsistencyReport:
    warnings: list[str] = []

    if state is RecordingState.IDLE:
        if data.audio is not None:
            warnings.append("audio exists in idle state")
        if data.transcription is not None:
            warnings.append("transcription exists in idle state")
        if data.enrichment is not None:
            warnings.append("enrichment exists in idle state")

    if state is RecordingState.RECORDING and data.audio is not None:
        warnings.append("audio exists while still recording")

    if data.enrichment is not None and data.transcription is None:
        warnings.append("enrichment exists without transcription")

    if data.transcription is not None and data.audio is None:
        warnings.append("transcription exists without audio")

    if data.enrichment is not None and not data.enrichment.enriched_text:
        warnings.append("enrichment exists but enriched_text is empty")

    if data.transcription is not None and not data.transcription.text:
        warnings.append("transcription exists but text is empty")

    return ConsistencyReport(warnings=tuple(warnings))


def validate_transition_with_data(
    source: RecordingState,
    target: RecordingState,
    data: SessionData,
    *,
    extra_required: Iterable[str] = (),
) -> ValidationFailure | None:
    transition_error = validate_transition(source, target)
    if transition_error is not None:
        return transition_error
    return validate_state_data(target, data, extra_required=extra_required)
