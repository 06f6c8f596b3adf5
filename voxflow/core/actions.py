from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from voxflow.core.error_taxonomy import ErrorCode
from voxflow.core.session import AudioHandle, EnrichmentResult, TranscriptionResult
from voxflow.core.state_machine import RecordingState


class ActionContractError(ValueError):
    pass


class ActionType(str, Enum):
    START_RECORDING = "START_RECORDING"
    STOP_RECORDING = "STOP_RECORDING"
    START_TRANSCRIPTION = "START_TRANSCRIPTION"
    TRANSCRIPTION_COMPLETE = "TRANSCRIPTION_COMPLETE"
    START_ENRICHMENT = "START_ENRICHMENT"
    ENRICHMENT_COMPLETE = "ENRICHMENT_COMPLETE"
    FINISH_WITHOUT_ENRICHMENT = "FINISH_WITHOUT_ENRICHMENT"
    RESET_RECORDING = "RESET_RECORDING"
    SET_ERROR = "SET_ERROR"
    CLEAR_ERROR = "CLEAR_ERROR"


_A = ActionType
_S = RecordingState

ACTION_TARGETS: Mapping[ActionType, RecordingState] = {
    _A.START_RECORDING: _S.RECORDING,
    _A.STOP_RECORDING: _S.PROCESSING,
    _A.START_TRANSCRIPTION: _S.TRANSCRIBING,
    _A.TRANSCRIPTION_COMPLETE: _S.TRANSCRIBED,
    _A.START_ENRICHMENT: _S.ENRICHING,
    _A.ENRICHMENT_COMPLETE: _S.COMPLETE,
    _A.FINISH_WITHOUT_ENRICHMENT: _S.COMPLETE,
    _A.RESET_RECORDING: _S.IDLE,
    _A.SET_ERROR: _S.ERROR,
    _A.CLEAR_ERROR: _S.IDLE,
}

# Session fields an action must bring in its own payload (not carried over).
ACTION_PAYLOAD_FIELDS: Mapping[ActionType, frozenset[str]] = {
    _A.START_RECORDING: frozenset(),
    _A.STOP_RECORDING: frozenset({"audio", "audio_duration_ms"}),
    _A.START_TRANSCRIPTION: frozenset(),
    _A.TRANSCRIPTION_COMPLETE: frozenset({"transcription"}),
    _A.START_ENRICHMENT: frozenset(),
    _A.ENRICHMENT_COMPLETE: frozenset({"enrichment"}),
    _A.FINISH_WITHOUT_ENRICHMENT: frozenset(),
    _A.RESET_RECORDING: frozenset(),
    _A.SET_ERROR: frozenset(),
    _A.CLEAR_ERROR: frozenset(),
}

RESET_ACTIONS = frozenset({_A.RESET_RECORDING, _A.CLEAR_ERROR})

if set(ACTION_TARGETS) != set(ActionType) or set(ACTION_PAYLOAD_FIELDS) != set(ActionType):
    raise RuntimeError("action tables must cover every ActionType")


@dataclass(frozen=True)
class Action:
    type: ActionType
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    @property
    def target(self) -> RecordingState:
        return ACTION_TARGETS[self.type]

    def summary(self) -> dict[str, Any]:
        """Loggable view: payload keys only, never transcript text or audio."""
        return {"type": self.type.value, "payload_keys": sorted(self.payload)}


def start_recording() -> Action:
    return Action(_A.START_RECORDING)


def stop_recording(audio: AudioHandle | None, duration_ms: int | None) -> Action:
    return Action(_A.STOP_RECORDING, {"audio": audio, "duration_ms": duration_ms})


def start_transcription() -> Action:
    return Action(_A.START_TRANSCRIPTION)


def transcription_complete(transcription: TranscriptionResult | None) -> Action:
    return Action(_A.TRANSCRIPTION_COMPLETE, {"transcription": transcription})


def start_enrichment() -> Action:
    return Action(_A.START_ENRICHMENT)


def enrichment_complete(enrichment: EnrichmentResult | None) -> Action:
    return Action(_A.ENRICHMENT_COMPLETE, {"enrichment": enrichment})


def finish_without_enrichment() -> Action:
    return Action(_A.FINISH_WITHOUT_ENRICHMENT)


def reset_recording() -> Action:
    return Action(_A.RESET_RECORDING)


def set_error(message: str, code: ErrorCode | str | None = None) -> Action:
    return Action(_A.SET_ERROR, {"message": message, "code": code})


def clear_error() -> Action:
    return Action(_A.CLEAR_ERROR)


def coerce_audio(value: Any) -> AudioHandle | None:
    if value is None or isinstance(value, AudioHandle):
        return value
    if isinstance(value, str) and value.strip():
        return AudioHandle(ref=value)
    if isinstance(value, Mapping) and isinstance(value.get("ref"), str) and value["ref"].strip():
        return AudioHandle(
            ref=value["ref"],
            mime_type=value.get("mime_type"),
            size_bytes=value.get("size_bytes"),
        )
    return None


def coerce_duration_ms(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value < 0:
        return None
    return int(value)


def action_from_dict(raw: Mapping[str, Any]) -> Action:
    """Parse ``{"type": ..., "payload": {...}}`` coming from a UI or IPC bridge.

    Only the envelope is checked here. Payload fields that are missing or
    malformed are kept as-is and show up as missing data when dispatched.
    """
    if not isinstance(raw, Mapping):
        raise ActionContractError("Action must be a mapping")
    action_type = raw.get("type")
    if not isinstance(action_type, str) or not action_type:
        raise ActionContractError("Action requires non-empty string 'type'")
    try:
        parsed_type = ActionType(action_type)
    except ValueError:
        raise ActionContractError(f"Unknown action type: {action_type}") from None
    payload = raw.get("payload") or {}
    if not isinstance(payload, Mapping):
        raise ActionContractError(f"{action_type} payload must be an object when present")
    if parsed_type is _A.STOP_RECORDING and "duration" in payload and "duration_ms" not in payload:
        payload = {**payload, "duration_ms": payload["duration"]}
    return Action(parsed_type, dict(payload))
