from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from voxflow.config import Config
from voxflow.core.actions import (
    ACTION_PAYLOAD_FIELDS,
    ACTION_TARGETS,
    RESET_ACTIONS,
    Action,
    ActionType,
    coerce_audio,
    coerce_duration_ms,
)
from voxflow.core.error_taxonomy import ErrorKind
from voxflow.core.logging_setup import emit_event
from voxflow.core.session import (
    EnrichmentResult,
    SessionData,
    SessionError,
    SessionSnapshot,
    TranscriptionResult,
    reported_error,
)
from voxflow.core.state_debugger import StateDebugger
from voxflow.core.state_machine import RecordingState
from voxflow.core.state_validation import (
    ValidationFailure,
    validate_consistency,
    validate_transition_with_data,
)

SnapshotListener = Callable[[SessionSnapshot], None]


@dataclass(frozen=True)
class ReduceResult:
    snapshot: SessionSnapshot
    failure: ValidationFailure | None = None
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.failure is None


def _candidate_data(current: SessionData, action: Action) -> SessionData:
    payload = action.payload
    kind = action.type
    if kind in RESET_ACTIONS:
        return SessionData.empty()
    if kind is ActionType.STOP_RECORDING:
        return current.merged(
            audio=coerce_audio(payload.get("audio")),
            audio_duration_ms=coerce_duration_ms(payload.get("duration_ms")),
        )
    if kind is ActionType.TRANSCRIPTION_COMPLETE:
        return current.merged(transcription=TranscriptionResult.from_payload(payload.get("transcription")))
    if kind is ActionType.ENRICHMENT_COMPLETE:
        return current.merged(enrichment=EnrichmentResult.from_payload(payload.get("enrichment")))
    return current


def _failure_to_session_error(failure: ValidationFailure) -> SessionError:
    if failure.kind is ErrorKind.TRANSITION:
        return SessionError(
            kind=failure.kind,
            code=failure.code.value,
            message=f"Invalid state transition: {failure.message}",
        )
    if failure.kind is ErrorKind.DATA_VALIDATION:
        return SessionError(
            kind=failure.kind,
            code=failure.code.value,
            message=f"Invalid state data: {failure.message}",
            missing_fields=failure.missing_fields,
        )
    raise AssertionError(f"Unhandled validation failure kind: {failure.kind!r}")


def reduce(snapshot: SessionSnapshot, action: Action) -> ReduceResult:
    if not isinstance(action, Action):
        raise TypeError(f"Expected Action, got {type(action).__name__}")

    target = ACTION_TARGETS[action.type]
    candidate = _candidate_data(snapshot.data, action)
    failure = validate_transition_with_data(
        snapshot.state,
        target,
        candidate,
        extra_required=ACTION_PAYLOAD_FIELDS[action.type],
    )

    if failure is not None:
        committed = SessionSnapshot(
            state=RecordingState.ERROR,
            data=snapshot.data,
            error=_failure_to_session_error(failure),
        )
        return ReduceResult(snapshot=committed, failure=failure)

    if action.type is ActionType.SET_ERROR:
        error: SessionError | None = reported_error(
            action.payload.get("message") or "Unknown error",
            action.payload.get("code"),
        )
    else:
        error = None

    committed = SessionSnapshot(state=target, data=candidate, error=error)
    report = validate_consistency(committed.state, committed.data)
    return ReduceResult(snapshot=committed, warnings=report.warnings)


class RecordingOrchestrator:
    """Sole mutator of one recording session."""

    def __init__(
        self,
        *,
        session_id: str = "session",
        initial: SessionSnapshot | None = None,
        debugger: StateDebugger | None = None,
    ):
        self.session_id = session_id
        self._snapshot = initial or SessionSnapshot.initial()
        self._debugger = debugger or StateDebugger(
            enabled=Config.DEBUG,
            history_size=Config.DEBUG_HISTORY_SIZE,
            action_log_size=Config.DEBUG_ACTION_LOG_SIZE,
        )
        self._listeners: list[SnapshotListener] = []
        self._log = logger.bind(component="orchestrator", session=session_id[-6:])

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def state(self) -> RecordingState:
        return self._snapshot.state

    @property
    def debugger(self) -> StateDebugger:
        return self._debugger

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def dispatch(self, action: Action) -> SessionSnapshot:
        previous = self._snapshot
        self._debugger.log_action(action, previous.state)

        result = reduce(previous, action)
        self._snapshot = result.snapshot

        self._debugger.record_transition(previous.state, result.snapshot.state, action)
        self._debugger.print_diff(previous, result.snapshot)
        if result.snapshot.state is not previous.state:
            self._debugger.print_state(result.snapshot)
        self._report(previous, action, result)
        self._notify(result.snapshot)
        return result.snapshot

    def _report(self, previous: SessionSnapshot, action: Action, result: ReduceResult) -> None:
        meta: dict[str, Any] = {
            "from_state": previous.state.value,
            "to_state": result.snapshot.state.value,
        }
        failure = result.failure
        if failure is not None and failure.kind is ErrorKind.TRANSITION:
            meta["allowed"] = failure.allowed_names
            emit_event(
                self._log,
                f"{action.type.value} rejected: {failure.message}",
                level="ERROR",
                event="transition_rejected",
                stage=previous.state.value,
                session_id=self.session_id,
                action=action.type.value,
                outcome="error",
                error_code=failure.code.value,
                meta=meta,
            )
        elif failure is not None and failure.kind is ErrorKind.DATA_VALIDATION:
            meta["missing_fields"] = list(failure.missing_fields)
            emit_event(
                self._log,
                f"{action.type.value} rejected: {failure.message}",
                level="ERROR",
                event="data_validation_failed",
                stage=previous.state.value,
                session_id=self.session_id,
                action=action.type.value,
                outcome="error",
                error_code=failure.code.value,
                meta=meta,
            )
        else:
            meta["data"] = result.snapshot.data.summary()
            emit_event(
                self._log,
                f"{previous.state.value} -> {result.snapshot.state.value} ({action.type.value})",
                level="DEBUG",
                event="state_changed",
                stage=result.snapshot.state.value,
                session_id=self.session_id,
                action=action.type.value,
                outcome="ok",
                meta=meta,
            )

        for warning in result.warnings:
            emit_event(
                self._log,
                f"Consistency warning in {result.snapshot.state.value}: {warning}",
                level="WARNING",
                event="consistency_warning",
                stage=result.snapshot.state.value,
                session_id=self.session_id,
                action=action.type.value,
            )

    def _notify(self, snapshot: SessionSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self._log.exception("Snapshot listener failed")
