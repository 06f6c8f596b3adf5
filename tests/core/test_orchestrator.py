import pytest

from voxflow.core import actions
from voxflow.core.actions import ACTION_TARGETS, RESET_ACTIONS, Action, ActionType, action_from_dict
from voxflow.core.error_taxonomy import ErrorCode, ErrorKind
from voxflow.core.orchestrator import RecordingOrchestrator, reduce
from voxflow.core.session import (
    AudioHandle,
    EnrichmentResult,
    SessionData,
    SessionSnapshot,
    TranscriptionResult,
)
from voxflow.core.state_debugger import StateDebugger
from voxflow.core.state_machine import RecordingState, edges
from voxflow.core.state_validation import required_fields

S = RecordingState

AUDIO = AudioHandle("mem://clip", mime_type="audio/webm")
TEXT = TranscriptionResult(text="hello world", language="en")
ENRICHED = EnrichmentResult(enriched_text="Hello, world.", original_text="hello world", enrichment_type="format")


def _orchestrator(**kwargs) -> RecordingOrchestrator:
    kwargs.setdefault("debugger", StateDebugger(enabled=False))
    return RecordingOrchestrator(session_id="test-session", **kwargs)


def _to_transcribed(orch: RecordingOrchestrator) -> None:
    orch.dispatch(actions.start_recording())
    orch.dispatch(actions.stop_recording(AUDIO, 1500))
    orch.dispatch(actions.start_transcription())
    orch.dispatch(actions.transcription_complete(TEXT))
    assert orch.state is S.TRANSCRIBED


def test_happy_path_with_enrichment():
    orch = _orchestrator()
    _to_transcribed(orch)
    orch.dispatch(actions.start_enrichment())
    snap = orch.dispatch(actions.enrichment_complete(ENRICHED))

    assert snap.state is S.COMPLETE
    assert snap.error is None
    assert snap.data == SessionData(
        audio=AUDIO,
        audio_duration_ms=1500,
        transcription=TEXT,
        enrichment=ENRICHED,
    )


def test_skip_enrichment():
    orch = _orchestrator()
    _to_transcribed(orch)
    snap = orch.dispatch(actions.finish_without_enrichment())
    assert snap.state is S.COMPLETE
    assert snap.data.enrichment is None
    assert snap.data.transcription == TEXT


def test_invalid_jump_routes_to_error_and_keeps_data():
    orch = _orchestrator()
    snap = orch.dispatch(actions.stop_recording(AUDIO, 1000))

    assert snap.state is S.ERROR
    assert snap.data == SessionData()
    assert snap.error is not None
    assert snap.error.kind is ErrorKind.TRANSITION
    assert snap.error.code == ErrorCode.STATE_TRANSITION_ERROR.value
    assert snap.error.message.startswith('Invalid state transition: Invalid state transition from "idle" to "processing"')


def test_missing_audio_routes_to_error():
    orch = _orchestrator()
    orch.dispatch(actions.start_recording())
    snap = orch.dispatch(actions.stop_recording(None, 1000))

    assert snap.state is S.ERROR
    assert snap.error.kind is ErrorKind.DATA_VALIDATION
    assert snap.error.code == ErrorCode.STATE_DATA_VALIDATION_ERROR.value
    assert snap.error.missing_fields == ("audio",)
    assert snap.error.message.startswith("Invalid state data: ")


def test_zero_duration_is_accepted():
    orch = _orchestrator()
    orch.dispatch(actions.start_recording())
    snap = orch.dispatch(actions.stop_recording(AUDIO, 0))
    assert snap.state is S.PROCESSING
    assert snap.data.audio_duration_ms == 0


def test_empty_transcript_is_committed_with_warning():
    orch = _orchestrator()
    orch.dispatch(actions.start_recording())
    orch.dispatch(actions.stop_recording(AUDIO, 500))
    orch.dispatch(actions.start_transcription())
    result = reduce(orch.snapshot, actions.transcription_complete(TranscriptionResult(text="")))
    assert result.ok is True
    assert result.snapshot.state is S.TRANSCRIBED
    assert "transcription exists but text is empty" in result.warnings


def test_transcription_complete_requires_its_payload():
    orch = _orchestrator()
    orch.dispatch(actions.start_recording())
    orch.dispatch(actions.stop_recording(AUDIO, 500))
    orch.dispatch(actions.start_transcription())
    snap = orch.dispatch(actions.transcription_complete(None))
    assert snap.state is S.ERROR
    assert snap.error.missing_fields == ("transcription",)


def test_enrichment_complete_requires_enrichment():
    orch = _orchestrator()
    _to_transcribed(orch)
    orch.dispatch(actions.start_enrichment())
    snap = orch.dispatch(actions.enrichment_complete(None))
    assert snap.state is S.ERROR
    assert snap.error.missing_fields == ("enrichment",)


def test_late_enrichment_after_skip_is_rejected():
    orch = _orchestrator()
    _to_transcribed(orch)
    orch.dispatch(actions.finish_without_enrichment())
    snap = orch.dispatch(actions.enrichment_complete(ENRICHED))
    assert snap.state is S.ERROR
    assert snap.error.kind is ErrorKind.TRANSITION
    assert snap.data.enrichment is None


def test_second_stop_routes_to_error():
    orch = _orchestrator()
    orch.dispatch(actions.start_recording())
    orch.dispatch(actions.stop_recording(AUDIO, 500))
    snap = orch.dispatch(actions.stop_recording(AUDIO, 600))
    assert snap.state is S.ERROR
    assert snap.data.audio_duration_ms == 500


def test_reset_from_idle_is_rejected():
    orch = _orchestrator()
    snap = orch.dispatch(actions.reset_recording())
    assert snap.state is S.ERROR
    assert snap.error.kind is ErrorKind.TRANSITION


@pytest.mark.parametrize("target", [S.RECORDING, S.PROCESSING, S.TRANSCRIBING, S.TRANSCRIBED, S.ENRICHING, S.COMPLETE])
def test_reset_from_any_active_state_clears_everything(target):
    orch = _orchestrator()
    steps = [
        (S.RECORDING, actions.start_recording()),
        (S.PROCESSING, actions.stop_recording(AUDIO, 900)),
        (S.TRANSCRIBING, actions.start_transcription()),
        (S.TRANSCRIBED, actions.transcription_complete(TEXT)),
        (S.ENRICHING, actions.start_enrichment()),
        (S.COMPLETE, actions.enrichment_complete(ENRICHED)),
    ]
    for state, action in steps:
        orch.dispatch(action)
        if state is target:
            break
    assert orch.state is target

    snap = orch.dispatch(actions.reset_recording())
    assert snap == SessionSnapshot.initial()


def test_every_failure_is_recoverable():
    orch = _orchestrator()
    orch.dispatch(actions.start_transcription())
    assert orch.state is S.ERROR

    snap = orch.dispatch(actions.clear_error())
    assert snap == SessionSnapshot.initial()


def test_set_error_records_reported_code():
    orch = _orchestrator()
    orch.dispatch(actions.start_recording())
    snap = orch.dispatch(actions.set_error("Microphone disconnected", ErrorCode.INVALID_AUDIO))
    assert snap.state is S.ERROR
    assert snap.error.kind is None
    assert snap.error.code == "INVALID_AUDIO"
    assert snap.error.message == "Microphone disconnected"


def test_set_error_without_message_or_code():
    snap = reduce(SessionSnapshot.initial(), action_from_dict({"type": "SET_ERROR"})).snapshot
    assert snap.state is S.ERROR
    assert snap.error.message == "Unknown error"
    assert snap.error.code == ErrorCode.UNKNOWN_ERROR.value


def test_set_error_while_in_error_is_a_transition_failure():
    orch = _orchestrator()
    orch.dispatch(actions.set_error("first"))
    snap = orch.dispatch(actions.set_error("second"))
    assert snap.state is S.ERROR
    assert snap.error.code == ErrorCode.STATE_TRANSITION_ERROR.value


def test_plain_mapping_actions_with_malformed_payloads():
    orch = _orchestrator()
    orch.dispatch(action_from_dict({"type": "START_RECORDING"}))
    snap = orch.dispatch(action_from_dict({"type": "STOP_RECORDING", "payload": {"audio": 12, "duration": "long"}}))
    assert snap.state is S.ERROR
    assert snap.error.missing_fields == ("audio", "audio_duration_ms")


def test_reduce_is_pure():
    before = SessionSnapshot.initial()
    result = reduce(before, actions.start_recording())
    assert before == SessionSnapshot.initial()
    assert result.snapshot.state is S.RECORDING


def test_reduce_rejects_non_actions():
    with pytest.raises(TypeError):
        reduce(SessionSnapshot.initial(), {"type": ActionType.START_RECORDING})


def test_subscribers_receive_snapshots_and_can_unsubscribe():
    orch = _orchestrator()
    seen: list[RecordingState] = []
    unsubscribe = orch.subscribe(lambda snap: seen.append(snap.state))

    orch.dispatch(actions.start_recording())
    unsubscribe()
    orch.dispatch(actions.reset_recording())

    assert seen == [S.RECORDING]


def test_failing_subscriber_does_not_break_dispatch():
    orch = _orchestrator()

    def _boom(_snap):
        raise RuntimeError("listener bug")

    orch.subscribe(_boom)
    snap = orch.dispatch(actions.start_recording())
    assert snap.state is S.RECORDING
    assert orch.state is S.RECORDING


def test_enabled_debugger_records_committed_transitions():
    debugger = StateDebugger(enabled=True)
    orch = _orchestrator(debugger=debugger)
    orch.dispatch(actions.start_recording())
    orch.dispatch(actions.start_enrichment())

    targets = [t.target for t in debugger.history.history()]
    assert targets == [S.RECORDING, S.ERROR]
    assert [entry.action_type for entry in debugger.actions.logs()] == ["START_RECORDING", "START_ENRICHMENT"]


FULL = SessionData(audio=AUDIO, audio_duration_ms=1500, transcription=TEXT, enrichment=ENRICHED)


def _action_for(action_type: ActionType, data: SessionData) -> Action:
    if action_type is ActionType.STOP_RECORDING:
        return actions.stop_recording(data.audio, data.audio_duration_ms)
    if action_type is ActionType.TRANSCRIPTION_COMPLETE:
        return actions.transcription_complete(data.transcription)
    if action_type is ActionType.ENRICHMENT_COMPLETE:
        return actions.enrichment_complete(data.enrichment)
    return Action(action_type)


_FORWARD_EDGES = [
    (edge.source, action_type)
    for edge in edges()
    for action_type in ActionType
    if ACTION_TARGETS[action_type] is edge.target
    and action_type not in RESET_ACTIONS
    and action_type is not ActionType.SET_ERROR
]

_MISSING_FIELD_CASES = [
    (source, action_type, name)
    for source, action_type in _FORWARD_EDGES
    for name in sorted(required_fields(ACTION_TARGETS[action_type]))
]


@pytest.mark.parametrize("source,action_type", _FORWARD_EDGES)
def test_legal_edge_with_complete_data_commits_target(source, action_type):
    result = reduce(SessionSnapshot(state=source, data=FULL), _action_for(action_type, FULL))
    assert result.ok is True
    assert result.snapshot.state is ACTION_TARGETS[action_type]
    assert result.snapshot.error is None


@pytest.mark.parametrize("source,action_type,missing", _MISSING_FIELD_CASES)
def test_legal_edge_with_missing_required_field_commits_error(source, action_type, missing):
    data = FULL.merged(**{missing: None})
    before = SessionSnapshot(state=source, data=data)

    result = reduce(before, _action_for(action_type, data))

    assert result.snapshot.state is S.ERROR
    assert result.failure.kind is ErrorKind.DATA_VALIDATION
    assert missing in result.snapshot.error.missing_fields
    assert result.snapshot.data == data


def test_transcription_from_idle_lists_allowed_targets():
    orch = _orchestrator()
    snap = orch.dispatch(actions.start_transcription())

    assert snap.state is S.ERROR
    assert snap.error.kind is ErrorKind.TRANSITION
    assert snap.error.code == ErrorCode.STATE_TRANSITION_ERROR.value
    assert 'from "idle" to "transcribing"' in snap.error.message
    assert "recording, error" in snap.error.message


@pytest.mark.parametrize(
    "before,action,warning,target",
    [
        (
            SessionSnapshot(state=S.RECORDING, data=SessionData(enrichment=ENRICHED)),
            actions.stop_recording(AUDIO, 700),
            "enrichment exists without transcription",
            S.PROCESSING,
        ),
        (
            SessionSnapshot(state=S.IDLE, data=SessionData(audio=AUDIO)),
            actions.start_recording(),
            "audio exists while still recording",
            S.RECORDING,
        ),
    ],
)
def test_consistency_warnings_never_block(before, action, warning, target):
    result = reduce(before, action)
    assert result.ok is True
    assert result.snapshot.state is target
    assert warning in result.warnings


def test_committed_snapshots_are_read_only():
    orch = _orchestrator()
    orch.dispatch(actions.start_recording())
    orch.dispatch(actions.stop_recording(AUDIO, 500))
    orch.dispatch(actions.start_transcription())
    snap = orch.dispatch(
        action_from_dict({"type": "TRANSCRIPTION_COMPLETE", "payload": {"transcription": {"text": "hi", "model": "m"}}})
    )

    with pytest.raises(TypeError):
        snap.data.transcription.extra["model"] = "other"
    assert orch.snapshot.data.transcription.extra["model"] == "m"
