import pytest

from voxflow.core.error_taxonomy import ErrorCode, ErrorKind
from voxflow.core.session import AudioHandle, EnrichmentResult, SessionData, TranscriptionResult
from voxflow.core.state_machine import RecordingState
from voxflow.core.state_validation import (
    REQUIRED_FIELDS,
    required_fields,
    validate_consistency,
    validate_state_data,
    validate_transition_with_data,
)

S = RecordingState

AUDIO = AudioHandle("mem://clip")
TEXT = TranscriptionResult(text="hello world")


def test_every_state_has_requirements():
    assert set(REQUIRED_FIELDS) == set(RecordingState)
    assert required_fields(S.IDLE) == frozenset()
    assert required_fields(S.COMPLETE) == frozenset({"audio", "transcription"})


def test_missing_fields_are_reported_in_field_order():
    error = validate_state_data(S.TRANSCRIBING, SessionData())
    assert error is not None
    assert error.kind is ErrorKind.DATA_VALIDATION
    assert error.code is ErrorCode.STATE_DATA_VALIDATION_ERROR
    assert error.missing_fields == ("audio", "audio_duration_ms")
    assert error.message == 'State "transcribing" requires data that is missing: audio, audio_duration_ms'


def test_complete_data_passes():
    data = SessionData(audio=AUDIO, audio_duration_ms=0, transcription=TEXT)
    for state in RecordingState:
        assert validate_state_data(state, data) is None


def test_extra_required_fields():
    data = SessionData(audio=AUDIO, transcription=TEXT)
    error = validate_state_data(S.COMPLETE, data, extra_required=("enrichment",))
    assert error is not None
    assert error.missing_fields == ("enrichment",)


def test_unknown_extra_field_is_a_programming_error():
    with pytest.raises(ValueError):
        validate_state_data(S.IDLE, SessionData(), extra_required=("video",))


def test_edge_is_checked_before_data():
    failure = validate_transition_with_data(S.IDLE, S.COMPLETE, SessionData())
    assert failure is not None
    assert failure.kind is ErrorKind.TRANSITION


def test_combined_check_reports_data_on_legal_edge():
    failure = validate_transition_with_data(S.RECORDING, S.PROCESSING, SessionData(audio=AUDIO))
    assert failure is not None
    assert failure.kind is ErrorKind.DATA_VALIDATION
    assert failure.missing_fields == ("audio_duration_ms",)


def test_combined_check_passes():
    data = SessionData(audio=AUDIO, audio_duration_ms=1000)
    assert validate_transition_with_data(S.RECORDING, S.PROCESSING, data) is None


def test_consistency_flags_leftovers_in_idle():
    report = validate_consistency(S.IDLE, SessionData(audio=AUDIO, transcription=TEXT))
    assert report.valid is False
    assert "audio exists in idle state" in report.warnings
    assert "transcription exists in idle state" in report.warnings


def test_consistency_flags_orphans_and_empty_text():
    data = SessionData(
        enrichment=EnrichmentResult(enriched_text=""),
        transcription=TranscriptionResult(text=""),
    )
    warnings = validate_consistency(S.COMPLETE, data).warnings
    assert "transcription exists without audio" in warnings
    assert "enrichment exists but enriched_text is empty" in warnings
    assert "transcription exists but text is empty" in warnings

    orphan = validate_consistency(S.COMPLETE, SessionData(enrichment=EnrichmentResult(enriched_text="x")))
    assert "enrichment exists without transcription" in orphan.warnings


def test_consistent_data_has_no_warnings():
    data = SessionData(audio=AUDIO, audio_duration_ms=1000, transcription=TEXT)
    assert validate_consistency(S.TRANSCRIBED, data).valid is True
    assert validate_consistency(S.IDLE, SessionData()).valid is True
