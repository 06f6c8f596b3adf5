from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from voxflow.core.error_taxonomy import ErrorCode, ErrorKind
from voxflow.core.state_machine import (
    RecordingState,
    describe,
    is_in_progress,
    next_states,
)

ENRICHMENT_TYPES: tuple[str, ...] = ("format", "summarize", "expand", "bullet-points", "action-items", "custom")

# Canonical field order, used for missing-field reports and diffs.
SESSION_FIELDS: tuple[str, ...] = ("audio", "audio_duration_ms", "transcription", "enrichment")


@dataclass(frozen=True)
class AudioHandle:
    """Opaque reference to captured audio. The core never reads the bytes."""

    ref: str
    mime_type: str | None = None
    size_bytes: int | None = None


@dataclass(frozen=True)
class TranscriptionSegment:
    id: int
    start: float
    end: float
    text: str
    confidence: float | None = None


@dataclass(frozen=True)
class TranscriptionResult:
    text: str
    language: str | None = None
    duration_s: float | None = None
    confidence: float | None = None
    segments: tuple[TranscriptionSegment, ...] = ()
    provider: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))
        object.__setattr__(self, "segments", tuple(self.segments))

    @classmethod
    def from_payload(cls, payload: Any) -> "TranscriptionResult | None":
        """Coerce a plain mapping; anything without a string ``text`` is treated as absent."""
        if payload is None or isinstance(payload, cls):
            return payload
        if not isinstance(payload, Mapping) or not isinstance(payload.get("text"), str):
            return None
        segments = tuple(
            TranscriptionSegment(
                id=int(seg.get("id", idx)),
                start=float(seg.get("start", 0.0)),
                end=float(seg.get("end", 0.0)),
                text=str(seg.get("text", "")),
                confidence=seg.get("confidence"),
            )
            for idx, seg in enumerate(payload.get("segments") or ())
            if isinstance(seg, Mapping)
        )
        known = {"text", "language", "duration", "duration_s", "confidence", "segments", "provider"}
        return cls(
            text=payload["text"],
            language=payload.get("language"),
            duration_s=payload.get("duration_s", payload.get("duration")),
            confidence=payload.get("confidence"),
            segments=segments,
            provider=payload.get("provider"),
            extra={k: v for k, v in payload.items() if k not in known},
        )


@dataclass(frozen=True)
class EnrichmentResult:
    enriched_text: str
    original_text: str | None = None
    enrichment_type: str | None = None
    model: str | None = None
    tokens_used: int | None = None
    processing_time_ms: float | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @classmethod
    def from_payload(cls, payload: Any) -> "EnrichmentResult | None":
        if payload is None or isinstance(payload, cls):
            return payload
        if not isinstance(payload, Mapping):
            return None
        text = payload.get("enriched_text", payload.get("enrichedText"))
        if not isinstance(text, str):
            return None
        aliases = {
            "original_text": ("original_text", "originalText"),
            "enrichment_type": ("enrichment_type", "enrichmentType"),
            "tokens_used": ("tokens_used", "tokensUsed"),
            "processing_time_ms": ("processing_time_ms", "processingTime"),
        }
        values: dict[str, Any] = {}
        consumed = {"enriched_text", "enrichedText", "model"}
        for attr, keys in aliases.items():
            consumed.update(keys)
            values[attr] = next((payload[k] for k in keys if k in payload), None)
        return cls(
            enriched_text=text,
            model=payload.get("model"),
            extra={k: v for k, v in payload.items() if k not in consumed},
            **values,
        )


# Presence means `is not None`; a zero duration or empty text still counts as present.
@dataclass(frozen=True)
class SessionData:
    audio: AudioHandle | None = None
    audio_duration_ms: int | None = None
    transcription: TranscriptionResult | None = None
    enrichment: EnrichmentResult | None = None

    @classmethod
    def empty(cls) -> "SessionData":
        return cls()

    def has(self, name: str) -> bool:
        return getattr(self, name) is not None

    def present_fields(self) -> tuple[str, ...]:
        return tuple(name for name in SESSION_FIELDS if self.has(name))

    def merged(self, **changes: Any) -> "SessionData":
        return replace(self, **changes)

    def summary(self) -> dict[str, Any]:
        """Loggable view without payload contents."""
        return {
            "audio": self.audio is not None,
            "audio_duration_ms": self.audio_duration_ms,
            "transcription_chars": len(self.transcription.text) if self.transcription is not None else None,
            "enrichment_chars": len(self.enrichment.enriched_text) if self.enrichment is not None else None,
        }


@dataclass(frozen=True)
class SessionError:
    code: str
    message: str
    kind: ErrorKind | None = None
    missing_fields: tuple[str, ...] = ()

    @property
    def is_validation_failure(self) -> bool:
        return self.kind is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.kind is not None:
            out["kind"] = self.kind.value
        if self.missing_fields:
            out["missing_fields"] = list(self.missing_fields)
        return out


@dataclass(frozen=True)
class SessionSnapshot:
    state: RecordingState = RecordingState.IDLE
    data: SessionData = field(default_factory=SessionData)
    error: SessionError | None = None

    @classmethod
    def initial(cls) -> "SessionSnapshot":
        return cls()

    @property
    def description(self) -> str:
        return describe(self.state)

    @property
    def next_states(self) -> frozenset[RecordingState]:
        return next_states(self.state)

    @property
    def is_recording(self) -> bool:
        return self.state is RecordingState.RECORDING

    @property
    def is_processing(self) -> bool:
        return is_in_progress(self.state) and self.state is not RecordingState.RECORDING

    @property
    def is_complete(self) -> bool:
        return self.state is RecordingState.COMPLETE

    @property
    def has_error(self) -> bool:
        return self.state is RecordingState.ERROR

    @property
    def has_audio(self) -> bool:
        return self.data.audio is not None

    @property
    def has_transcription(self) -> bool:
        return self.data.transcription is not None

    @property
    def has_enrichment(self) -> bool:
        return self.data.enrichment is not None


def reported_error(message: str, code: str | ErrorCode | None = None) -> SessionError:
    if isinstance(code, ErrorCode):
        code = code.value
    return SessionError(code=code or ErrorCode.UNKNOWN_ERROR.value, message=str(message))
