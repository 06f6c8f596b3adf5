from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from voxflow.core.error_taxonomy import ErrorCode, classify_error_message, is_retryable
from voxflow.core.session import AudioHandle, EnrichmentResult, TranscriptionResult


@dataclass(frozen=True)
class TranscriptionOptions:
    language: str | None = None
    prompt: str | None = None
    temperature: float | None = None
    model: str | None = None


class ProviderError(RuntimeError):
    """Failure reported by a transcription or enrichment backend."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        provider: str | None = None,
    ):
        super().__init__(message)
        self.code = code or classify_error_message(message)
        self.retryable = is_retryable(self.code) if retryable is None else bool(retryable)
        self.provider = provider


@runtime_checkable
class TranscriptionProvider(Protocol):
    name: str

    async def transcribe(
        self,
        audio: AudioHandle,
        options: TranscriptionOptions | None = None,
    ) -> TranscriptionResult: ...

    async def is_available(self) -> bool: ...


@runtime_checkable
class EnrichmentProvider(Protocol):
    name: str

    async def enrich(
        self,
        text: str,
        enrichment_type: str,
        custom_prompt: str | None = None,
    ) -> EnrichmentResult: ...

    async def is_available(self) -> bool: ...
