from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger

from voxflow.config import Config
from voxflow.core import actions
from voxflow.core.error_taxonomy import classify_exception
from voxflow.core.logging_setup import emit_event
from voxflow.core.orchestrator import RecordingOrchestrator
from voxflow.core.session import ENRICHMENT_TYPES, AudioHandle, SessionSnapshot
from voxflow.core.state_machine import RecordingState
from voxflow.runtime.provider_router import ProviderRouter
from voxflow.runtime.providers import (
    EnrichmentProvider,
    TranscriptionOptions,
    TranscriptionProvider,
)
from voxflow.runtime.retry import retry_with_backoff


class RecordingWorkflow:
    def __init__(
        self,
        orchestrator: RecordingOrchestrator,
        transcription_router: ProviderRouter[TranscriptionProvider],
        enrichment_router: ProviderRouter[EnrichmentProvider] | None = None,
        *,
        options: TranscriptionOptions | None = None,
        max_attempts: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.orchestrator = orchestrator
        self.transcription_router = transcription_router
        self.enrichment_router = enrichment_router
        self.options = options or TranscriptionOptions()
        self._max_attempts = max_attempts
        self._sleep = sleep
        self.last_provider: str | None = None
        self._log = logger.bind(component="workflow", session=orchestrator.session_id[-6:])
        # Session epoch: changes on every entry into idle or recording.
        self._generation = 0
        orchestrator.subscribe(self._on_snapshot)

    def _on_snapshot(self, snapshot: SessionSnapshot) -> None:
        if snapshot.state in (RecordingState.IDLE, RecordingState.RECORDING):
            self._generation += 1

    @property
    def snapshot(self) -> SessionSnapshot:
        return self.orchestrator.snapshot

    def start_recording(self) -> SessionSnapshot:
        return self.orchestrator.dispatch(actions.start_recording())

    def stop_recording(self, audio: AudioHandle | None, duration_ms: int | None) -> SessionSnapshot:
        return self.orchestrator.dispatch(actions.stop_recording(audio, duration_ms))

    async def _with_retry(self, fn: Callable[[], Awaitable]):
        return await retry_with_backoff(fn, max_attempts=self._max_attempts, sleep=self._sleep)

    def _fail(self, stage: str, exc: BaseException, started: float) -> SessionSnapshot:
        code = classify_exception(exc)
        emit_event(
            self._log,
            f"{stage} failed: {exc}",
            level="ERROR",
            event=f"{stage}_failed",
            stage=stage,
            session_id=self.orchestrator.session_id,
            provider=getattr(exc, "provider", None),
            duration_ms=(time.perf_counter() - started) * 1000.0,
            outcome="error",
            error_code=code.value,
        )
        return self.orchestrator.dispatch(actions.set_error(str(exc), code))

    def _superseded(self, expected: RecordingState, generation: int, stage: str) -> bool:
        # The session was cancelled, restarted or failed while the provider call was in flight.
        if self._generation == generation and self.orchestrator.state is expected:
            return False
        self._log.info(f"Dropping {stage} result: session moved to {self.orchestrator.state.value}")
        return True

    async def transcribe(self) -> SessionSnapshot:
        snapshot = self.orchestrator.dispatch(actions.start_transcription())
        if snapshot.state is not RecordingState.TRANSCRIBING:
            return snapshot
        audio = snapshot.data.audio
        generation = self._generation
        options = self.options
        started = time.perf_counter()

        async def _call(provider: TranscriptionProvider):
            return await self._with_retry(lambda: provider.transcribe(audio, options))

        try:
            name, result = await self.transcription_router.run(_call)
        except Exception as exc:
            if self._superseded(RecordingState.TRANSCRIBING, generation, "transcription"):
                return self.orchestrator.snapshot
            return self._fail("transcription", exc, started)

        if self._superseded(RecordingState.TRANSCRIBING, generation, "transcription"):
            return self.orchestrator.snapshot
        self.last_provider = name
        emit_event(
            self._log,
            f"Transcribed with {name}",
            event="transcription_done",
            stage="transcription",
            session_id=self.orchestrator.session_id,
            provider=name,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            outcome="ok",
        )
        return self.orchestrator.dispatch(actions.transcription_complete(result))

    async def enrich(
        self,
        enrichment_type: str | None = None,
        custom_prompt: str | None = None,
    ) -> SessionSnapshot:
        if self.enrichment_router is None:
            raise RuntimeError("No enrichment router configured")
        kind = enrichment_type or Config.DEFAULT_ENRICHMENT_TYPE
        if kind not in ENRICHMENT_TYPES:
            raise ValueError(f"Unknown enrichment type: {kind!r}")
        snapshot = self.orchestrator.dispatch(actions.start_enrichment())
        if snapshot.state is not RecordingState.ENRICHING:
            return snapshot
        text = snapshot.data.transcription.text if snapshot.data.transcription is not None else ""
        generation = self._generation
        started = time.perf_counter()

        async def _call(provider: EnrichmentProvider):
            return await self._with_retry(lambda: provider.enrich(text, kind, custom_prompt))

        try:
            name, result = await self.enrichment_router.run(_call)
        except Exception as exc:
            if self._superseded(RecordingState.ENRICHING, generation, "enrichment"):
                return self.orchestrator.snapshot
            return self._fail("enrichment", exc, started)

        if self._superseded(RecordingState.ENRICHING, generation, "enrichment"):
            return self.orchestrator.snapshot
        emit_event(
            self._log,
            f"Enriched ({kind}) with {name}",
            event="enrichment_done",
            stage="enrichment",
            session_id=self.orchestrator.session_id,
            provider=name,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            outcome="ok",
            meta={"enrichment_type": kind},
        )
        return self.orchestrator.dispatch(actions.enrichment_complete(result))

    def finish(self) -> SessionSnapshot:
        return self.orchestrator.dispatch(actions.finish_without_enrichment())

    def cancel(self) -> SessionSnapshot:
        if self.orchestrator.state is RecordingState.IDLE:
            return self.orchestrator.snapshot
        if self.orchestrator.state is RecordingState.ERROR:
            return self.orchestrator.dispatch(actions.clear_error())
        return self.orchestrator.dispatch(actions.reset_recording())

    async def process(
        self,
        audio: AudioHandle | None,
        duration_ms: int | None,
        *,
        enrichment_type: str | None = None,
        custom_prompt: str | None = None,
    ) -> SessionSnapshot:
        """Stop, transcribe, then enrich (when a type is given) or finish."""
        snapshot = self.stop_recording(audio, duration_ms)
        if snapshot.state is not RecordingState.PROCESSING:
            return snapshot
        snapshot = await self.transcribe()
        if snapshot.state is not RecordingState.TRANSCRIBED:
            return snapshot
        if enrichment_type is not None and self.enrichment_router is not None:
            return await self.enrich(enrichment_type, custom_prompt)
        return self.finish()

    def toggle_hotkey(self, on_stop_requested: Callable[[], None]) -> SessionSnapshot:
        """Global shortcut: start from idle, ask the host to stop while recording, ignore otherwise."""
        state = self.orchestrator.state
        if state is RecordingState.IDLE:
            return self.start_recording()
        if state is RecordingState.RECORDING:
            on_stop_requested()
        else:
            self._log.debug(f"Hotkey ignored in {state.value}")
        return self.orchestrator.snapshot
