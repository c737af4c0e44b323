"""
Pipeline Orchestrator

Drives the sample -> recognize -> classify cycle while a video plays and
publishes state, transcript and emotion updates to observers.
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path

import structlog

from vidmood.audio.sampler import AudioSampler, MediaSource
from vidmood.backends.ondevice import ModelFormat
from vidmood.backends.selection import EmotionRouter, SpeechRouter
from vidmood.config import BackendConfig, ConfigStore, Settings, settings
from vidmood.core.errors import MediaOpenError, ModelLoadError, NoAudioTrackError
from vidmood.core.models import EmotionResult, PipelineState, TranscriptSegment

from .playback import PlaybackClock
from .publisher import StatePublisher

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Configuration
# ══════════════════════════════════════════════════════════════


@dataclass
class PipelineConfig:
    """Cadence of the analysis loop."""

    interval_ms: int = 5000
    window_ms: int = 10000

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "PipelineConfig":
        source = source or settings
        return cls(
            interval_ms=source.analysis_interval_ms,
            window_ms=source.audio_window_ms,
        )


# ══════════════════════════════════════════════════════════════
# Pipeline
# ══════════════════════════════════════════════════════════════


class EmotionPipeline:
    """
    Periodic emotion analysis of a playing video.

    States:
        Idle -> Loading -> Analyzing <-> Paused
        any -> Error on a fatal media fault; Error -> Idle on stop()

    Each run of the loop carries an id. Halting bumps the current id and wakes
    the loop; a cycle that finishes after its run was halted publishes nothing.

    Usage:
        pipeline = create_pipeline(player)
        pipeline.emotion.subscribe(print)
        await pipeline.load_source("clip.mp4")
        pipeline.start_analysis()
    """

    def __init__(
        self,
        sampler: AudioSampler,
        speech: SpeechRouter,
        emotion: EmotionRouter,
        config_store: ConfigStore,
        clock: PlaybackClock,
        config: PipelineConfig | None = None,
    ) -> None:
        self.sampler = sampler
        self.speech_router = speech
        self.emotion_router = emotion
        self.config_store = config_store
        self.clock = clock
        self.config = config or PipelineConfig()

        # Observer streams
        self.state: StatePublisher[PipelineState] = StatePublisher("state", PipelineState.IDLE)
        self.transcript: StatePublisher[TranscriptSegment | None] = StatePublisher(
            "transcript", None
        )
        self.emotion: StatePublisher[EmotionResult | None] = StatePublisher("emotion", None)

        self.last_error: str | None = None

        self._source: MediaSource | None = None
        self._run_id = 0
        self._wake: asyncio.Event | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def current_state(self) -> PipelineState:
        return self.state.value

    @property
    def source(self) -> MediaSource | None:
        return self._source

    # ──────────────────────────────────────────────────────────
    # Control
    # ──────────────────────────────────────────────────────────

    async def load_source(self, source: MediaSource) -> bool:
        """
        Bind a video source without starting analysis.

        Returns False if the pipeline is in Error (stop() first), the
        source cannot be opened (the pipeline then enters Error), or a
        stop() or newer load superseded this one while it was probing.
        """
        if self.current_state is PipelineState.ERROR:
            logger.warning("Load ignored while in error state", source=os.fspath(source))
            return False

        self._halt()
        run_id = self._run_id
        self._source = None
        self._set_state(PipelineState.LOADING)

        try:
            tracks = await asyncio.to_thread(self.sampler.probe, source)
        except MediaOpenError as e:
            if self._is_current(run_id):
                self._fail(e)
            return False

        if not self._is_current(run_id):
            logger.info("Superseded load discarded", source=os.fspath(source))
            return False

        self._source = source
        logger.info("Source loaded", source=os.fspath(source), tracks=len(tracks))
        return True

    def start_analysis(self) -> bool:
        """Start the cycle loop from Loading or Paused; no-op otherwise."""
        if self.current_state not in (PipelineState.LOADING, PipelineState.PAUSED):
            return False
        if self._source is None:
            logger.warning("Cannot start analysis without a loaded source")
            return False

        self._run_id += 1
        self._wake = asyncio.Event()
        self._set_state(PipelineState.ANALYZING)

        task = asyncio.create_task(self._run_loop(self._run_id, self._wake))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def pause(self) -> bool:
        """Suspend the loop; only meaningful while Analyzing."""
        if self.current_state is not PipelineState.ANALYZING:
            return False
        self._halt()
        self._set_state(PipelineState.PAUSED)
        return True

    def stop(self) -> None:
        """Halt the loop, unbind the source and clear published results."""
        self._halt()
        self._source = None
        self.last_error = None
        self._set_state(PipelineState.IDLE)
        self.transcript.publish(None)
        self.emotion.publish(None)

    def on_playback_ended(self) -> None:
        self.stop()

    async def close(self) -> None:
        """Tear down the loop, backend clients and the on-device model."""
        self._halt()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.speech_router.close()
        await self.emotion_router.close()
        logger.info("Pipeline closed")

    # ──────────────────────────────────────────────────────────
    # Configuration surface
    # ──────────────────────────────────────────────────────────

    def update_config(self, **changes) -> BackendConfig:
        """Swap in a new backend snapshot; applies from the next cycle."""
        return self.config_store.update(**changes)

    async def load_model(
        self,
        path: str | Path,
        model_format: ModelFormat | None = None,
    ) -> ModelFormat:
        return await asyncio.to_thread(
            self.emotion_router.ondevice.load_model, path, model_format
        )

    def unload_model(self) -> None:
        self.emotion_router.ondevice.unload()

    # ──────────────────────────────────────────────────────────
    # Loop
    # ──────────────────────────────────────────────────────────

    def _is_current(self, run_id: int) -> bool:
        return run_id == self._run_id

    def _halt(self) -> None:
        self._run_id += 1
        if self._wake is not None:
            self._wake.set()
        self._wake = None

    def _fail(self, error: Exception) -> None:
        self._halt()
        self.last_error = str(error)
        logger.error("Pipeline fault", error=str(error))
        self._set_state(PipelineState.ERROR)

    def _set_state(self, state: PipelineState) -> None:
        previous = self.state.value
        if previous is state:
            return
        logger.info("Pipeline state changed", previous=previous.value, state=state.value)
        self.state.publish(state)

    async def _run_loop(self, run_id: int, wake: asyncio.Event) -> None:
        log = logger.bind(run_id=run_id)
        interval = self.config.interval_ms / 1000
        log.info("Analysis loop started", interval_ms=self.config.interval_ms)

        while self._is_current(run_id):
            try:
                await self._run_cycle(run_id)
            except MediaOpenError as e:
                if self._is_current(run_id):
                    self._fail(e)
                break
            except Exception as e:
                log.error("Analysis cycle failed", error=str(e))

            if not self._is_current(run_id):
                break

            try:
                await asyncio.wait_for(wake.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        log.info("Analysis loop stopped")

    async def _run_cycle(self, run_id: int) -> None:
        """One sample -> recognize -> classify -> publish pass."""
        source = self._source
        if source is None:
            return

        config = self.config_store.get()
        start_ms = max(0, self.clock.position_ms())
        window_ms = self.config.window_ms

        try:
            audio = await asyncio.to_thread(
                self.sampler.extract, source, start_ms, window_ms
            )
        except NoAudioTrackError as e:
            logger.debug("Cycle skipped", reason="no_audio_track", error=str(e))
            return

        if not audio:
            logger.debug("Cycle skipped", reason="empty_audio", start_ms=start_ms)
            return

        text = await self.speech_router.recognize(audio, config)
        segment = TranscriptSegment(text=text, start_ms=start_ms, duration_ms=window_ms)
        if segment.is_silence:
            logger.debug("Cycle skipped", reason="silence", start_ms=start_ms)
            return

        result = await self.emotion_router.classify(segment.text, config)

        if not self._is_current(run_id):
            logger.debug("Discarding result of halted run", run_id=run_id)
            return

        self.transcript.publish(segment)
        self.emotion.publish(result)
        logger.info(
            "Emotion analyzed",
            emotion=result.emotion.value,
            confidence=round(result.confidence, 3),
            backend=result.source_backend.value,
            start_ms=start_ms,
        )


# ══════════════════════════════════════════════════════════════
# Factory
# ══════════════════════════════════════════════════════════════


def create_pipeline(
    clock: PlaybackClock,
    source: Settings | None = None,
    config_store: ConfigStore | None = None,
) -> EmotionPipeline:
    """Assemble a pipeline with default backends from application settings."""
    source = source or settings
    store = config_store or ConfigStore(BackendConfig.from_settings(source))

    emotion = EmotionRouter()
    if source.ondevice_model_path:
        try:
            emotion.ondevice.load_model(source.ondevice_model_path)
        except ModelLoadError as e:
            logger.warning("Startup model not loaded", error=str(e))

    return EmotionPipeline(
        sampler=AudioSampler(),
        speech=SpeechRouter(),
        emotion=emotion,
        config_store=store,
        clock=clock,
        config=PipelineConfig.from_settings(source),
    )
