"""
vidmood CLI

Command-line interface for video emotion analysis.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
import structlog

from vidmood import __version__
from vidmood.audio.sampler import AudioSampler, FFmpegMediaExtractor
from vidmood.backends.selection import EmotionRouter
from vidmood.config import BackendConfig, ConfigStore, settings
from vidmood.core.errors import MediaOpenError, ModelLoadError, NoAudioTrackError
from vidmood.core.models import EmotionResult, PipelineState, TranscriptSegment
from vidmood.pipeline import WallClockPlayer, create_pipeline

logger = structlog.get_logger()


def _format_ms(ms: int) -> str:
    seconds = ms // 1000
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def _store_with_overrides(prefer_offline: bool, mock_emotion: bool) -> ConfigStore:
    store = ConfigStore(BackendConfig.from_settings())
    if prefer_offline:
        store.set_prefer_offline(True)
    if mock_emotion:
        store.set_mock_emotion(True)
    return store


# ══════════════════════════════════════════════════════════════
# CLI Group
# ══════════════════════════════════════════════════════════════


@click.group()
@click.version_option(version=__version__, prog_name="vidmood")
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """vidmood - Emotion analysis for the speech in a video."""
    if debug:
        import logging
        logging.basicConfig(level=logging.DEBUG)
        structlog.configure(
            wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        )


# ══════════════════════════════════════════════════════════════
# Analysis Commands
# ══════════════════════════════════════════════════════════════


@cli.command()
@click.argument("video", type=click.Path(exists=True, path_type=Path))
@click.option("--interval", default=None, type=int, help="Milliseconds between analysis cycles")
@click.option("--window", default=None, type=int, help="Milliseconds of audio per cycle")
@click.option("--start", default=0, type=int, help="Playback start position in milliseconds")
@click.option(
    "--model",
    "-m",
    type=click.Path(dir_okay=False, resolve_path=True, path_type=Path),
    help="On-device model (.onnx/.tflite); relative paths are taken from the working directory",
)
@click.option("--prefer-offline/--no-prefer-offline", default=False, help="Prefer the on-device model")
@click.option("--mock-emotion/--no-mock-emotion", default=False, help="Random emotions when no backend is configured")
def analyze(
    video: Path,
    interval: Optional[int],
    window: Optional[int],
    start: int,
    model: Optional[Path],
    prefer_offline: bool,
    mock_emotion: bool,
) -> None:
    """Play a video in real time and report the emotion of its speech.

    VIDEO: Path to the video (or audio) file to analyze
    """
    try:
        extractor = FFmpegMediaExtractor(video)
    except MediaOpenError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    duration_ms = extractor.duration_ms
    extractor.release()

    click.echo(f"Analyzing: {video} ({_format_ms(duration_ms)})")

    def on_transcript(segment: TranscriptSegment | None) -> None:
        if segment is not None:
            click.echo(f"[{_format_ms(segment.start_ms)}] {segment.text}")

    def on_emotion(result: EmotionResult | None) -> None:
        if result is not None:
            keywords = ", ".join(result.keywords)
            click.echo(
                f"    {result.emotion.display_name} ({result.emotion.value}) "
                f"confidence={result.confidence:.2f} intensity={result.intensity:.2f} "
                f"via {result.source_backend.value}"
                + (f" [{keywords}]" if keywords else "")
            )

    async def run_analysis() -> int:
        player = WallClockPlayer(duration_ms=duration_ms, start_ms=start)
        pipeline = create_pipeline(
            player,
            config_store=_store_with_overrides(prefer_offline, mock_emotion),
        )
        if interval is not None:
            pipeline.config.interval_ms = interval
        if window is not None:
            pipeline.config.window_ms = window

        def on_state(state: PipelineState) -> None:
            if state is PipelineState.ERROR:
                click.echo(f"✗ Pipeline error: {pipeline.last_error}", err=True)

        try:
            if model:
                try:
                    fmt = await pipeline.load_model(model)
                except ModelLoadError as e:
                    click.echo(f"✗ {e}", err=True)
                    return 1
                click.echo(f"Model: {model} ({fmt.value})")

            pipeline.state.subscribe(on_state)
            pipeline.transcript.subscribe(on_transcript)
            pipeline.emotion.subscribe(on_emotion)
            player.add_ended_listener(pipeline.on_playback_ended)

            if not await pipeline.load_source(video):
                return 1

            player.play()
            pipeline.start_analysis()
            await player.wait_until_ended()
            return 0
        finally:
            await pipeline.close()

    exit_code = asyncio.run(run_analysis())
    if exit_code:
        sys.exit(exit_code)
    click.echo("\n✓ Playback finished")


@cli.command()
@click.argument("text")
@click.option(
    "--model",
    "-m",
    type=click.Path(dir_okay=False, resolve_path=True, path_type=Path),
    help="On-device model (.onnx/.tflite); relative paths are taken from the working directory",
)
@click.option("--prefer-offline/--no-prefer-offline", default=False, help="Prefer the on-device model")
@click.option("--mock-emotion/--no-mock-emotion", default=False, help="Random emotions when no backend is configured")
def classify(
    text: str,
    model: Optional[Path],
    prefer_offline: bool,
    mock_emotion: bool,
) -> None:
    """Classify the emotion of TEXT and print the result as JSON."""
    store = _store_with_overrides(prefer_offline, mock_emotion)

    async def run_classify() -> EmotionResult:
        router = EmotionRouter()
        try:
            if model:
                router.ondevice.load_model(model)
            return await router.classify(text, store.get())
        finally:
            await router.close()

    try:
        result = asyncio.run(run_classify())
    except ModelLoadError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))


@cli.command()
@click.argument("video", type=click.Path(exists=True, path_type=Path))
@click.option("--start", "-s", default=0, type=int, help="Window start in milliseconds")
@click.option("--duration", "-d", default=None, type=int, help="Window length in milliseconds")
@click.option("--output", "-o", type=click.Path(path_type=Path), required=True, help="Output PCM file")
def sample(video: Path, start: int, duration: Optional[int], output: Path) -> None:
    """Extract a raw PCM audio window from VIDEO.

    The output is mono signed 16-bit little-endian PCM at the configured
    speech sample rate.
    """
    duration = duration or settings.audio_window_ms

    try:
        audio = AudioSampler().extract(video, start, duration)
    except (MediaOpenError, NoAudioTrackError) as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    if not audio:
        click.echo("✗ No audio could be read from the requested window", err=True)
        sys.exit(1)

    output.write_bytes(audio)
    click.echo(f"✓ Wrote {len(audio)} bytes to {output}")


# ══════════════════════════════════════════════════════════════
# Configuration
# ══════════════════════════════════════════════════════════════


@cli.command()
def config() -> None:
    """Show current configuration."""
    click.echo("vidmood Configuration\n")

    config_items = [
        ("Debug", str(settings.debug)),
        ("OpenAI API Key", settings.openai_api_key),
        ("OpenAI Model", settings.openai_model),
        ("Baidu LLM Token", settings.baidu_llm_access_token),
        ("Baidu Speech Token", settings.baidu_speech_token),
        ("Google Speech Key", settings.google_speech_api_key),
        ("Speech Language", settings.speech_language),
        ("Model Directory", settings.ondevice_model_dir),
        ("Startup Model", settings.ondevice_model_path or "Not set"),
        ("Prefer Offline", str(settings.prefer_offline_model)),
        ("Mock Emotion", str(settings.mock_emotion)),
        ("Interval (ms)", str(settings.analysis_interval_ms)),
        ("Window (ms)", str(settings.audio_window_ms)),
    ]

    for key, value in config_items:
        # Mask sensitive values
        if "key" in key.lower() or "token" in key.lower():
            value = "***" if value else "Not set"
        click.echo(f"  {key:20} {value}")


# ══════════════════════════════════════════════════════════════
# Entry Point
# ══════════════════════════════════════════════════════════════


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
