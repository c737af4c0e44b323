"""
Audio Sampler

Pulls a bounded window of raw audio out of a video source. The sampling
algorithm works against the MediaExtractor contract; FFmpegMediaExtractor is
the default implementation and decodes through ffmpeg.
"""

import os
from dataclasses import dataclass
from typing import IO, Any, Callable, Protocol, Sequence

import ffmpeg
import structlog

from vidmood.config import settings
from vidmood.core.errors import MediaOpenError, MediaReadError, NoAudioTrackError

logger = structlog.get_logger()

MediaSource = str | os.PathLike


# ══════════════════════════════════════════════════════════════
# Extractor Contract
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TrackInfo:
    """One elementary stream inside a media container."""

    index: int
    media_type: str  # audio, video, subtitle, data
    codec: str | None = None

    @property
    def is_audio(self) -> bool:
        return self.media_type == "audio"


class MediaExtractor(Protocol):
    """Demuxer-style access to the samples of one track."""

    def tracks(self) -> Sequence[TrackInfo]:
        ...

    def select_track(self, index: int) -> None:
        ...

    def seek_to(self, time_us: int) -> None:
        """Position at the nearest sync point at or before time_us."""
        ...

    @property
    def sample_time_us(self) -> int:
        """Timestamp of the current sample, -1 at end of stream."""
        ...

    def read_sample(self) -> bytes:
        ...

    def advance(self) -> bool:
        ...

    def release(self) -> None:
        ...


ExtractorFactory = Callable[[MediaSource], MediaExtractor]


# ══════════════════════════════════════════════════════════════
# FFmpeg Extractor
# ══════════════════════════════════════════════════════════════


class FFmpegMediaExtractor:
    """
    MediaExtractor backed by ffmpeg/ffprobe.

    The selected track is decoded to mono signed 16-bit PCM at the configured
    sample rate and served as fixed-duration frames. Every frame boundary is
    a sync point.
    """

    def __init__(
        self,
        source: MediaSource,
        sample_rate: int = 16000,
        frame_ms: int = 100,
    ) -> None:
        self.path = os.fspath(source)
        self.sample_rate = sample_rate
        self.frame_ms = frame_ms
        self._frame_bytes = sample_rate * 2 * frame_ms // 1000

        try:
            probe = ffmpeg.probe(self.path)
        except ffmpeg.Error as e:
            stderr = (e.stderr or b"").decode(errors="ignore").strip()
            raise MediaOpenError(f"Cannot open {self.path}: {stderr}") from e
        except OSError as e:
            raise MediaOpenError(f"Cannot run ffprobe for {self.path}: {e}") from e

        self._tracks = [
            TrackInfo(
                index=int(stream.get("index", position)),
                media_type=stream.get("codec_type", "unknown"),
                codec=stream.get("codec_name"),
            )
            for position, stream in enumerate(probe.get("streams", []))
        ]
        self._duration_ms = int(float(probe.get("format", {}).get("duration", 0)) * 1000)

        self._selected: int | None = None
        self._process: Any = None
        self._frame = b""
        self._time_us = -1

    @property
    def duration_ms(self) -> int:
        return self._duration_ms

    def tracks(self) -> Sequence[TrackInfo]:
        return list(self._tracks)

    def select_track(self, index: int) -> None:
        if not any(t.index == index for t in self._tracks):
            raise ValueError(f"No track with index {index}")
        self._selected = index

    def seek_to(self, time_us: int) -> None:
        if self._selected is None:
            raise MediaReadError("No track selected")

        frame_us = self.frame_ms * 1000
        sync_us = max(0, time_us) // frame_us * frame_us

        self._stop_decoder()
        try:
            self._process = (
                ffmpeg.input(self.path, ss=sync_us / 1_000_000)
                .output(
                    "pipe:",
                    format="s16le",
                    acodec="pcm_s16le",
                    ac=1,
                    ar=self.sample_rate,
                    map=f"0:{self._selected}",
                )
                .global_args("-loglevel", "error", "-nostats")
                .run_async(pipe_stdout=True, pipe_stderr=True)
            )
        except OSError as e:
            raise MediaReadError(f"Cannot start ffmpeg: {e}") from e

        self._frame = self._read_frame()
        self._time_us = sync_us if self._frame else -1

    @property
    def sample_time_us(self) -> int:
        return self._time_us

    def read_sample(self) -> bytes:
        if self._time_us < 0:
            raise MediaReadError("Read past end of stream")
        return self._frame

    def advance(self) -> bool:
        if self._time_us < 0:
            return False
        self._frame = self._read_frame()
        if not self._frame:
            self._time_us = -1
            return False
        self._time_us += self.frame_ms * 1000
        return True

    def release(self) -> None:
        self._stop_decoder()
        self._selected = None
        self._time_us = -1

    def _read_frame(self) -> bytes:
        stdout: IO[bytes] = self._process.stdout
        try:
            data = stdout.read(self._frame_bytes)
        except (OSError, ValueError) as e:
            raise MediaReadError(f"Decoder read failed: {e}") from e

        if not data:
            returncode = self._process.wait()
            if returncode != 0:
                stderr = self._process.stderr.read().decode(errors="ignore").strip()
                raise MediaReadError(f"ffmpeg exited with {returncode}: {stderr}")
        return data

    def _stop_decoder(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return
        if process.poll() is None:
            process.kill()
        for pipe in (process.stdout, process.stderr):
            if pipe is not None:
                pipe.close()
        process.wait()


# ══════════════════════════════════════════════════════════════
# Sampler
# ══════════════════════════════════════════════════════════════


def default_extractor_factory(source: MediaSource) -> MediaExtractor:
    return FFmpegMediaExtractor(source, sample_rate=settings.speech_sample_rate)


class AudioSampler:
    """
    Extracts bounded audio windows from a media source.

    Usage:
        sampler = AudioSampler()
        pcm = sampler.extract("clip.mp4", start_ms=5000, duration_ms=10000)
    """

    def __init__(self, extractor_factory: ExtractorFactory | None = None) -> None:
        self._open = extractor_factory or default_extractor_factory

    def probe(self, source: MediaSource) -> list[TrackInfo]:
        """
        Open the source and list its tracks.

        Raises:
            MediaOpenError: if the source cannot be opened
        """
        extractor = self._open(source)
        try:
            return list(extractor.tracks())
        finally:
            extractor.release()

    def extract(self, source: MediaSource, start_ms: int, duration_ms: int) -> bytes:
        """
        Read the audio samples covering [start_ms, start_ms + duration_ms).

        Reading starts at the sync point at or before start_ms. Read failures
        yield empty bytes.

        Raises:
            MediaOpenError: if the source cannot be opened
            NoAudioTrackError: if the source has no audio track
        """
        log = logger.bind(source=os.fspath(source), start_ms=start_ms)
        extractor = self._open(source)

        try:
            track = next((t for t in extractor.tracks() if t.is_audio), None)
            if track is None:
                raise NoAudioTrackError(f"No audio track in {os.fspath(source)}")

            extractor.select_track(track.index)
            end_us = (start_ms + duration_ms) * 1000
            chunks: list[bytes] = []

            try:
                extractor.seek_to(start_ms * 1000)
                while 0 <= extractor.sample_time_us < end_us:
                    chunks.append(extractor.read_sample())
                    if not extractor.advance():
                        break
            except (MediaReadError, OSError) as e:
                log.warning("Audio read failed, returning empty segment", error=str(e))
                return b""

            audio = b"".join(chunks)
            log.debug("Audio segment extracted", bytes=len(audio), chunks=len(chunks))
            return audio

        finally:
            extractor.release()
