"""
Unit Tests for Audio Sampler

Tests window extraction against an in-memory extractor, and the
ffmpeg-backed extractor's probing.
"""

from unittest.mock import MagicMock, patch

import ffmpeg
import pytest

from vidmood.audio.sampler import AudioSampler, FFmpegMediaExtractor, TrackInfo
from vidmood.core.errors import MediaOpenError, NoAudioTrackError


# ══════════════════════════════════════════════════════════════
# AudioSampler Tests
# ══════════════════════════════════════════════════════════════


class TestAudioSampler:
    """Test AudioSampler.extract."""

    def test_reads_window_from_preceding_sync_point(self, fake_extractor):
        """Start 250ms seeks to the 200ms boundary and stops before 550ms."""
        sampler = AudioSampler(extractor_factory=lambda source: fake_extractor)

        audio = sampler.extract("clip.mp4", start_ms=250, duration_ms=300)

        assert audio == b"<2><3><4><5>"
        assert fake_extractor.seeks == [250_000]
        assert fake_extractor.release_count == 1

    def test_selects_first_audio_track(self, extractor_cls):
        """Test the first audio track is selected."""
        extractor = extractor_cls(
            tracks=[
                TrackInfo(index=0, media_type="video"),
                TrackInfo(index=1, media_type="audio"),
                TrackInfo(index=2, media_type="audio"),
            ]
        )
        sampler = AudioSampler(extractor_factory=lambda source: extractor)

        sampler.extract("clip.mp4", start_ms=0, duration_ms=100)

        assert extractor.selected == 1

    def test_stops_at_end_of_stream(self, extractor_cls):
        """Test reading stops at the end of the stream."""
        extractor = extractor_cls(frames=5)
        sampler = AudioSampler(extractor_factory=lambda source: extractor)

        audio = sampler.extract("clip.mp4", start_ms=300, duration_ms=10_000)

        assert audio == b"<3><4>"

    def test_start_past_end_is_empty(self, extractor_cls):
        """Test a start past the end gives no audio."""
        extractor = extractor_cls(frames=5)
        sampler = AudioSampler(extractor_factory=lambda source: extractor)

        assert sampler.extract("clip.mp4", start_ms=60_000, duration_ms=1000) == b""

    def test_no_audio_track_raises(self, extractor_cls):
        """Test a video without audio raises NoAudioTrackError."""
        extractor = extractor_cls(tracks=[TrackInfo(index=0, media_type="video")])
        sampler = AudioSampler(extractor_factory=lambda source: extractor)

        with pytest.raises(NoAudioTrackError):
            sampler.extract("clip.mp4", start_ms=0, duration_ms=1000)

        assert extractor.release_count == 1

    def test_read_error_returns_empty(self, extractor_cls):
        """Test a read error gives empty audio."""
        extractor = extractor_cls(fail_at_us=300_000)
        sampler = AudioSampler(extractor_factory=lambda source: extractor)

        audio = sampler.extract("clip.mp4", start_ms=0, duration_ms=1000)

        assert audio == b""
        assert extractor.release_count == 1

    def test_open_failure_propagates(self):
        """Test an open failure propagates."""
        def failing_factory(source):
            raise MediaOpenError("unreadable")

        sampler = AudioSampler(extractor_factory=failing_factory)

        with pytest.raises(MediaOpenError):
            sampler.extract("missing.mp4", start_ms=0, duration_ms=1000)

    def test_probe_lists_tracks_and_releases(self, fake_extractor):
        """Test probe lists tracks and releases the extractor."""
        sampler = AudioSampler(extractor_factory=lambda source: fake_extractor)

        tracks = sampler.probe("clip.mp4")

        assert [t.media_type for t in tracks] == ["video", "audio"]
        assert fake_extractor.release_count == 1


# ══════════════════════════════════════════════════════════════
# FFmpegMediaExtractor Tests
# ══════════════════════════════════════════════════════════════


class TestFFmpegMediaExtractor:
    """Test probing through ffmpeg (ffprobe mocked)."""

    def test_probe_failure_is_open_error(self):
        """Test an ffprobe failure raises MediaOpenError."""
        error = ffmpeg.Error("ffprobe", b"", b"No such file or directory")

        with patch("vidmood.audio.sampler.ffmpeg.probe", side_effect=error):
            with pytest.raises(MediaOpenError) as exc_info:
                FFmpegMediaExtractor("missing.mp4")

        assert "No such file" in str(exc_info.value)

    def test_missing_ffprobe_is_open_error(self):
        """Test a missing ffprobe binary raises MediaOpenError."""
        with patch("vidmood.audio.sampler.ffmpeg.probe", side_effect=FileNotFoundError("ffprobe")):
            with pytest.raises(MediaOpenError):
                FFmpegMediaExtractor("clip.mp4")

    def test_tracks_from_probe(self):
        """Test tracks are read from probe output."""
        probe = {
            "streams": [
                {"index": 0, "codec_type": "video", "codec_name": "h264"},
                {"index": 1, "codec_type": "audio", "codec_name": "aac"},
            ],
            "format": {"duration": "12.5"},
        }

        with patch("vidmood.audio.sampler.ffmpeg.probe", return_value=probe):
            extractor = FFmpegMediaExtractor("clip.mp4")

        assert extractor.tracks() == [
            TrackInfo(index=0, media_type="video", codec="h264"),
            TrackInfo(index=1, media_type="audio", codec="aac"),
        ]
        assert extractor.duration_ms == 12500
        assert extractor.sample_time_us == -1

    def test_select_unknown_track_raises(self):
        """Test selecting an unknown track raises."""
        with patch("vidmood.audio.sampler.ffmpeg.probe", return_value={"streams": []}):
            extractor = FFmpegMediaExtractor("clip.mp4")

        with pytest.raises(ValueError):
            extractor.select_track(3)

    def test_seek_aligns_to_frame_and_streams_pcm(self):
        """Seeking decodes from the preceding 100ms boundary."""
        probe = {"streams": [{"index": 1, "codec_type": "audio"}], "format": {}}
        frame = b"\x01\x00" * 1600

        process = MagicMock()
        process.stdout.read.side_effect = [frame, frame, b""]
        process.wait.return_value = 0
        process.poll.return_value = 0

        with patch("vidmood.audio.sampler.ffmpeg.probe", return_value=probe):
            extractor = FFmpegMediaExtractor("clip.mp4")

        with patch("vidmood.audio.sampler.ffmpeg.input") as mock_input:
            mock_input.return_value.output.return_value.global_args.return_value.run_async.return_value = process
            extractor.select_track(1)
            extractor.seek_to(1_234_000)

        _, kwargs = mock_input.call_args
        assert kwargs["ss"] == pytest.approx(1.2)
        assert extractor.sample_time_us == 1_200_000
        assert extractor.read_sample() == frame

        assert extractor.advance() is True
        assert extractor.sample_time_us == 1_300_000
        assert extractor.advance() is False
        assert extractor.sample_time_us == -1

        extractor.release()
        process.stdout.close.assert_called_once()
