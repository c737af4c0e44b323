"""Audio extraction from video sources."""

from .sampler import (
    AudioSampler,
    FFmpegMediaExtractor,
    MediaExtractor,
    MediaSource,
    TrackInfo,
)

__all__ = [
    "AudioSampler",
    "FFmpegMediaExtractor",
    "MediaExtractor",
    "MediaSource",
    "TrackInfo",
]
