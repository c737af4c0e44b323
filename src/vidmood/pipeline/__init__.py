"""
vidmood Analysis Pipeline

Periodically samples audio from a playing video, transcribes it and
classifies the emotion of what was said.
"""

from .orchestrator import EmotionPipeline, PipelineConfig, create_pipeline
from .playback import PlaybackClock, WallClockPlayer
from .publisher import StatePublisher

__all__ = [
    "EmotionPipeline",
    "PipelineConfig",
    "create_pipeline",
    "PlaybackClock",
    "WallClockPlayer",
    "StatePublisher",
]
