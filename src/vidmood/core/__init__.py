"""Core domain models and shared utilities."""

from .errors import (
    MediaOpenError,
    MediaReadError,
    ModelLoadError,
    NoAudioTrackError,
    ParseError,
    TransientBackendError,
    VidmoodError,
)
from .keywords import EMOTION_KEYWORDS, extract_keywords, score_emotions, text_scan
from .models import (
    BackendTag,
    EmotionLabel,
    EmotionResult,
    PipelineState,
    TranscriptSegment,
)

__all__ = [
    "BackendTag",
    "EmotionLabel",
    "EmotionResult",
    "PipelineState",
    "TranscriptSegment",
    "EMOTION_KEYWORDS",
    "extract_keywords",
    "score_emotions",
    "text_scan",
    "VidmoodError",
    "TransientBackendError",
    "ParseError",
    "NoAudioTrackError",
    "MediaOpenError",
    "MediaReadError",
    "ModelLoadError",
]
