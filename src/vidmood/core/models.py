"""
vidmood Core Domain Models

Value objects produced by each analysis cycle and the enums shared
across backends and the pipeline.
"""

import math
import time
from enum import Enum

from pydantic import BaseModel, Field, field_validator


MAX_KEYWORDS = 5


# ══════════════════════════════════════════════════════════════
# Enums
# ══════════════════════════════════════════════════════════════


class EmotionLabel(str, Enum):
    """The seven emotion labels, in model output order."""

    JOY = "joy"
    SADNESS = "sadness"
    ANGER = "anger"
    FEAR = "fear"
    SURPRISE = "surprise"
    DISGUST = "disgust"
    NEUTRAL = "neutral"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def ordered(cls) -> list["EmotionLabel"]:
        """Labels in the fixed order used by model outputs."""
        return list(cls)

    @classmethod
    def parse(cls, value: str) -> "EmotionLabel":
        """
        Resolve a label from an English name, a synonym or the Chinese
        display name.

        Raises:
            ValueError: if the value does not name any label
        """
        key = str(value).strip().lower()
        label = _ALIASES.get(key)
        if label is None:
            raise ValueError(f"Unknown emotion label: {value!r}")
        return label


_DISPLAY_NAMES = {
    EmotionLabel.JOY: "喜悦",
    EmotionLabel.SADNESS: "悲伤",
    EmotionLabel.ANGER: "愤怒",
    EmotionLabel.FEAR: "恐惧",
    EmotionLabel.SURPRISE: "惊讶",
    EmotionLabel.DISGUST: "厌恶",
    EmotionLabel.NEUTRAL: "中性",
}

_SYNONYMS = {
    EmotionLabel.JOY: ("happy", "happiness", "joyful"),
    EmotionLabel.SADNESS: ("sad",),
    EmotionLabel.ANGER: ("angry",),
    EmotionLabel.FEAR: ("fearful", "afraid", "scared"),
    EmotionLabel.SURPRISE: ("surprised",),
    EmotionLabel.DISGUST: ("disgusted",),
    EmotionLabel.NEUTRAL: ("calm",),
}

_ALIASES: dict[str, EmotionLabel] = {}
for _label in EmotionLabel:
    _ALIASES[_label.value] = _label
    _ALIASES[_DISPLAY_NAMES[_label]] = _label
    for _synonym in _SYNONYMS[_label]:
        _ALIASES[_synonym] = _label


class PipelineState(str, Enum):
    """Lifecycle state of the emotion pipeline."""

    IDLE = "idle"
    LOADING = "loading"
    ANALYZING = "analyzing"
    PAUSED = "paused"
    ERROR = "error"


class BackendTag(str, Enum):
    """Identifies which emotion backend produced a result."""

    OPENAI = "openai"
    BAIDU = "baidu"
    ONDEVICE = "ondevice"
    RULES = "rules"
    MOCK = "mock"


# ══════════════════════════════════════════════════════════════
# Value Objects
# ══════════════════════════════════════════════════════════════


def _clamp_unit(value: float) -> float:
    value = float(value)
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


class EmotionResult(BaseModel):
    """Emotion classification for one transcript."""

    model_config = {"frozen": True}

    emotion: EmotionLabel
    confidence: float
    intensity: float
    keywords: tuple[str, ...] = ()
    timestamp: float = Field(default_factory=time.monotonic)
    source_backend: BackendTag

    @field_validator("confidence", "intensity", mode="before")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        return _clamp_unit(v)

    @field_validator("keywords", mode="before")
    @classmethod
    def limit_keywords(cls, v) -> tuple[str, ...]:
        return tuple(str(k) for k in list(v or ())[:MAX_KEYWORDS])


class TranscriptSegment(BaseModel):
    """Recognized text for one sampled audio window."""

    model_config = {"frozen": True}

    text: str = ""
    start_ms: int = Field(..., ge=0)
    duration_ms: int = Field(..., gt=0)

    @property
    def is_silence(self) -> bool:
        return not self.text
