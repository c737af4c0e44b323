"""
Local Emotion Backends

Deterministic keyword classification and a random mock for demos.
"""

import random

from vidmood.config import BackendConfig
from vidmood.core.keywords import extract_keywords, text_scan
from vidmood.core.models import BackendTag, EmotionLabel, EmotionResult

from .base import EmotionBackend


class RuleBasedEmotionBackend(EmotionBackend):
    """Keyword-count classifier; never fails."""

    tag = BackendTag.RULES

    async def classify(self, text: str, config: BackendConfig) -> EmotionResult:
        return text_scan(text, self.tag)


class MockEmotionBackend(EmotionBackend):
    """Random label with plausible-looking scores."""

    tag = BackendTag.MOCK

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    async def classify(self, text: str, config: BackendConfig) -> EmotionResult:
        return EmotionResult(
            emotion=self._rng.choice(EmotionLabel.ordered()),
            confidence=self._rng.uniform(0.7, 0.95),
            intensity=self._rng.uniform(0.3, 0.9),
            keywords=extract_keywords(text),
            source_backend=self.tag,
        )
