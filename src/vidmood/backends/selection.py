"""
Backend Selection and Fallback

Ordered policies decide which backend serves each call. Routers apply the
policy, and degrade to the next-safest backend when the chosen one fails.

Speech is remote-first. Emotion honours the prefer-offline toggle first;
the two orders intentionally differ.
"""

from enum import Enum

import structlog

from vidmood.config import BackendConfig
from vidmood.core.models import BackendTag, EmotionResult

from .base import EmotionBackend, SpeechBackend
from .llm import BaiduEmotionBackend, OpenAIEmotionBackend
from .ondevice import OnDeviceEmotionBackend
from .rules import MockEmotionBackend, RuleBasedEmotionBackend
from .speech import BaiduSpeechBackend, GoogleSpeechBackend, MockSpeechBackend

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Policies
# ══════════════════════════════════════════════════════════════


class SpeechBackendKind(str, Enum):
    """Speech backend variants in selection order."""

    BAIDU = "baidu"
    GOOGLE = "google"
    MOCK = "mock"


def select_speech_backend(config: BackendConfig) -> SpeechBackendKind:
    if config.has_baidu_speech:
        return SpeechBackendKind.BAIDU
    if config.has_google_speech:
        return SpeechBackendKind.GOOGLE
    return SpeechBackendKind.MOCK


def last_resort_emotion_backend(config: BackendConfig) -> BackendTag:
    return BackendTag.MOCK if config.mock_emotion else BackendTag.RULES


def select_emotion_backend(config: BackendConfig, model_loaded: bool) -> BackendTag:
    """
    1. prefer-offline and a loaded model -> on-device
    2. OpenAI credential -> OpenAI
    3. Baidu credential -> Baidu
    4. loaded model -> on-device
    5. rules (or mock when the demo toggle is on)
    """
    if config.prefer_offline and model_loaded:
        return BackendTag.ONDEVICE
    if config.has_openai:
        return BackendTag.OPENAI
    if config.has_baidu_llm:
        return BackendTag.BAIDU
    if model_loaded:
        return BackendTag.ONDEVICE
    return last_resort_emotion_backend(config)


def emotion_fallback(
    failed: BackendTag,
    config: BackendConfig,
    model_loaded: bool,
) -> BackendTag:
    """Backend to try after `failed` raised."""
    if model_loaded and failed is not BackendTag.ONDEVICE:
        return BackendTag.ONDEVICE
    return last_resort_emotion_backend(config)


# ══════════════════════════════════════════════════════════════
# Routers
# ══════════════════════════════════════════════════════════════


class SpeechRouter:
    """Recognizes speech with the selected backend; never raises."""

    def __init__(
        self,
        baidu: SpeechBackend | None = None,
        google: SpeechBackend | None = None,
        mock: SpeechBackend | None = None,
    ) -> None:
        self._backends: dict[SpeechBackendKind, SpeechBackend] = {
            SpeechBackendKind.BAIDU: baidu or BaiduSpeechBackend(),
            SpeechBackendKind.GOOGLE: google or GoogleSpeechBackend(),
            SpeechBackendKind.MOCK: mock or MockSpeechBackend(),
        }

    def backend(self, kind: SpeechBackendKind) -> SpeechBackend:
        return self._backends[kind]

    async def recognize(self, audio: bytes, config: BackendConfig) -> str:
        kind = select_speech_backend(config)
        backend = self._backends[kind]

        try:
            return await backend.recognize(audio, config)
        except Exception as e:
            if kind is SpeechBackendKind.MOCK:
                raise
            logger.warning(
                "Speech backend failed, using mock",
                backend=backend.name,
                error=str(e),
            )
            return await self._backends[SpeechBackendKind.MOCK].recognize(audio, config)

    async def close(self) -> None:
        for backend in self._backends.values():
            await backend.close()


class EmotionRouter:
    """Classifies emotion with the selected backend; never raises."""

    def __init__(
        self,
        openai: EmotionBackend | None = None,
        baidu: EmotionBackend | None = None,
        ondevice: OnDeviceEmotionBackend | None = None,
        rules: EmotionBackend | None = None,
        mock: EmotionBackend | None = None,
    ) -> None:
        self.ondevice = ondevice or OnDeviceEmotionBackend()
        self._backends: dict[BackendTag, EmotionBackend] = {
            BackendTag.OPENAI: openai or OpenAIEmotionBackend(),
            BackendTag.BAIDU: baidu or BaiduEmotionBackend(),
            BackendTag.ONDEVICE: self.ondevice,
            BackendTag.RULES: rules or RuleBasedEmotionBackend(),
            BackendTag.MOCK: mock or MockEmotionBackend(),
        }

    def backend(self, tag: BackendTag) -> EmotionBackend:
        return self._backends[tag]

    def select(self, config: BackendConfig) -> BackendTag:
        return select_emotion_backend(config, self.ondevice.is_loaded)

    async def classify(self, text: str, config: BackendConfig) -> EmotionResult:
        tag = self.select(config)

        try:
            return await self._backends[tag].classify(text, config)
        except Exception as e:
            fallback = emotion_fallback(tag, config, self.ondevice.is_loaded)
            logger.warning(
                "Emotion backend failed, falling back",
                backend=tag.value,
                fallback=fallback.value,
                error=str(e),
            )

        try:
            return await self._backends[fallback].classify(text, config)
        except Exception as e:
            last_resort = last_resort_emotion_backend(config)
            logger.warning(
                "Emotion fallback failed, using last resort",
                backend=fallback.value,
                fallback=last_resort.value,
                error=str(e),
            )
            return await self._backends[last_resort].classify(text, config)

    async def close(self) -> None:
        for backend in self._backends.values():
            await backend.close()
