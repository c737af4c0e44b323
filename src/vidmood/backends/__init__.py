"""
Speech and emotion backends.

Remote services are tried first when credentials are configured; local
backends keep the pipeline producing results without any.
"""

from .base import EmotionBackend, HTTPClientHolder, SpeechBackend
from .llm import BaiduEmotionBackend, OpenAIEmotionBackend
from .ondevice import ModelFormat, OnDeviceEmotionBackend
from .rules import MockEmotionBackend, RuleBasedEmotionBackend
from .selection import (
    EmotionRouter,
    SpeechBackendKind,
    SpeechRouter,
    emotion_fallback,
    select_emotion_backend,
    select_speech_backend,
)
from .speech import BaiduSpeechBackend, GoogleSpeechBackend, MockSpeechBackend

__all__ = [
    "EmotionBackend",
    "SpeechBackend",
    "HTTPClientHolder",
    # Emotion
    "OpenAIEmotionBackend",
    "BaiduEmotionBackend",
    "OnDeviceEmotionBackend",
    "ModelFormat",
    "RuleBasedEmotionBackend",
    "MockEmotionBackend",
    # Speech
    "BaiduSpeechBackend",
    "GoogleSpeechBackend",
    "MockSpeechBackend",
    # Routing
    "SpeechBackendKind",
    "SpeechRouter",
    "EmotionRouter",
    "select_speech_backend",
    "select_emotion_backend",
    "emotion_fallback",
]
