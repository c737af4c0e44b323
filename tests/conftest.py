"""
Pytest Configuration and Fixtures

Shared fixtures for unit tests.
"""

import asyncio
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from vidmood.audio.sampler import TrackInfo
from vidmood.config import BackendConfig, ConfigStore, Settings
from vidmood.core.errors import MediaReadError
from vidmood.core.models import BackendTag, EmotionLabel, EmotionResult


# ══════════════════════════════════════════════════════════════
# Settings Fixtures
# ══════════════════════════════════════════════════════════════


@pytest.fixture
def test_settings() -> Settings:
    """Settings with every credential cleared, independent of the environment."""
    return Settings(
        _env_file=None,
        openai_api_key="",
        baidu_llm_access_token="",
        baidu_speech_token="",
        google_speech_api_key="",
        ondevice_model_path="",
        prefer_offline_model=False,
        mock_emotion=False,
    )


@pytest.fixture
def backend_config() -> BackendConfig:
    """Snapshot with no credentials configured."""
    return BackendConfig()


@pytest.fixture
def config_store() -> ConfigStore:
    return ConfigStore()


# ══════════════════════════════════════════════════════════════
# Media Fixtures
# ══════════════════════════════════════════════════════════════


class FakeExtractor:
    """
    In-memory MediaExtractor.

    Serves `frames` samples of `frame_us` each; sample N reads as b"<N>".
    Sync points sit on every frame boundary.
    """

    def __init__(
        self,
        tracks: list[TrackInfo] | None = None,
        frames: int = 200,
        frame_us: int = 100_000,
        fail_at_us: int | None = None,
    ) -> None:
        self._tracks = tracks if tracks is not None else [
            TrackInfo(index=0, media_type="video", codec="h264"),
            TrackInfo(index=1, media_type="audio", codec="aac"),
        ]
        self.frames = frames
        self.frame_us = frame_us
        self.fail_at_us = fail_at_us

        self.selected: int | None = None
        self.seeks: list[int] = []
        self.release_count = 0
        self._time = -1

    def tracks(self) -> list[TrackInfo]:
        return list(self._tracks)

    def select_track(self, index: int) -> None:
        self.selected = index

    def seek_to(self, time_us: int) -> None:
        self.seeks.append(time_us)
        sync = time_us // self.frame_us * self.frame_us
        self._time = sync if sync < self.frames * self.frame_us else -1

    @property
    def sample_time_us(self) -> int:
        return self._time

    def read_sample(self) -> bytes:
        if self.fail_at_us is not None and self._time >= self.fail_at_us:
            raise MediaReadError("corrupt sample")
        return f"<{self._time // self.frame_us}>".encode()

    def advance(self) -> bool:
        self._time += self.frame_us
        if self._time >= self.frames * self.frame_us:
            self._time = -1
            return False
        return True

    def release(self) -> None:
        self.release_count += 1


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


# ══════════════════════════════════════════════════════════════
# Backend Fixtures
# ══════════════════════════════════════════════════════════════


def make_result(
    emotion: EmotionLabel = EmotionLabel.JOY,
    tag: BackendTag = BackendTag.OPENAI,
    confidence: float = 0.9,
) -> EmotionResult:
    return EmotionResult(
        emotion=emotion,
        confidence=confidence,
        intensity=confidence,
        keywords=["测试"],
        source_backend=tag,
    )


def make_emotion_backend(
    tag: BackendTag,
    error: Exception | None = None,
    loaded: bool = False,
) -> MagicMock:
    """Mock emotion backend returning a result tagged with its own tag."""
    backend = MagicMock()
    backend.tag = tag
    backend.is_loaded = loaded
    if error is not None:
        backend.classify = AsyncMock(side_effect=error)
    else:
        backend.classify = AsyncMock(return_value=make_result(tag=tag))
    backend.close = AsyncMock()
    return backend


def make_speech_backend(
    name: str,
    text: str = "",
    error: Exception | None = None,
) -> MagicMock:
    backend = MagicMock()
    backend.name = name
    if error is not None:
        backend.recognize = AsyncMock(side_effect=error)
    else:
        backend.recognize = AsyncMock(return_value=text)
    backend.close = AsyncMock()
    return backend


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def extractor_cls() -> type[FakeExtractor]:
    return FakeExtractor


@pytest.fixture
def result_factory() -> Callable[..., EmotionResult]:
    return make_result


@pytest.fixture
def emotion_backend_factory() -> Callable[..., MagicMock]:
    return make_emotion_backend


@pytest.fixture
def speech_backend_factory() -> Callable[..., MagicMock]:
    return make_speech_backend


@pytest.fixture
def wait_for() -> Callable:
    return wait_until
