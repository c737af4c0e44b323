"""
Speech Recognition Backends

Remote speech-to-text services (Baidu, Google) and a mock that keeps the
pipeline demonstrably live without credentials.
"""

import base64

import httpx
import structlog

from vidmood.config import BackendConfig, settings
from vidmood.core.errors import TransientBackendError

from .base import HTTPClientHolder, SpeechBackend, post_json

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Baidu Speech
# ══════════════════════════════════════════════════════════════


class BaiduSpeechBackend(SpeechBackend):
    """
    Baidu short-speech recognition.

    Sends base64 PCM (16 kHz mono) and joins the returned candidates.
    """

    name = "baidu_speech"

    def __init__(
        self,
        url: str | None = None,
        sample_rate: int | None = None,
        dev_pid: int | None = None,
        cuid: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url or settings.baidu_speech_url
        self.sample_rate = sample_rate or settings.speech_sample_rate
        self.dev_pid = dev_pid or settings.baidu_speech_dev_pid
        self.cuid = cuid or settings.baidu_speech_cuid
        self._http = HTTPClientHolder(client)

    async def recognize(self, audio: bytes, config: BackendConfig) -> str:
        if not config.baidu_speech_token:
            raise TransientBackendError(self.name, "access token not configured")

        payload = {
            "format": "pcm",
            "rate": self.sample_rate,
            "channel": 1,
            "token": config.baidu_speech_token,
            "speech": base64.b64encode(audio).decode("ascii"),
            "len": len(audio),
            "cuid": self.cuid,
            "dev_pid": self.dev_pid,
        }

        client = await self._http.get_client()
        data = await post_json(client, self.url, self.name, json=payload)

        err_no = data.get("err_no", -1)
        if err_no != 0:
            raise TransientBackendError(
                self.name, f"err_no={err_no} {data.get('err_msg', '')}".strip()
            )

        text = " ".join(data.get("result") or [])
        logger.debug("Baidu speech recognized", chars=len(text))
        return text

    async def close(self) -> None:
        await self._http.close()


# ══════════════════════════════════════════════════════════════
# Google Speech
# ══════════════════════════════════════════════════════════════


class GoogleSpeechBackend(SpeechBackend):
    """Google Cloud Speech-to-Text (v1 recognize)."""

    name = "google_speech"

    def __init__(
        self,
        url: str | None = None,
        sample_rate: int | None = None,
        language: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url or settings.google_speech_url
        self.sample_rate = sample_rate or settings.speech_sample_rate
        self.language = language or settings.speech_language
        self._http = HTTPClientHolder(client)

    async def recognize(self, audio: bytes, config: BackendConfig) -> str:
        if not config.google_speech_api_key:
            raise TransientBackendError(self.name, "API key not configured")

        payload = {
            "config": {
                "encoding": "LINEAR16",
                "sampleRateHertz": self.sample_rate,
                "languageCode": self.language,
                "enableAutomaticPunctuation": True,
            },
            "audio": {"content": base64.b64encode(audio).decode("ascii")},
        }

        client = await self._http.get_client()
        data = await post_json(
            client,
            self.url,
            self.name,
            params={"key": config.google_speech_api_key},
            json=payload,
        )

        # No results means the service heard no speech
        results = data.get("results") or []
        if not results:
            return ""

        alternatives = results[0].get("alternatives") or []
        if not alternatives:
            return ""
        return alternatives[0].get("transcript", "")

    async def close(self) -> None:
        await self._http.close()


# ══════════════════════════════════════════════════════════════
# Mock
# ══════════════════════════════════════════════════════════════


class MockSpeechBackend(SpeechBackend):
    """Returns a fixed placeholder transcript."""

    name = "mock_speech"

    PLACEHOLDER = "这是一个模拟的语音识别结果"

    def __init__(self, placeholder: str | None = None) -> None:
        self.placeholder = placeholder or self.PLACEHOLDER

    async def recognize(self, audio: bytes, config: BackendConfig) -> str:
        return self.placeholder
