"""
Backend Contracts

Speech and emotion backends are interchangeable implementations of one
capability each. Remote variants share an HTTP client holder.
"""

from abc import ABC, abstractmethod

import httpx

from vidmood.config import BackendConfig, Settings, settings
from vidmood.core.errors import TransientBackendError
from vidmood.core.models import BackendTag, EmotionResult


# ══════════════════════════════════════════════════════════════
# Capabilities
# ══════════════════════════════════════════════════════════════


class SpeechBackend(ABC):
    """Turns a raw audio buffer into text."""

    name: str = "base"

    @abstractmethod
    async def recognize(self, audio: bytes, config: BackendConfig) -> str:
        """Transcribe audio. An empty string means no speech."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass


class EmotionBackend(ABC):
    """Turns text into an emotion classification."""

    tag: BackendTag

    @abstractmethod
    async def classify(self, text: str, config: BackendConfig) -> EmotionResult:
        """Classify the emotion expressed by text."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass


# ══════════════════════════════════════════════════════════════
# HTTP Support
# ══════════════════════════════════════════════════════════════


def build_timeout(source: Settings | None = None) -> httpx.Timeout:
    """Connect/read/write timeout budget for remote backend calls."""
    source = source or settings
    return httpx.Timeout(
        source.http_read_timeout,
        connect=source.http_connect_timeout,
        read=source.http_read_timeout,
        write=source.http_write_timeout,
    )


class HTTPClientHolder:
    """Lazily creates and owns one httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout or build_timeout()

    @property
    def timeout(self) -> httpx.Timeout:
        return self._timeout

    async def get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    backend: str,
    **kwargs,
) -> dict:
    """
    POST a request and decode a JSON object response.

    Raises:
        TransientBackendError: on transport failure, non-2xx status or a
            body that is not a JSON object
    """
    try:
        response = await client.post(url, **kwargs)
    except httpx.HTTPError as e:
        raise TransientBackendError(backend, f"request failed: {e}") from e

    if not response.is_success:
        raise TransientBackendError(
            backend,
            f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    try:
        data = response.json()
    except ValueError as e:
        raise TransientBackendError(backend, "response is not JSON") from e

    if not isinstance(data, dict):
        raise TransientBackendError(backend, "response is not a JSON object")
    return data
