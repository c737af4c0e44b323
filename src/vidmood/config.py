"""
vidmood Configuration Management

Static settings come from environment variables via pydantic-settings.
Backend credentials and toggles live in an immutable BackendConfig snapshot
that can be swapped at runtime through a ConfigStore.
"""

import threading
from functools import lru_cache
from typing import Any

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ══════════════════════════════════════════════════════════════
    # Application
    # ══════════════════════════════════════════════════════════════
    app_name: str = "vidmood"
    debug: bool = False
    log_level: str = "INFO"

    # ══════════════════════════════════════════════════════════════
    # Remote LLM (emotion)
    # ══════════════════════════════════════════════════════════════
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-3.5-turbo"
    openai_temperature: float = 0.3

    baidu_llm_access_token: str = ""
    baidu_llm_url: str = (
        "https://aip.baidubce.com/rpc/2.0/ai_custom/v1/wenxinworkshop/chat/completions"
    )

    # ══════════════════════════════════════════════════════════════
    # Remote Speech Recognition
    # ══════════════════════════════════════════════════════════════
    baidu_speech_token: str = ""
    baidu_speech_url: str = "https://vop.baidu.com/server_api"
    baidu_speech_dev_pid: int = 1537  # Mandarin
    baidu_speech_cuid: str = "vidmood"

    google_speech_api_key: str = ""
    google_speech_url: str = "https://speech.googleapis.com/v1/speech:recognize"

    speech_sample_rate: int = 16000
    speech_language: str = "zh-CN"

    # ══════════════════════════════════════════════════════════════
    # HTTP Timeouts (seconds)
    # ══════════════════════════════════════════════════════════════
    http_connect_timeout: float = 30.0
    http_read_timeout: float = 60.0
    http_write_timeout: float = 60.0

    # ══════════════════════════════════════════════════════════════
    # On-device Model
    # ══════════════════════════════════════════════════════════════
    ondevice_model_dir: str = "models"
    ondevice_model_path: str = ""
    ondevice_threads: int = 4
    prefer_offline_model: bool = False

    # ══════════════════════════════════════════════════════════════
    # Pipeline
    # ══════════════════════════════════════════════════════════════
    analysis_interval_ms: int = 5000
    audio_window_ms: int = 10000
    mock_emotion: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()


# ══════════════════════════════════════════════════════════════
# Runtime Backend Configuration
# ══════════════════════════════════════════════════════════════


class BackendConfig(BaseModel):
    """Credentials and routing toggles for the analysis backends."""

    model_config = {"frozen": True}

    openai_api_key: str = ""
    baidu_llm_access_token: str = ""
    baidu_speech_token: str = ""
    google_speech_api_key: str = ""

    prefer_offline: bool = False
    mock_emotion: bool = False

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_baidu_llm(self) -> bool:
        return bool(self.baidu_llm_access_token)

    @property
    def has_baidu_speech(self) -> bool:
        return bool(self.baidu_speech_token)

    @property
    def has_google_speech(self) -> bool:
        return bool(self.google_speech_api_key)

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "BackendConfig":
        """Build the initial snapshot from application settings."""
        source = source or settings
        return cls(
            openai_api_key=source.openai_api_key,
            baidu_llm_access_token=source.baidu_llm_access_token,
            baidu_speech_token=source.baidu_speech_token,
            google_speech_api_key=source.google_speech_api_key,
            prefer_offline=source.prefer_offline_model,
            mock_emotion=source.mock_emotion,
        )


class ConfigStore:
    """
    Holds the current BackendConfig snapshot.

    Readers always get a complete snapshot. Writers replace the whole value,
    so concurrent readers see either the old or the new config.
    """

    def __init__(self, initial: BackendConfig | None = None) -> None:
        self._config = initial or BackendConfig()
        self._write_lock = threading.Lock()

    def get(self) -> BackendConfig:
        return self._config

    def replace(self, config: BackendConfig) -> BackendConfig:
        with self._write_lock:
            self._config = config
        return config

    def update(self, **changes: Any) -> BackendConfig:
        """Apply field changes on top of the current snapshot."""
        with self._write_lock:
            # Validate through the constructor; model_copy skips validation
            data = self._config.model_dump()
            data.update(changes)
            self._config = BackendConfig(**data)
            return self._config

    # ──────────────────────────────────────────────────────────
    # Configuration surface
    # ──────────────────────────────────────────────────────────

    def set_openai_api_key(self, api_key: str) -> BackendConfig:
        return self.update(openai_api_key=api_key)

    def set_baidu_llm_access_token(self, token: str) -> BackendConfig:
        return self.update(baidu_llm_access_token=token)

    def set_baidu_speech_token(self, token: str) -> BackendConfig:
        return self.update(baidu_speech_token=token)

    def set_google_speech_api_key(self, api_key: str) -> BackendConfig:
        return self.update(google_speech_api_key=api_key)

    def set_prefer_offline(self, enabled: bool) -> BackendConfig:
        return self.update(prefer_offline=enabled)

    def set_mock_emotion(self, enabled: bool) -> BackendConfig:
        return self.update(mock_emotion=enabled)
