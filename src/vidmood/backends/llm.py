"""
Remote LLM Emotion Backends

Both variants ask the model for a JSON emotion verdict. When the answer is not
valid structured JSON, the keyword text-scan parser is applied to the answer
and the original text instead.
"""

import json
import re

import httpx
import structlog
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ValidationError, field_validator

from vidmood.config import BackendConfig, settings
from vidmood.core.errors import ParseError, TransientBackendError
from vidmood.core.keywords import text_scan
from vidmood.core.models import BackendTag, EmotionLabel, EmotionResult

from .base import EmotionBackend, HTTPClientHolder, post_json

logger = structlog.get_logger()


# ══════════════════════════════════════════════════════════════
# Prompts
# ══════════════════════════════════════════════════════════════


SYSTEM_PROMPT = "你是一个专业的情感分析助手，专门分析中文文本的情感倾向。"

_LABEL_CHOICES = "/".join(label.display_name for label in EmotionLabel)

EMOTION_PROMPT = """请分析以下中文文本的情感倾向，并返回JSON格式的结果：

文本：{text}

请返回以下格式的JSON：
{{
    "emotion": "主要情感（{labels}）",
    "confidence": 置信度（0.0-1.0之间的浮点数）,
    "intensity": 情感强度（0.0-1.0之间的浮点数）,
    "keywords": ["关键词1", "关键词2", "关键词3"]
}}

只输出JSON，不要其他内容。"""


def build_emotion_prompt(text: str) -> str:
    return EMOTION_PROMPT.format(text=text, labels=_LABEL_CHOICES)


# ══════════════════════════════════════════════════════════════
# Answer Parsing
# ══════════════════════════════════════════════════════════════


class EmotionPayload(BaseModel):
    """Structured verdict requested from the model."""

    emotion: EmotionLabel
    confidence: float
    intensity: float
    keywords: list[str] = []

    @field_validator("emotion", mode="before")
    @classmethod
    def parse_label(cls, v: str) -> EmotionLabel:
        return EmotionLabel.parse(v)


_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def parse_emotion_payload(answer: str) -> EmotionPayload:
    """
    Parse a model answer into an EmotionPayload.

    Raises:
        ParseError: if the answer is not a JSON object with a known label
            and numeric scores
    """
    cleaned = answer.strip()
    fenced = _CODE_FENCE.match(cleaned)
    if fenced:
        cleaned = fenced.group(1)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ParseError(f"Answer is not JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError("Answer is not a JSON object")

    try:
        return EmotionPayload.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Answer does not match emotion schema: {e}") from e


def result_from_answer(answer: str, text: str, tag: BackendTag) -> EmotionResult:
    """Build a result from a model answer, falling back to a text scan."""
    try:
        payload = parse_emotion_payload(answer)
    except ParseError as e:
        logger.warning("Structured answer unparseable, scanning text", backend=tag.value, error=str(e))
        return text_scan(text, tag, model_response=answer)

    return EmotionResult(
        emotion=payload.emotion,
        confidence=payload.confidence,
        intensity=payload.intensity,
        keywords=payload.keywords,
        source_backend=tag,
    )


# ══════════════════════════════════════════════════════════════
# OpenAI-style Backend
# ══════════════════════════════════════════════════════════════


class OpenAIEmotionBackend(EmotionBackend):
    """Chat-completions emotion classifier with Bearer authentication."""

    tag = BackendTag.OPENAI

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model or settings.openai_model
        self.base_url = base_url or settings.openai_base_url
        self.temperature = (
            settings.openai_temperature if temperature is None else temperature
        )
        self._http = HTTPClientHolder(client)

    async def classify(self, text: str, config: BackendConfig) -> EmotionResult:
        if not config.openai_api_key:
            raise TransientBackendError(self.tag.value, "API key not configured")

        llm = AsyncOpenAI(
            api_key=config.openai_api_key,
            base_url=self.base_url,
            timeout=self._http.timeout,
            max_retries=0,
            http_client=await self._http.get_client(),
        )

        try:
            completion = await llm.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_emotion_prompt(text)},
                ],
                temperature=self.temperature,
            )
        except OpenAIError as e:
            raise TransientBackendError(self.tag.value, str(e)) from e

        answer = completion.choices[0].message.content if completion.choices else None
        if not answer:
            raise TransientBackendError(self.tag.value, "empty answer")

        return result_from_answer(answer, text, self.tag)

    async def close(self) -> None:
        await self._http.close()


# ══════════════════════════════════════════════════════════════
# Baidu-style Backend
# ══════════════════════════════════════════════════════════════


class BaiduEmotionBackend(EmotionBackend):
    """ERNIE chat endpoint authenticated by an access_token query parameter."""

    tag = BackendTag.BAIDU

    def __init__(
        self,
        url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url or settings.baidu_llm_url
        self._http = HTTPClientHolder(client)

    async def classify(self, text: str, config: BackendConfig) -> EmotionResult:
        if not config.baidu_llm_access_token:
            raise TransientBackendError(self.tag.value, "access token not configured")

        client = await self._http.get_client()
        data = await post_json(
            client,
            self.url,
            self.tag.value,
            params={"access_token": config.baidu_llm_access_token},
            json={"messages": [{"role": "user", "content": build_emotion_prompt(text)}]},
        )

        answer = data.get("result")
        if not answer:
            raise TransientBackendError(
                self.tag.value, data.get("error_msg") or "empty answer"
            )

        return result_from_answer(answer, text, self.tag)

    async def close(self) -> None:
        await self._http.close()
