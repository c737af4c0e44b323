"""
Unit Tests for Remote LLM Emotion Backends

Tests answer parsing, the text-scan fallback and both remote variants
against httpx.MockTransport.
"""

import json

import httpx
import pytest

from vidmood.backends.llm import (
    BaiduEmotionBackend,
    OpenAIEmotionBackend,
    build_emotion_prompt,
    parse_emotion_payload,
    result_from_answer,
)
from vidmood.config import BackendConfig
from vidmood.core.errors import ParseError, TransientBackendError
from vidmood.core.models import BackendTag, EmotionLabel

VERDICT = {"emotion": "joy", "confidence": 0.85, "intensity": 0.7, "keywords": ["开心", "周末"]}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def chat_completion(content: str) -> dict:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-3.5-turbo",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


# ══════════════════════════════════════════════════════════════
# Prompt & Parsing Tests
# ══════════════════════════════════════════════════════════════


class TestAnswerParsing:
    """Test parse_emotion_payload and result_from_answer."""

    def test_prompt_contains_text_and_labels(self):
        """Test the user prompt embeds the text and lists every label."""
        prompt = build_emotion_prompt("今天很开心")

        assert "今天很开心" in prompt
        assert "喜悦" in prompt
        assert "中性" in prompt

    def test_plain_json(self):
        """Test parsing a bare JSON answer."""
        payload = parse_emotion_payload(json.dumps(VERDICT))

        assert payload.emotion is EmotionLabel.JOY
        assert payload.confidence == 0.85
        assert payload.keywords == ["开心", "周末"]

    def test_code_fenced_json(self):
        """Test parsing JSON wrapped in a markdown code fence."""
        answer = "```json\n" + json.dumps(VERDICT) + "\n```"

        assert parse_emotion_payload(answer).emotion is EmotionLabel.JOY

    def test_display_name_label(self):
        """Test labels given as Chinese display names are accepted."""
        answer = json.dumps({**VERDICT, "emotion": "悲伤"}, ensure_ascii=False)

        assert parse_emotion_payload(answer).emotion is EmotionLabel.SADNESS

    @pytest.mark.parametrize(
        "answer",
        [
            "这段话很开心",
            "[1, 2, 3]",
            json.dumps({**VERDICT, "emotion": "bored"}),
            json.dumps({"emotion": "joy"}),
        ],
    )
    def test_unparseable(self, answer):
        """Test answers without a usable payload are rejected."""
        with pytest.raises(ParseError):
            parse_emotion_payload(answer)

    def test_structured_result(self):
        """Test a payload converts to an EmotionResult."""
        result = result_from_answer(json.dumps(VERDICT), "周末很开心", BackendTag.OPENAI)

        assert result.emotion is EmotionLabel.JOY
        assert result.confidence == 0.85
        assert result.intensity == 0.7
        assert result.source_backend is BackendTag.OPENAI

    def test_scores_clamped(self):
        """Test out-of-range scores are clamped."""
        answer = json.dumps({**VERDICT, "confidence": 3, "intensity": -1})

        result = result_from_answer(answer, "x", BackendTag.BAIDU)

        assert result.confidence == 1.0
        assert result.intensity == 0.0

    def test_fallback_text_scan(self):
        """Free-form answers are scanned for keywords together with the text."""
        result = result_from_answer(
            "这段话听起来很难过，也很伤心。", "我今天失望了", BackendTag.BAIDU
        )

        assert result.emotion is EmotionLabel.SADNESS
        assert result.confidence == pytest.approx(0.5)
        assert result.keywords == ("我今天失望了",)
        assert result.source_backend is BackendTag.BAIDU


# ══════════════════════════════════════════════════════════════
# OpenAI Backend Tests
# ══════════════════════════════════════════════════════════════


class TestOpenAIEmotionBackend:
    """Test OpenAIEmotionBackend through the openai SDK."""

    @pytest.fixture
    def config(self) -> BackendConfig:
        return BackendConfig(openai_api_key="sk-test")

    @pytest.mark.asyncio
    async def test_classify(self, config):
        """Test a chat completion answer becomes a result."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["auth"] = request.headers.get("authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=chat_completion(json.dumps(VERDICT)))

        backend = OpenAIEmotionBackend(
            base_url="https://llm.test/v1",
            client=mock_client(handler),
        )

        result = await backend.classify("周末很开心", config)

        assert result.emotion is EmotionLabel.JOY
        assert result.source_backend is BackendTag.OPENAI
        assert captured["path"] == "/v1/chat/completions"
        assert captured["auth"] == "Bearer sk-test"
        body = captured["body"]
        assert body["model"] == "gpt-3.5-turbo"
        assert body["temperature"] == 0.3
        assert [m["role"] for m in body["messages"]] == ["system", "user"]
        assert "周末很开心" in body["messages"][1]["content"]

        await backend.close()

    @pytest.mark.asyncio
    async def test_free_form_answer_falls_back_to_scan(self, config):
        """Test prose answers are scored by keyword scan."""
        def handler(request):
            return httpx.Response(200, json=chat_completion("用户显得很生气和愤怒"))

        backend = OpenAIEmotionBackend(base_url="https://llm.test/v1", client=mock_client(handler))

        result = await backend.classify("你怎么又迟到了", config)

        assert result.emotion is EmotionLabel.ANGER
        assert result.source_backend is BackendTag.OPENAI

    @pytest.mark.asyncio
    async def test_error_status(self, config):
        """Test an HTTP error status raises a backend error."""
        def handler(request):
            return httpx.Response(500, json={"error": {"message": "boom"}})

        backend = OpenAIEmotionBackend(base_url="https://llm.test/v1", client=mock_client(handler))

        with pytest.raises(TransientBackendError):
            await backend.classify("你好", config)

    @pytest.mark.asyncio
    async def test_empty_answer(self, config):
        """Test an empty completion raises a backend error."""
        def handler(request):
            return httpx.Response(200, json=chat_completion(""))

        backend = OpenAIEmotionBackend(base_url="https://llm.test/v1", client=mock_client(handler))

        with pytest.raises(TransientBackendError):
            await backend.classify("你好", config)

    @pytest.mark.asyncio
    async def test_missing_key(self):
        """Test classify without an API key raises."""
        backend = OpenAIEmotionBackend(client=mock_client(lambda request: httpx.Response(200)))

        with pytest.raises(TransientBackendError):
            await backend.classify("你好", BackendConfig())


# ══════════════════════════════════════════════════════════════
# Baidu Backend Tests
# ══════════════════════════════════════════════════════════════


class TestBaiduEmotionBackend:
    """Test BaiduEmotionBackend."""

    @pytest.fixture
    def config(self) -> BackendConfig:
        return BackendConfig(baidu_llm_access_token="baidu-token")

    @pytest.mark.asyncio
    async def test_classify(self, config):
        """Test a Baidu result field becomes a result."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["token"] = request.url.params.get("access_token")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"result": json.dumps(VERDICT)})

        backend = BaiduEmotionBackend(url="https://ernie.test/chat", client=mock_client(handler))

        result = await backend.classify("周末很开心", config)

        assert result.emotion is EmotionLabel.JOY
        assert result.source_backend is BackendTag.BAIDU
        assert captured["token"] == "baidu-token"
        messages = captured["body"]["messages"]
        assert len(messages) == 1
        assert messages[0]["role"] == "user"

    @pytest.mark.asyncio
    async def test_error_payload(self, config):
        """Test an error_code payload raises a backend error."""
        def handler(request):
            return httpx.Response(200, json={"error_code": 110, "error_msg": "Access token invalid"})

        backend = BaiduEmotionBackend(client=mock_client(handler))

        with pytest.raises(TransientBackendError) as exc_info:
            await backend.classify("你好", config)

        assert "Access token invalid" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_token(self):
        """Test classify without an access token raises."""
        backend = BaiduEmotionBackend(client=mock_client(lambda request: httpx.Response(200)))

        with pytest.raises(TransientBackendError):
            await backend.classify("你好", BackendConfig())
