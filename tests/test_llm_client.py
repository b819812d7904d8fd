"""Tests for the Ollama HTTP client."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tanggap.services.llm_client import OllamaClient, OllamaError


def make_response(data: dict) -> MagicMock:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = data
    return response


class TestOllamaClient:
    @pytest.fixture
    def http(self):
        return MagicMock()

    @pytest.fixture
    def client(self, http):
        return OllamaClient(base_url="http://ollama:11434/", model="qwen2.5:7b", client=http)

    def test_disabled_urls(self):
        assert OllamaClient(base_url="disabled").is_disabled
        assert OllamaClient(base_url="").is_disabled
        assert not OllamaClient(base_url="http://localhost:11434").is_disabled

    @pytest.mark.asyncio
    async def test_generate_posts_non_streaming_request(self, client, http):
        http.post = AsyncMock(return_value=make_response({"response": '{"intent": "korban"}'}))

        result = await client.generate("prompt text")

        assert result.text == '{"intent": "korban"}'
        assert result.model == "qwen2.5:7b"
        url = http.post.call_args[0][0]
        body = http.post.call_args[1]["json"]
        assert url == "http://ollama:11434/api/generate"
        assert body["stream"] is False
        assert body["prompt"] == "prompt text"
        assert body["options"]["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_generate_wraps_http_errors(self, client, http):
        http.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(OllamaError):
            await client.generate("prompt")

    @pytest.mark.asyncio
    async def test_generate_when_disabled(self):
        with pytest.raises(OllamaError):
            await OllamaClient(base_url="disabled").generate("prompt")

    @pytest.mark.asyncio
    async def test_health_check_reports_model(self, client, http):
        http.get = AsyncMock(
            return_value=make_response({"models": [{"name": "qwen2.5:7b"}, {"name": "llama3"}]})
        )
        health = await client.health_check()
        assert health["status"] == "healthy"
        assert health["model_available"] is True

    @pytest.mark.asyncio
    async def test_health_check_unreachable(self, client, http):
        http.get = AsyncMock(side_effect=httpx.ConnectError("refused"))
        health = await client.health_check()
        assert health["status"] == "unhealthy"
        assert health["available"] is False

    @pytest.mark.asyncio
    async def test_health_check_disabled(self):
        health = await OllamaClient(base_url="disabled").health_check()
        assert health == {"status": "disabled", "available": False}
