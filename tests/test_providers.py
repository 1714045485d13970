"""Tests for the HTTP providers, using httpx.MockTransport instead of the network."""

import json

import httpx
import pytest

from journal_memory.config import AppConfig, EmbeddingConfig, ExtractionConfig
from journal_memory.errors import ConfigurationError
from journal_memory.providers import (
    OpenAIEmbeddingProvider,
    OpenAIExtractionProvider,
    build_embedding_provider,
    build_extraction_provider,
    parse_json_object,
)


def _transport(handler):
    requests = []

    def wrapped(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(wrapped), requests


class TestOpenAIEmbeddingProvider:

    @pytest.mark.asyncio
    async def test_batched_request_in_input_order(self):
        def handler(request):
            body = json.loads(request.content)
            assert body == {"model": "text-embedding-3-small", "input": ["one", "two"]}
            return httpx.Response(200, json={"data": [
                {"index": 1, "embedding": [0.0, 2.0]},
                {"index": 0, "embedding": [1.0, 0.0]},
            ]})

        transport, requests = _transport(handler)
        provider = OpenAIEmbeddingProvider("sk-test", transport=transport)
        result = await provider.embed(["one", "two"])
        await provider.aclose()

        assert result.unwrap() == [[1.0, 0.0], [0.0, 2.0]]
        assert len(requests) == 1
        assert requests[0].url.path == "/v1/embeddings"
        assert requests[0].headers["authorization"] == "Bearer sk-test"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable_failure(self):
        transport, _ = _transport(lambda request: httpx.Response(429, json={}))
        provider = OpenAIEmbeddingProvider("sk-test", transport=transport)
        result = await provider.embed(["one"])
        await provider.aclose()

        assert not result.ok
        assert result.error.status == 429
        assert result.error.retryable
        assert str(result.error) == "Rate limit exceeded"

    @pytest.mark.asyncio
    async def test_size_mismatch_is_failure(self):
        transport, _ = _transport(lambda request: httpx.Response(200, json={"data": []}))
        provider = OpenAIEmbeddingProvider("sk-test", transport=transport)
        result = await provider.embed(["one"])
        await provider.aclose()
        assert not result.ok

    @pytest.mark.asyncio
    async def test_connection_error_is_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        transport, _ = _transport(handler)
        provider = OpenAIEmbeddingProvider("sk-test", transport=transport)
        result = await provider.embed(["one"])
        await provider.aclose()
        assert result.error.retryable
        assert "Connection failed" in str(result.error)


class TestOpenAIExtractionProvider:

    @pytest.mark.asyncio
    async def test_json_object_mode(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["response_format"] == {"type": "json_object"}
            assert body["temperature"] == 0.3
            assert [m["role"] for m in body["messages"]] == ["system", "user"]
            content = json.dumps({"emotions": [], "people": [{"name": "Kasia"}]})
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        transport, _ = _transport(handler)
        provider = OpenAIExtractionProvider("sk-test", transport=transport)
        result = await provider.complete_json("system", "user")
        await provider.aclose()
        assert result.unwrap() == {"emotions": [], "people": [{"name": "Kasia"}]}

    @pytest.mark.asyncio
    async def test_api_error_message_is_surfaced(self):
        transport, _ = _transport(
            lambda request: httpx.Response(401, json={"error": {"message": "Incorrect API key provided"}})
        )
        provider = OpenAIExtractionProvider("sk-test", transport=transport)
        result = await provider.complete_json("system", "user")
        await provider.aclose()
        assert str(result.error) == "Incorrect API key provided"
        assert not result.error.retryable

    @pytest.mark.asyncio
    async def test_unparseable_content_is_failure(self):
        transport, _ = _transport(
            lambda request: httpx.Response(200, json={"choices": [{"message": {"content": "sorry, no"}}]})
        )
        provider = OpenAIExtractionProvider("sk-test", transport=transport)
        result = await provider.complete_json("system", "user")
        await provider.aclose()
        assert "parse" in str(result.error)


def test_parse_json_object_tolerates_fences():
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("nothing here") is None


class TestBuilders:

    def test_missing_key_raises(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            build_embedding_provider(AppConfig())
        with pytest.raises(ConfigurationError):
            build_extraction_provider(AppConfig())

    def test_unknown_provider_raises(self):
        config = AppConfig(embeddings=EmbeddingConfig(provider="carrier-pigeon"), openai_api_key="sk-test")
        with pytest.raises(ConfigurationError):
            build_embedding_provider(config)

    def test_env_key_is_used(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        provider = build_extraction_provider(AppConfig(extraction=ExtractionConfig(model="gpt-test")))
        assert isinstance(provider, OpenAIExtractionProvider)
        assert provider.model == "gpt-test"
