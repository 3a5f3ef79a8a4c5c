"""Tests for LLM provider interfaces."""

from __future__ import annotations

import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from parallax.billing import llm_cost_usd
from parallax.errors import ProviderError
from parallax.providers import (
    AnthropicProvider,
    LLMProvider,
    OpenAICompatibleProvider,
    get_provider,
)


def _client(handler, base_url: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))


class TestGetProvider:
    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for var in ("LLM_PROVIDER", "LLM_URL", "LLM_API_KEY", "ANTHROPIC_API_KEY", "LLM_MODEL"):
            monkeypatch.delenv(var, raising=False)

    def test_default_returns_anthropic(self):
        provider = get_provider()
        assert isinstance(provider, AnthropicProvider)
        assert provider.default_model.startswith("claude-sonnet-4-5")

    def test_explicit_openai_compat(self):
        provider = get_provider("openai_compatible")
        assert isinstance(provider, OpenAICompatibleProvider)

    def test_dash_separated_name(self):
        assert isinstance(get_provider("openai-compatible"), OpenAICompatibleProvider)

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "openai_compatible")
        assert isinstance(get_provider(), OpenAICompatibleProvider)

    def test_unknown_provider_raises(self):
        with pytest.raises(ValueError, match="Unknown provider"):
            get_provider("not_a_real_provider")

    def test_base_url_kwarg(self):
        provider = get_provider("openai_compatible", base_url="http://test:8080/")
        assert provider.base_url == "http://test:8080"

    def test_base_url_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_URL", "http://envhost:8000")
        monkeypatch.setenv("LLM_PROVIDER", "openai_compatible")
        assert get_provider().base_url == "http://envhost:8000"

    def test_anthropic_key_from_env(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        assert get_provider("anthropic").api_key == "sk-ant-test"

    def test_generic_key_wins(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        monkeypatch.setenv("LLM_API_KEY", "sk-generic")
        assert get_provider("anthropic").api_key == "sk-generic"

    def test_anthropic_key_ignored_for_openai(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        assert get_provider("openai_compatible").api_key == "sk-no-key"

    def test_model_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_MODEL", "claude-haiku-4-5")
        assert get_provider().default_model == "claude-haiku-4-5"

    def test_returns_llm_provider(self):
        assert isinstance(get_provider(), LLMProvider)


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_complete(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "model": "claude-sonnet-4-5-20250929",
                "content": [
                    {"type": "text", "text": "Hello "},
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": "world"},
                ],
                "usage": {"input_tokens": 100, "output_tokens": 20, "cache_read_input_tokens": 50},
            })

        p = AnthropicProvider(client=_client(handler, "https://api.anthropic.com"))
        completion = await p.complete("hi", max_output_tokens=64, temperature=0.3)

        assert seen["path"] == "/v1/messages"
        assert seen["body"]["max_tokens"] == 64
        assert seen["body"]["temperature"] == 0.3
        assert seen["body"]["messages"] == [{"role": "user", "content": "hi"}]
        assert completion.text == "Hello world"
        assert completion.model == "claude-sonnet-4-5-20250929"
        assert completion.usage.input_tokens == 150
        assert completion.usage.cached_input_tokens == 50
        assert completion.usage.output_tokens == 20

    @pytest.mark.asyncio
    async def test_cache_writes_counted_as_input(self):
        def handler(request):
            return httpx.Response(200, json={
                "content": [{"type": "text", "text": "ok"}],
                "usage": {
                    "input_tokens": 10,
                    "output_tokens": 5,
                    "cache_creation_input_tokens": 2000,
                    "cache_read_input_tokens": 300,
                },
            })

        p = AnthropicProvider(client=_client(handler, "https://api.anthropic.com"))
        usage = (await p.complete("hi")).usage
        assert usage.input_tokens == 2310
        assert usage.cached_input_tokens == 300
        # 2010 full-price input + 300 cached + 5 output at Sonnet rates
        expected = (2010 * 3.0 + 300 * 0.30 + 5 * 15.0) / 1_000_000
        assert llm_cost_usd(usage, "claude-sonnet-4-5") == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_model_override(self):
        seen = {}

        def handler(request):
            seen["model"] = json.loads(request.content)["model"]
            return httpx.Response(200, json={"content": []})

        p = AnthropicProvider(client=_client(handler, "https://api.anthropic.com"))
        completion = await p.complete("hi", model="claude-haiku-4-5")
        assert seen["model"] == "claude-haiku-4-5"
        assert completion.text == ""
        assert completion.usage is None

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self):
        def handler(request):
            return httpx.Response(529, text="overloaded")

        p = AnthropicProvider(client=_client(handler, "https://api.anthropic.com"))
        with pytest.raises(ProviderError, match="529"):
            await p.complete("hi")

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        p = AnthropicProvider(client=_client(handler, "https://api.anthropic.com"))
        with pytest.raises(ProviderError, match="connection refused"):
            await p.complete("hi")

    @pytest.mark.asyncio
    async def test_health_true_on_200(self):
        p = AnthropicProvider()
        mock_resp = MagicMock()
        mock_resp.status_code = 200
        with patch.object(p._client, "get", new_callable=AsyncMock, return_value=mock_resp):
            assert await p.health() is True

    @pytest.mark.asyncio
    async def test_health_false_on_exception(self):
        p = AnthropicProvider()
        with patch.object(p._client, "get", side_effect=Exception("connection refused")):
            assert await p.health() is False


class TestOpenAICompatibleProvider:
    @pytest.mark.asyncio
    async def test_complete(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "model": "gpt-4o-mini",
                "choices": [{"message": {"role": "assistant", "content": "report"}}],
                "usage": {
                    "prompt_tokens": 200,
                    "completion_tokens": 40,
                    "prompt_tokens_details": {"cached_tokens": 128},
                },
            })

        client = httpx.AsyncClient(
            base_url="http://llm:8080",
            headers={"Authorization": "Bearer sk-test"},
            transport=httpx.MockTransport(handler),
        )
        p = OpenAICompatibleProvider(model="gpt-4o-mini", client=client)
        completion = await p.complete("hi", max_output_tokens=10)

        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["stream"] is False
        assert seen["body"]["model"] == "gpt-4o-mini"
        assert completion.text == "report"
        assert completion.usage.input_tokens == 200
        assert completion.usage.cached_input_tokens == 128

    @pytest.mark.asyncio
    async def test_missing_usage(self):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": None}}]})

        p = OpenAICompatibleProvider(client=_client(handler, "http://llm:8080"))
        completion = await p.complete("hi")
        assert completion.text == ""
        assert completion.usage is None

    @pytest.mark.asyncio
    async def test_invalid_json_wrapped(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        p = OpenAICompatibleProvider(client=_client(handler, "http://llm:8080"))
        with pytest.raises(ProviderError):
            await p.complete("hi")

    @pytest.mark.asyncio
    async def test_health_false_on_exception(self):
        p = OpenAICompatibleProvider()
        with patch.object(p._client, "get", side_effect=Exception("down")):
            assert await p.health() is False
