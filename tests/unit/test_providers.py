"""
Unit tests for LLM providers.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch


def _mock_http_client(content="{}"):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value={"choices": [{"message": {"content": content}}]})

    client = MagicMock()
    client.post = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


class TestOpenAICompatibleProvider:
    """Test the chat-completions request."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_payload(self):
        from threadmem.providers.groq import GroqProvider
        provider = GroqProvider()
        client = _mock_http_client('{"goals": []}')

        with patch.object(provider, "get_api_key", return_value="key"), \
             patch("threadmem.providers.base.httpx.AsyncClient", return_value=client):
            result = await provider.call(
                "User: hi\n\nAssistant: hello", "m", context_prefix="Extract",
                temperature=0.2, max_tokens=100, json_mode=True,
            )

        assert result == {"thinking": "", "content": '{"goals": []}'}
        url = client.post.await_args.args[0]
        payload = client.post.await_args.kwargs["json"]
        assert url == provider.base_url
        assert payload["messages"][0] == {"role": "system", "content": "Extract"}
        assert payload["messages"][-1]["role"] == "user"
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["temperature"] == 0.2
        assert payload["max_tokens"] == 100
        assert client.post.await_args.kwargs["headers"]["Authorization"] == "Bearer key"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_default_model_used(self):
        from threadmem.providers.openai import OpenAIProvider
        provider = OpenAIProvider()
        client = _mock_http_client()

        with patch.object(provider, "get_api_key", return_value="key"), \
             patch("threadmem.providers.base.httpx.AsyncClient", return_value=client):
            await provider.call("hi", None)

        payload = client.post.await_args.kwargs["json"]
        assert payload["model"] == "gpt-4o-mini"
        assert "response_format" not in payload

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_key(self):
        from threadmem.providers.groq import GroqProvider
        provider = GroqProvider()
        with patch.object(provider, "get_api_key", return_value=""):
            with pytest.raises(ValueError, match="GROQ_API_KEY"):
                await provider.call("hi", "m")


class TestProviderRegistry:

    @pytest.mark.unit
    def test_build_providers(self):
        from threadmem.providers import build_providers
        providers = build_providers()
        assert set(providers) == {"openai", "groq"}
        assert providers["openai"].name == "openai"
