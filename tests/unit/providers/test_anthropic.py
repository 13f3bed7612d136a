"""Tests for AnthropicProvider."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from taskcli.errors import ProviderError
from taskcli.providers.anthropic import AnthropicProvider
from taskcli.types.messages import ChatOptions, Message, Role, StopReason

MOCK_URL = "https://api.anthropic.com/v1/messages"
MOCK_REQUEST = httpx.Request("POST", MOCK_URL)


def _mock_response(status: int = 200, **kwargs) -> httpx.Response:
    """Create a mock httpx response with request set."""
    return httpx.Response(status, request=MOCK_REQUEST, **kwargs)


@pytest.fixture
def provider() -> AnthropicProvider:
    return AnthropicProvider(api_key="sk-test")


class TestAnthropicProviderInit:
    def test_name(self, provider: AnthropicProvider) -> None:
        assert provider.name == "anthropic"

    def test_no_api_key(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ProviderError, match="ANTHROPIC_API_KEY"):
                AnthropicProvider()

    def test_api_key_from_env(self) -> None:
        with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "sk-env"}, clear=True):
            assert AnthropicProvider().name == "anthropic"


class TestAnthropicChat:
    @pytest.mark.asyncio
    async def test_basic_chat(self, provider: AnthropicProvider) -> None:
        mock_response = _mock_response(json={
            "content": [{"type": "text", "text": "Hello!"}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 10, "output_tokens": 5},
        })
        provider._client.post = AsyncMock(return_value=mock_response)

        resp = await provider.chat([Message(role=Role.USER, content="Hi")])
        assert resp.content == "Hello!"
        assert resp.stop_reason == StopReason.END_TURN
        assert resp.usage is not None
        assert resp.usage.total_tokens == 15

    @pytest.mark.asyncio
    async def test_system_message_goes_to_system_field(self, provider: AnthropicProvider) -> None:
        provider._client.post = AsyncMock(return_value=_mock_response(json={
            "content": [{"type": "text", "text": "ok"}],
        }))
        await provider.chat(
            [Message(role=Role.SYSTEM, content="Be brief."), Message(role=Role.USER, content="Hi")],
            ChatOptions(model="claude-test", max_tokens=100, temperature=0.0),
        )
        body = provider._client.post.call_args.kwargs["json"]
        assert body["system"] == "Be brief."
        assert body["messages"] == [{"role": "user", "content": "Hi"}]
        assert body["model"] == "claude-test"
        assert body["max_tokens"] == 100
        assert body["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_max_tokens_stop(self, provider: AnthropicProvider) -> None:
        provider._client.post = AsyncMock(return_value=_mock_response(json={
            "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}],
            "stop_reason": "max_tokens",
        }))
        resp = await provider.chat([Message(role=Role.USER, content="Hi")])
        assert resp.content == "a\nb"
        assert resp.stop_reason == StopReason.MAX_TOKENS

    @pytest.mark.asyncio
    async def test_http_error(self, provider: AnthropicProvider) -> None:
        provider._client.post = AsyncMock(return_value=_mock_response(429, text="rate limited"))
        with pytest.raises(ProviderError) as exc_info:
            await provider.chat([Message(role=Role.USER, content="Hi")])
        assert exc_info.value.status_code == 429
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_bad_request_not_retryable(self, provider: AnthropicProvider) -> None:
        provider._client.post = AsyncMock(return_value=_mock_response(400, text="bad"))
        with pytest.raises(ProviderError) as exc_info:
            await provider.chat([Message(role=Role.USER, content="Hi")])
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout(self, provider: AnthropicProvider) -> None:
        provider._client.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with pytest.raises(ProviderError, match="timeout"):
            await provider.chat([Message(role=Role.USER, content="Hi")])

    @pytest.mark.asyncio
    async def test_mock_transport(self) -> None:
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            assert request.headers["x-api-key"] == "sk-test"
            return httpx.Response(200, json={"content": [{"type": "text", "text": "via transport"}]})

        provider = AnthropicProvider(api_key="sk-test", transport=httpx.MockTransport(handler))
        try:
            resp = await provider.chat([Message(role=Role.USER, content="Hi")])
        finally:
            await provider.close()
        assert resp.content == "via transport"
        assert seen[0]["messages"][0]["content"] == "Hi"
