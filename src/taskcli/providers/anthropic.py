"""Anthropic API provider using httpx."""

from __future__ import annotations

import os
from typing import Any

import httpx

from taskcli.errors import ProviderError
from taskcli.types.messages import (
    ChatOptions,
    ChatResponse,
    Message,
    Role,
    StopReason,
    TokenUsage,
)

DEFAULT_API_URL = "https://api.anthropic.com/v1/messages"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 8192
API_VERSION = "2023-06-01"


class AnthropicProvider:
    """Anthropic API provider using httpx."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 120.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if not self._api_key:
            raise ProviderError("ANTHROPIC_API_KEY not set", provider="anthropic", retryable=False)
        self._model = model
        self._max_tokens = max_tokens
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport
        self._client = self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            transport=self._transport,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": API_VERSION,
                "content-type": "application/json",
            },
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the client, recreating it if closed."""
        if self._client.is_closed:
            self._client = self._create_client()
        return self._client

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def model(self) -> str:
        return self._model

    async def chat(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        client = self._ensure_client()
        model = (options and options.model) or self._model
        max_tokens = (options and options.max_tokens) or self._max_tokens

        body: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": [
                {"role": str(m.role), "content": m.content}
                for m in messages
                if m.role != Role.SYSTEM
            ],
        }
        if options and options.temperature is not None:
            body["temperature"] = options.temperature
        system = "\n\n".join(m.content for m in messages if m.role == Role.SYSTEM)
        if system:
            body["system"] = system

        try:
            response = await client.post(self._api_url, json=body)
            response.raise_for_status()
            return self._parse_response(response.json(), model)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ProviderError(
                f"Anthropic API error {status}: {e.response.text[:500]}",
                provider="anthropic",
                status_code=status,
                retryable=status in (429, 500, 502, 503, 529),
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderError("Anthropic API timeout", provider="anthropic", retryable=True) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Anthropic request error: {e}", provider="anthropic", retryable=True) from e

    def _parse_response(self, data: dict[str, Any], model: str) -> ChatResponse:
        text_parts = [
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        ]
        usage_data = data.get("usage", {})
        usage = TokenUsage(
            input_tokens=usage_data.get("input_tokens", 0),
            output_tokens=usage_data.get("output_tokens", 0),
            total_tokens=usage_data.get("input_tokens", 0) + usage_data.get("output_tokens", 0),
        )
        stop = data.get("stop_reason", "end_turn")
        stop_reason = {
            "max_tokens": StopReason.MAX_TOKENS,
            "stop_sequence": StopReason.STOP_SEQUENCE,
        }.get(stop, StopReason.END_TURN)
        return ChatResponse(
            content="\n".join(text_parts),
            stop_reason=stop_reason,
            usage=usage,
            model=data.get("model", model),
        )

    async def close(self) -> None:
        await self._client.aclose()
