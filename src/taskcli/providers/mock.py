"""Mock LLM provider for testing."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from taskcli.types.messages import (
    ChatOptions,
    ChatResponse,
    Message,
    StopReason,
    TokenUsage,
)


@dataclass
class MockProvider:
    """Mock LLM provider that replays scripted responses in order."""

    responses: list[ChatResponse] = field(default_factory=list)
    response_fn: Callable[[list[Message], ChatOptions | None], Awaitable[ChatResponse]] | None = None
    default_response: ChatResponse = field(
        default_factory=lambda: ChatResponse(
            content="Mock response",
            stop_reason=StopReason.END_TURN,
            usage=TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15),
        )
    )
    call_history: list[tuple[list[Message], ChatOptions | None]] = field(default_factory=list)
    _response_index: int = field(default=0, init=False)

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_count(self) -> int:
        return len(self.call_history)

    async def chat(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> ChatResponse:
        self.call_history.append((messages, options))
        if self.response_fn is not None:
            return await self.response_fn(messages, options)
        if self._response_index < len(self.responses):
            resp = self.responses[self._response_index]
            self._response_index += 1
            return resp
        return self.default_response

    def add_response(
        self,
        content: str = "",
        stop_reason: StopReason = StopReason.END_TURN,
        usage: TokenUsage | None = None,
    ) -> MockProvider:
        self.responses.append(
            ChatResponse(
                content=content,
                stop_reason=stop_reason,
                usage=usage or TokenUsage(input_tokens=10, output_tokens=5, total_tokens=15),
            )
        )
        return self

    def add_json_response(self, payload: dict[str, Any]) -> MockProvider:
        return self.add_response(content=json.dumps(payload))

    def reset(self) -> None:
        self.call_history.clear()
        self._response_index = 0

    async def close(self) -> None:
        """No-op for mock provider."""
