"""LLM provider protocol.

Every model-backed collaborator talks to the model through this one
method; streaming and tool use are not needed for JSON contracts.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from taskcli.types.messages import ChatOptions, ChatResponse, Message


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for LLM providers."""

    @property
    def name(self) -> str: ...

    async def chat(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> ChatResponse: ...

    async def close(self) -> None: ...
