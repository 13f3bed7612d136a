"""Message types for the model provider boundary."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    """Message role."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(StrEnum):
    """Why the model stopped generating."""

    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


@dataclass(slots=True)
class TokenUsage:
    """Token usage for a single LLM call."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class UsageTotals:
    """Cumulative token usage across model calls."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    llm_calls: int = 0

    def add(self, usage: TokenUsage | None) -> None:
        """Record one model call. Calls without usage data still count."""
        self.llm_calls += 1
        if usage is None:
            return
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.total_tokens += usage.total_tokens or usage.input_tokens + usage.output_tokens

    def since(self, earlier: UsageTotals) -> UsageTotals:
        return UsageTotals(
            input_tokens=self.input_tokens - earlier.input_tokens,
            output_tokens=self.output_tokens - earlier.output_tokens,
            total_tokens=self.total_tokens - earlier.total_tokens,
            llm_calls=self.llm_calls - earlier.llm_calls,
        )

    def copy(self) -> UsageTotals:
        return self.since(UsageTotals())

    def describe(self) -> str:
        return (
            f"{self.input_tokens:,} in / {self.output_tokens:,} out tokens "
            f"over {self.llm_calls} model calls"
        )


@dataclass(slots=True)
class Message:
    """A chat message."""

    role: Role
    content: str


@dataclass(slots=True)
class ChatOptions:
    """Options for a chat request."""

    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None


@dataclass(slots=True)
class ChatResponse:
    """Response from a chat request."""

    content: str
    stop_reason: StopReason | None = None
    usage: TokenUsage | None = None
    model: str | None = None
