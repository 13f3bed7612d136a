"""LLM-backed implementation of every collaborator protocol."""

from __future__ import annotations

import logging
import re
from typing import Any

from taskcli.brains import prompts
from taskcli.brains.base import AgentRequest, Brains
from taskcli.providers.base import LLMProvider
from taskcli.types.messages import ChatOptions, Message, Role, UsageTotals
from taskcli.types.task import Task

logger = logging.getLogger(__name__)

_FENCED_RE = re.compile(r"^```[\w+-]*\n(.*?)\n?```\s*$", re.DOTALL)

# Low temperature for JSON contracts, a little higher for prose and code
JSON_TEMPERATURE = 0.1
PLAN_TEMPERATURE = 0.3
TEXT_TEMPERATURE = 0.4


def strip_code_fence(text: str) -> str:
    """Drop a single wrapping markdown fence, if the model added one."""
    match = _FENCED_RE.match(text.strip())
    return match.group(1) if match else text


class LLMBrain:
    """Planner, agent, classifier, retry planner, re-planner, closeout
    writer and content generator over one provider."""

    def __init__(
        self,
        provider: LLMProvider,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self.usage = UsageTotals()

    async def _ask(self, prompt: str, temperature: float) -> str:
        options = ChatOptions(model=self._model, max_tokens=self._max_tokens, temperature=temperature)
        messages = [
            Message(role=Role.SYSTEM, content=prompts.SYSTEM_PROMPT),
            Message(role=Role.USER, content=prompt),
        ]
        response = await self._provider.chat(messages, options)
        self.usage.add(response.usage)
        logger.debug("%s answered %d chars", self._provider.name, len(response.content))
        return response.content

    # Planner
    async def plan(self, goal: str, memory_summary: str, cwd: str) -> str:
        return await self._ask(prompts.planning_prompt(goal, memory_summary, cwd), PLAN_TEMPERATURE)

    # ExecutionAgent
    async def next_turn(self, request: AgentRequest) -> str:
        prompt = prompts.agent_prompt(
            request.goal,
            request.remaining,
            request.transcript,
            request.cwd,
            request.cycle,
            request.max_actions,
        )
        return await self._ask(prompt, JSON_TEMPERATURE)

    # ClassifierBackend
    async def classify(self, context: dict[str, Any]) -> str:
        return await self._ask(prompts.classification_prompt(context), JSON_TEMPERATURE)

    # RetryBackend
    async def plan_retry(self, context: dict[str, Any]) -> str:
        return await self._ask(prompts.retry_prompt(context), JSON_TEMPERATURE)

    # Replanner
    async def adjust(self, goal: str, plan: list[Task], queued: list[str]) -> str:
        return await self._ask(prompts.adjust_prompt(goal, plan, queued), PLAN_TEMPERATURE)

    # CloseoutWriter
    async def summarize(self, goal: str, transcript: str) -> str:
        return (await self._ask(prompts.closeout_prompt(goal, transcript), TEXT_TEMPERATURE)).strip()

    # ContentGenerator
    async def generate(self, instruction: str, path: str) -> str:
        return strip_code_fence(await self._ask(prompts.codegen_prompt(instruction, path), TEXT_TEMPERATURE))

    async def edit(self, path: str, current: str, instruction: str) -> str:
        text = await self._ask(prompts.edit_prompt(path, current, instruction), TEXT_TEMPERATURE)
        return strip_code_fence(text)

    def as_brains(self) -> Brains:
        return Brains(
            planner=self,
            agent=self,
            classifier=self,
            retry=self,
            replanner=self,
            closeout=self,
            content=self,
            usage=self.usage,
        )
