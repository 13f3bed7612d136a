"""External JSON contracts.

Every collaborator that sits behind a model call (planner, execution
agent, classifier, retry planner, re-planner) answers with a JSON object.
This module validates those answers with pydantic and converts them into
the core's own types. Parsing is strict: a payload either fits its
contract or :class:`~taskcli.errors.ContractError` is raised. Nothing is
silently guessed.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from taskcli.errors import ContractError
from taskcli.types.command import (
    Classification,
    ClassificationStatus,
    RetryAction,
    RetryDecision,
)
from taskcli.types.task import CLOSEOUT_TASK_ID, Task, TaskType
from taskcli.utils.json_utils import extract_json_object

# Task types a planner may emit. The closeout task is appended by the engine.
PlannableType = Literal[
    "read_file",
    "write_file",
    "generate_file_from_prompt",
    "edit_file",
    "run_command",
    "search_web",
    "ask_user",
]

# Tool actions the execution agent may request in a cycle.
ActionType = Literal[
    "read_file",
    "write_file",
    "generate_file_from_prompt",
    "edit_file",
    "run_command",
    "search_web",
]

_PATH_TYPES = {"read_file", "write_file", "generate_file_from_prompt", "edit_file"}


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator(
        "id", "task_id", "type", "title", "path", "command", "cwd", "query",
        "speak", "final", "next", "status", "summary", "hint", "note", "question",
        mode="before", check_fields=False,
    )
    @classmethod
    def _strip_target(cls, value: Any) -> Any:
        # File bodies and prompts are kept byte for byte.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value


def _filled(data: _Payload, field: str) -> bool:
    value = getattr(data, field, None)
    return bool(value and value.strip())


def _require_target(kind: str, data: _Payload) -> None:
    """Shared per-type required-field check for drafts and actions."""
    if kind in _PATH_TYPES and not _filled(data, "path"):
        raise ValueError(f"{kind} requires 'path'")
    if kind == "run_command" and not _filled(data, "command"):
        raise ValueError("run_command requires 'command'")
    if kind == "search_web" and not _filled(data, "query"):
        raise ValueError("search_web requires 'query'")
    if kind == "generate_file_from_prompt" and not _filled(data, "prompt"):
        raise ValueError("generate_file_from_prompt requires 'prompt'")
    if kind == "edit_file" and not _filled(data, "instruction"):
        raise ValueError("edit_file requires 'instruction'")


class TaskDraft(_Payload):
    """A task as proposed by the planner or re-planner."""

    id: str = Field(min_length=1)
    type: PlannableType
    title: str = ""
    rationale: str | None = None
    path: str | None = None
    command: str | None = None
    content: str | None = None
    content_prompt: str | None = None
    instruction: str | None = None
    prompt: str | None = None
    confirm: bool | None = None
    cwd: str | None = None
    query: str | None = None
    num_results: int | None = Field(default=None, alias="numResults", ge=1, le=50)
    questions: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _not_closeout(cls, value: str) -> str:
        if value == CLOSEOUT_TASK_ID:
            raise ValueError(f"'{CLOSEOUT_TASK_ID}' is reserved for the closeout task")
        return value

    @model_validator(mode="after")
    def _check_target(self) -> TaskDraft:
        _require_target(self.type, self)
        return self

    def to_task(self) -> Task:
        return Task(
            id=self.id,
            type=TaskType(self.type),
            title=self.title,
            rationale=self.rationale,
            path=self.path,
            command=self.command,
            content=self.content,
            content_prompt=self.content_prompt,
            instruction=self.instruction,
            prompt=self.prompt,
            confirm=self.confirm,
            cwd=self.cwd,
            query=self.query,
            num_results=self.num_results,
            questions=list(self.questions),
        )


class PlannerResponse(_Payload):
    tasks: list[TaskDraft]

    @model_validator(mode="after")
    def _unique_ids(self) -> PlannerResponse:
        ids = [t.id for t in self.tasks]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate task ids: {', '.join(duplicates)}")
        return self


class ToolAction(_Payload):
    """One tool invocation requested by the execution agent."""

    type: ActionType
    task_id: str | None = Field(default=None, alias="taskId")
    path: str | None = None
    command: str | None = None
    content: str | None = None
    content_prompt: str | None = None
    instruction: str | None = None
    prompt: str | None = None
    cwd: str | None = None
    confirm: bool | None = None
    query: str | None = None
    num_results: int | None = Field(default=None, alias="numResults", ge=1, le=50)

    @model_validator(mode="after")
    def _check_target(self) -> ToolAction:
        _require_target(self.type, self)
        return self

    def to_task(self, action_id: str) -> Task:
        """Express the action as an ad-hoc task so it runs through the task handlers."""
        target = self.command or self.path or self.query or ""
        return Task(
            id=action_id,
            type=TaskType(self.type),
            title=f"{self.type} {target}".strip(),
            path=self.path,
            command=self.command,
            content=self.content,
            content_prompt=self.content_prompt,
            instruction=self.instruction,
            prompt=self.prompt,
            confirm=self.confirm,
            cwd=self.cwd,
            query=self.query,
            num_results=self.num_results,
        )


class AgentTurn(_Payload):
    """One cycle's worth of instructions from the execution agent."""

    speak: str = ""
    actions: list[ToolAction] = Field(default_factory=list)
    completed_tasks: list[str] = Field(default_factory=list, alias="completedTasks")
    next: Literal["continue", "cancel", "done"] = "continue"
    complete: bool = False
    final: str = ""
    plan_updates: list[TaskDraft] = Field(default_factory=list, alias="planUpdates")

    @field_validator("completed_tasks", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v).strip() for v in value]
        return value

    @property
    def wants_stop(self) -> bool:
        return self.next == "done" or self.complete


class ClassificationPayload(_Payload):
    status: Literal["interactive", "error", "stuck"]
    summary: str = ""
    hint: str = ""

    def to_classification(self) -> Classification:
        return Classification(
            status=ClassificationStatus(self.status),
            summary=self.summary,
            hint=self.hint,
        )


class RunDecisionPayload(_Payload):
    action: Literal["run"]
    commands: list[str] = Field(min_length=1)
    note: str | None = None

    @field_validator("commands", mode="before")
    @classmethod
    def _single_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("commands")
    @classmethod
    def _non_empty(cls, value: list[str]) -> list[str]:
        cleaned = [c.strip() for c in value if c and c.strip()]
        if not cleaned:
            raise ValueError("no runnable command")
        return cleaned


class AskUserDecisionPayload(_Payload):
    action: Literal["ask_user"]
    question: str = "Additional details required."


class AbortDecisionPayload(_Payload):
    action: Literal["abort"]
    note: str | None = None


RetryDecisionPayload = Annotated[
    Union[RunDecisionPayload, AskUserDecisionPayload, AbortDecisionPayload],
    Field(discriminator="action"),
]


class CancelAdjustment(_Payload):
    action: Literal["cancel"]
    note: str | None = None


class UpdateAdjustment(_Payload):
    action: Literal["update"]
    tasks: list[TaskDraft]
    note: str | None = None

    @model_validator(mode="after")
    def _unique_ids(self) -> UpdateAdjustment:
        ids = [t.id for t in self.tasks]
        if len(ids) != len(set(ids)):
            raise ValueError("duplicate task ids")
        return self


PlanAdjustment = Annotated[
    Union[CancelAdjustment, UpdateAdjustment],
    Field(discriminator="action"),
]

_RETRY_ADAPTER: TypeAdapter[Any] = TypeAdapter(RetryDecisionPayload)
_ADJUST_ADAPTER: TypeAdapter[Any] = TypeAdapter(PlanAdjustment)


# ---------------------------------------------------------------------------
# Parse-or-reject entry points
# ---------------------------------------------------------------------------


def load_payload(contract: str, raw: Any) -> dict[str, Any]:
    """Turn a raw collaborator answer (dict or model text) into a JSON object."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        data = extract_json_object(raw)
        if data is not None:
            return data
        raise ContractError(contract, "no JSON object found", payload=raw)
    raise ContractError(contract, f"unexpected payload type {type(raw).__name__}", payload=raw)


def _validate(contract: str, raw: Any, validator: Any) -> Any:
    data = load_payload(contract, raw)
    try:
        return validator(data)
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        message = first.get("msg", str(e))
        raise ContractError(contract, f"{where}: {message}" if where else message, payload=raw) from e


def parse_plan(raw: Any) -> list[Task]:
    """Planner answer -> ordered list of pending tasks."""
    response = _validate("planner", raw, PlannerResponse.model_validate)
    return [draft.to_task() for draft in response.tasks]


def parse_agent_turn(raw: Any) -> AgentTurn:
    return _validate("agent", raw, AgentTurn.model_validate)


def parse_classification(raw: Any) -> Classification:
    payload = _validate("classifier", raw, ClassificationPayload.model_validate)
    return payload.to_classification()


def parse_retry_decision(raw: Any) -> RetryDecision:
    payload = _validate("retry", raw, _RETRY_ADAPTER.validate_python)
    if isinstance(payload, RunDecisionPayload):
        return RetryDecision(action=RetryAction.RUN, commands=list(payload.commands), note=payload.note)
    if isinstance(payload, AskUserDecisionPayload):
        return RetryDecision(action=RetryAction.ASK_USER, question=payload.question)
    return RetryDecision(action=RetryAction.ABORT, note=payload.note)


def parse_plan_adjustment(raw: Any) -> CancelAdjustment | UpdateAdjustment:
    return _validate("replanner", raw, _ADJUST_ADAPTER.validate_python)
