"""Tests for the external JSON contracts."""

from __future__ import annotations

import json

import pytest

from taskcli.contracts import (
    CancelAdjustment,
    UpdateAdjustment,
    parse_agent_turn,
    parse_classification,
    parse_plan,
    parse_plan_adjustment,
    parse_retry_decision,
)
from taskcli.errors import ContractError
from taskcli.types.command import ClassificationStatus, RetryAction
from taskcli.types.task import TaskStatus, TaskType


class TestParsePlan:
    def test_valid_plan(self) -> None:
        tasks = parse_plan({"tasks": [
            {"id": "t1", "type": "write_file", "title": "Readme", "path": "README.md", "content": "# hi"},
            {"id": 2, "type": "run_command", "command": "git add README.md", "confirm": False},
        ]})
        assert [t.id for t in tasks] == ["t1", "2"]
        assert tasks[0].type == TaskType.WRITE_FILE
        assert tasks[1].confirm is False
        assert all(t.status == TaskStatus.PENDING for t in tasks)

    def test_plan_in_fenced_text(self) -> None:
        raw = "Here you go:\n```json\n" + json.dumps({"tasks": []}) + "\n```"
        assert parse_plan(raw) == []

    def test_missing_required_field(self) -> None:
        with pytest.raises(ContractError, match="run_command requires 'command'"):
            parse_plan({"tasks": [{"id": "t1", "type": "run_command"}]})

    def test_unknown_type(self) -> None:
        with pytest.raises(ContractError):
            parse_plan({"tasks": [{"id": "t1", "type": "launch_rocket"}]})

    def test_session_close_not_plannable(self) -> None:
        with pytest.raises(ContractError):
            parse_plan({"tasks": [{"id": "t1", "type": "session_close"}]})

    def test_duplicate_ids(self) -> None:
        with pytest.raises(ContractError, match="duplicate"):
            parse_plan({"tasks": [
                {"id": "a", "type": "read_file", "path": "x"},
                {"id": "a", "type": "read_file", "path": "y"},
            ]})

    def test_not_json(self) -> None:
        with pytest.raises(ContractError, match="no JSON object"):
            parse_plan("I could not make a plan, sorry")

    def test_num_results_alias(self) -> None:
        tasks = parse_plan({"tasks": [{"id": "s", "type": "search_web", "query": "httpx", "numResults": 3}]})
        assert tasks[0].num_results == 3

    def test_file_content_kept_verbatim(self) -> None:
        body = "    indented = 1\n\n"
        tasks = parse_plan({"tasks": [
            {"id": " t1 ", "type": "write_file", "path": " a.py ", "content": body},
        ]})
        assert tasks[0].content == body
        assert tasks[0].id == "t1"
        assert tasks[0].path == "a.py"

    def test_blank_command_rejected(self) -> None:
        with pytest.raises(ContractError, match="requires 'command'"):
            parse_plan({"tasks": [{"id": "t1", "type": "run_command", "command": "   "}]})

    def test_closeout_id_reserved(self) -> None:
        with pytest.raises(ContractError, match="reserved"):
            parse_plan({"tasks": [{"id": "session-close", "type": "write_file", "path": "a", "content": "x"}]})


class TestParseAgentTurn:
    def test_full_turn(self) -> None:
        turn = parse_agent_turn({
            "speak": "Writing the file",
            "actions": [{"type": "write_file", "path": "a.txt", "content": "x", "taskId": "t1"}],
            "completedTasks": ["t1", 2],
            "next": "continue",
        })
        assert turn.speak == "Writing the file"
        assert turn.actions[0].task_id == "t1"
        assert turn.completed_tasks == ["t1", "2"]
        assert not turn.wants_stop

    def test_done(self) -> None:
        assert parse_agent_turn({"next": "done"}).wants_stop
        assert parse_agent_turn({"complete": True}).wants_stop

    def test_unknown_action_type_rejects_turn(self) -> None:
        with pytest.raises(ContractError):
            parse_agent_turn({"actions": [{"type": "ask_user"}]})

    def test_bad_next(self) -> None:
        with pytest.raises(ContractError):
            parse_agent_turn({"next": "explode"})

    def test_action_to_task(self) -> None:
        turn = parse_agent_turn({"actions": [{"type": "run_command", "command": "ls"}]})
        task = turn.actions[0].to_task("c1-a1")
        assert task.id == "c1-a1"
        assert task.type == TaskType.RUN_COMMAND
        assert task.title == "run_command ls"


class TestParseClassification:
    def test_valid(self) -> None:
        verdict = parse_classification('{"status": "stuck", "summary": "loop"}')
        assert verdict.status == ClassificationStatus.STUCK
        assert verdict.summary == "loop"

    def test_invalid_status(self) -> None:
        with pytest.raises(ContractError):
            parse_classification({"status": "fine"})


class TestParseRetryDecision:
    def test_run_accepts_single_string(self) -> None:
        decision = parse_retry_decision({"action": "run", "commands": "npm ci"})
        assert decision.action == RetryAction.RUN
        assert decision.commands == ["npm ci"]

    def test_ask_user_default_question(self) -> None:
        decision = parse_retry_decision({"action": "ask_user"})
        assert decision.question == "Additional details required."

    def test_abort(self) -> None:
        decision = parse_retry_decision({"action": "abort", "note": "nope"})
        assert decision.action == RetryAction.ABORT
        assert decision.note == "nope"

    def test_run_without_commands(self) -> None:
        with pytest.raises(ContractError):
            parse_retry_decision({"action": "run", "commands": []})

    def test_unknown_action(self) -> None:
        with pytest.raises(ContractError):
            parse_retry_decision({"action": "pray"})


class TestParsePlanAdjustment:
    def test_cancel(self) -> None:
        adjustment = parse_plan_adjustment({"action": "cancel", "note": "user changed mind"})
        assert isinstance(adjustment, CancelAdjustment)

    def test_update(self) -> None:
        adjustment = parse_plan_adjustment({"action": "update", "tasks": [
            {"id": "t9", "type": "read_file", "path": "setup.py"},
        ]})
        assert isinstance(adjustment, UpdateAdjustment)
        assert adjustment.tasks[0].to_task().path == "setup.py"

    def test_update_requires_tasks(self) -> None:
        with pytest.raises(ContractError):
            parse_plan_adjustment({"action": "update"})
