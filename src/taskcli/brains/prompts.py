"""Prompt templates for the LLM-backed collaborators.

Each builder returns the user message; :data:`SYSTEM_PROMPT` is shared.
Every JSON-producing prompt ends by restating the exact shape expected,
which :mod:`taskcli.contracts` then enforces.
"""

from __future__ import annotations

import json
from typing import Any

from taskcli.types.task import Task

SYSTEM_PROMPT = (
    "You are the planning and execution brain of taskcli, a command-line tool "
    "that turns a goal into small, typed steps and runs them in the user's "
    "working directory. When asked for JSON, answer with one JSON object and "
    "nothing else."
)

TASK_TYPES_DOC = """\
- read_file {path}
- write_file {path, content? | content_prompt?}
- generate_file_from_prompt {path, prompt}
- edit_file {path, instruction}
- run_command {command, cwd?, confirm?}
- search_web {query, numResults?}
- ask_user {questions: [string]}  (only when the goal is too vague to act on)"""


def _tasks_json(tasks: list[Task]) -> str:
    return json.dumps([t.to_dict() for t in tasks], indent=2)


def planning_prompt(goal: str, memory_summary: str, cwd: str) -> str:
    return f"""Break the goal below into an ordered list of small, safe tasks.

Working directory: {cwd}
Recent history:
{memory_summary or "None yet"}

Task types:
{TASK_TYPES_DOC}

Rules:
- Give every task a unique id, a short title and a one-line rationale.
- Use paths relative to the working directory.
- Do not inline generated code; describe it in content_prompt or prompt.
- Explore with explicit commands (ls -la, find . -name '*.py') rather than
  reading files that may not exist.
- Prefer non-interactive command flags (--yes, --no-input, CI=1).

Goal:
{goal}

Answer with JSON only:
{{"tasks": [{{"id": "T1", "type": "run_command", "title": "...", "rationale": "...", "command": "ls -la"}}]}}"""


def agent_prompt(
    goal: str,
    remaining: list[Task],
    transcript: str,
    cwd: str,
    cycle: int,
    max_actions: int,
) -> str:
    return f"""You are executing a plan, one cycle at a time. This is cycle {cycle}.

Goal:
{goal}

Working directory: {cwd}

Remaining tasks:
{_tasks_json(remaining)}

What has happened so far:
{transcript}

Choose at most {max_actions} actions for this cycle. Action types:
read_file, write_file, generate_file_from_prompt, edit_file, run_command,
search_web (same fields as the task types). Set "taskId" on an action to
the task it works on. List the ids of tasks that are finished after this
cycle in "completedTasks". Set "next" to "done" when nothing remains,
"cancel" if the goal cannot or should not be pursued, else "continue".

Answer with JSON only:
{{"speak": "short status for the user", "actions": [], "completedTasks": [],
  "next": "continue", "complete": false, "final": "", "planUpdates": []}}"""


def classification_prompt(context: dict[str, Any]) -> str:
    return f"""A shell command did not succeed. Decide whether it was waiting for
interactive input, failed with an error, or got stuck, and give a short hint.

Context:
{json.dumps(context, indent=2)}

Answer with JSON only:
{{"status": "interactive|error|stuck", "summary": "...", "hint": "..."}}"""


def retry_prompt(context: dict[str, Any]) -> str:
    return f"""A shell command did not succeed. Propose exactly one next step.

Prefer non-interactive flags and CI-friendly settings. If information only
the user has is missing, ask the user. If the command cannot work, abort.

Context:
{json.dumps(context, indent=2)}

Answer with JSON only, one of:
{{"action": "run", "commands": ["..."], "note": "..."}}
{{"action": "ask_user", "question": "..."}}
{{"action": "abort", "note": "..."}}"""


def adjust_prompt(goal: str, plan: list[Task], queued: list[str]) -> str:
    inputs = "\n".join(f"{i}. {text}" for i, text in enumerate(queued, 1)) or "(none)"
    return f"""The user sent new input while the plan below was running. Adjust it.

Goal:
{goal}

Current plan:
{_tasks_json(plan)}

New user input:
{inputs}

Keep ids of tasks that still apply, use new ids for new tasks and drop
tasks that no longer apply. Task types:
{TASK_TYPES_DOC}

Answer with JSON only, one of:
{{"action": "cancel", "note": "why"}}
{{"action": "update", "tasks": [...], "note": "what changed"}}"""


def closeout_prompt(goal: str, transcript: str) -> str:
    return f"""The session below has ended. Write a short plain-text summary for the
user: what was done, what is left, and two or three concrete next steps.

Goal:
{goal}

Session log:
{transcript}"""


def codegen_prompt(instruction: str, path: str) -> str:
    return f"""Write the complete content of {path}.

Instruction:
{instruction}

Use only information given here; do not assume other files exist.
Return only the file content, no markdown fences and no commentary."""


def edit_prompt(path: str, current: str, instruction: str) -> str:
    return f"""Edit the file {path} as instructed.

Current content:
{current}

Instruction:
{instruction}

Return only the full updated file content, no markdown fences and no commentary."""
