"""Retry planning.

Turns a classification into exactly one of ``run``/``ask_user``/``abort``.
Anything the external planner says that is not a valid decision becomes
an ``abort``; there is no second attempt.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from taskcli.contracts import parse_retry_decision
from taskcli.errors import CancellationError, TaskCLIError
from taskcli.types.command import Classification, RetryDecision

if TYPE_CHECKING:
    from taskcli.brains.base import RetryBackend
    from taskcli.core.cancellation import CancellationToken
    from taskcli.core.classifier import ClassificationContext

logger = logging.getLogger(__name__)

NO_DECISION_NOTE = "No valid retry plan"


class RetryPlanner:
    """Asks the external retry backend what to do next."""

    def __init__(self, backend: RetryBackend | None = None) -> None:
        self._backend = backend

    async def decide(
        self,
        classification: Classification,
        context: ClassificationContext,
        *,
        token: CancellationToken | None = None,
    ) -> RetryDecision:
        if self._backend is None:
            return RetryDecision.abort(classification.summary or NO_DECISION_NOTE)

        request: dict[str, Any] = {
            **context.to_dict(),
            "classification": {
                "status": str(classification.status),
                "summary": classification.summary,
                "hint": classification.hint,
            },
        }
        try:
            call = self._backend.plan_retry(request)
            raw = await (token.race(call) if token is not None else call)
            decision = parse_retry_decision(raw)
        except CancellationError:
            raise
        except TaskCLIError as e:
            logger.warning("retry planner answer unusable, aborting: %s", e)
            return RetryDecision.abort(NO_DECISION_NOTE)
        except Exception:
            logger.exception("retry planner call failed, aborting")
            return RetryDecision.abort(NO_DECISION_NOTE)

        logger.info("retry decision for %r: %s", context.command, decision.action)
        return decision
