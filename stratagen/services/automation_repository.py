"""Persistence operations for automation rules and execution audit rows.

Wraps a synchronous SQLAlchemy session. Every write commits immediately so
an execution row is visible in ``running`` state before the pipeline is
invoked, and its terminal update lands even if a later rule fails.
"""

import json
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from stratagen.db.models import (
    AutomationExecution,
    AutomationRule,
    ExecutionStatus,
    TriggerType,
    from_iso,
    to_iso,
)
from stratagen.errors import NotFoundError

logger = logging.getLogger(__name__)

MAX_EXECUTIONS_PAGE = 100


class ExecutionStateError(RuntimeError):
    """Raised when an execution row would receive a second terminal update."""


class AutomationRepository:
    """Rule queries and execution bookkeeping for the scheduler."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def rollback(self) -> None:
        self._db.rollback()

    # Rules

    def list_due_rules(self, now: datetime) -> list[AutomationRule]:
        """Rules with automation enabled whose next run time has passed.

        Due times are compared as datetimes, so rows written outside the
        ORM with a ``Z`` suffix or a non-UTC offset are still ordered
        correctly. Rows with an unparseable time are skipped.
        """
        candidates = (
            self._db.query(AutomationRule)
            .filter(
                AutomationRule.automation_enabled.is_(True),
                AutomationRule.next_run_at.is_not(None),
            )
            .all()
        )

        now = from_iso(to_iso(now))
        due: list[tuple[datetime, AutomationRule]] = []
        for rule in candidates:
            try:
                next_run = from_iso(rule.next_run_at)
            except ValueError:
                logger.warning(
                    "Rule %s has unparseable next_run_at %r; skipped",
                    rule.id,
                    rule.next_run_at,
                )
                continue
            if next_run is not None and next_run <= now:
                due.append((next_run, rule))
        due.sort(key=lambda item: item[0])
        return [rule for _, rule in due]

    def get_rule_for_owner(self, rule_id: str, owner_id: str) -> AutomationRule:
        """Fetch a rule owned by ``owner_id``.

        Raises:
            NotFoundError: If the rule does not exist or belongs to another user.
        """
        rule = (
            self._db.query(AutomationRule)
            .filter(AutomationRule.id == rule_id, AutomationRule.user_id == owner_id)
            .first()
        )
        if rule is None:
            raise NotFoundError("Automation rule", rule_id)
        return rule

    def advance_next_run(self, rule: AutomationRule, next_run: datetime) -> None:
        previous = rule.next_run_at
        rule.next_run_at = to_iso(next_run)
        self._db.commit()
        logger.info("Rule %s next run %s -> %s", rule.id, previous, rule.next_run_at)

    # Executions

    def create_execution(
        self,
        rule: AutomationRule,
        trigger: TriggerType,
        started_at: datetime,
    ) -> AutomationExecution:
        """Insert and commit a ``running`` execution row for ``rule``."""
        execution = AutomationExecution(
            rule_id=rule.id,
            user_id=rule.user_id,
            trigger_type=trigger.value,
            status=ExecutionStatus.running.value,
            started_at=to_iso(started_at),
        )
        self._db.add(execution)
        self._db.commit()
        self._db.refresh(execution)
        return execution

    def complete_execution(
        self,
        execution: AutomationExecution,
        *,
        cards_created: int,
        tokens_used: int,
        cost: float,
        completed_at: datetime,
    ) -> AutomationExecution:
        """Apply the ``completed`` terminal update.

        Raises:
            ExecutionStateError: If the row is already terminal.
        """
        self._finish(execution, ExecutionStatus.completed, completed_at)
        execution.cards_created = cards_created
        execution.tokens_used = tokens_used
        execution.cost_incurred = cost
        self._db.commit()
        return execution

    def fail_execution(
        self,
        execution: AutomationExecution,
        message: str,
        details: dict | None,
        completed_at: datetime,
    ) -> AutomationExecution:
        """Apply the ``failed`` terminal update.

        Raises:
            ExecutionStateError: If the row is already terminal.
        """
        self._finish(execution, ExecutionStatus.failed, completed_at)
        execution.error_message = message
        execution.error_details = json.dumps(details) if details is not None else None
        self._db.commit()
        return execution

    def _finish(
        self,
        execution: AutomationExecution,
        status: ExecutionStatus,
        completed_at: datetime,
    ) -> None:
        if execution.status != ExecutionStatus.running.value:
            raise ExecutionStateError(
                f"Execution {execution.id} already {execution.status}"
            )
        execution.status = status.value
        execution.completed_at = to_iso(completed_at)
        started = from_iso(execution.started_at)
        finished = from_iso(execution.completed_at)
        if started is not None and finished is not None:
            execution.processing_time_ms = max(
                0, int((finished - started).total_seconds() * 1000)
            )

    def list_executions(
        self,
        owner_id: str,
        rule_id: str | None = None,
        limit: int = 20,
    ) -> list[AutomationExecution]:
        """Most recent executions for ``owner_id``, optionally for one rule."""
        query = self._db.query(AutomationExecution).filter(
            AutomationExecution.user_id == owner_id
        )
        if rule_id:
            query = query.filter(AutomationExecution.rule_id == rule_id)
        limit = max(1, min(limit, MAX_EXECUTIONS_PAGE))
        return (
            query.order_by(AutomationExecution.started_at.desc())
            .limit(limit)
            .all()
        )
