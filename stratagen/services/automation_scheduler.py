"""Headless sweep over due automation rules.

Invoked by an external time-based trigger. Rules are processed one at a
time to bound load on the shared upstreams; a failure in one rule is
logged and recorded without stopping the sweep.

Every scheduled attempt moves the rule's ``next_run_at`` forward by its
frequency, whether the attempt succeeded or failed, so a rule is evaluated
at most once per sweep and a failing rule cannot stall on the same due
time. Manual runs record an execution but leave the schedule untouched.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from stratagen.db.models import (
    AutomationExecution,
    AutomationRule,
    ExecutionStatus,
    ScheduleFrequency,
    TriggerType,
    to_iso,
)
from stratagen.errors import UpstreamError, format_message
from stratagen.services.automation_repository import AutomationRepository
from stratagen.services.generation_pipeline import GenerationPipeline

logger = logging.getLogger(__name__)

_FREQUENCY_INTERVALS = {
    ScheduleFrequency.hourly.value: timedelta(hours=1),
    ScheduleFrequency.daily.value: timedelta(days=1),
    ScheduleFrequency.weekly.value: timedelta(weeks=1),
}
_DEFAULT_INTERVAL = timedelta(days=1)


def compute_next_run(frequency: str | None, now: datetime) -> datetime:
    """Next eligible run time; unknown frequencies fall back to daily."""
    return now + _FREQUENCY_INTERVALS.get(frequency or "", _DEFAULT_INTERVAL)


def build_automation_payload(rule: AutomationRule, trigger: TriggerType) -> dict:
    """Tool arguments for one rule run."""
    return {
        "userId": rule.user_id,
        "ruleId": rule.id,
        "categories": rule.categories,
        "maxCards": rule.max_cards_per_run,
        "targetGroups": rule.groups,
        "optimizationLevel": rule.optimization_level,
        "triggerType": trigger.value,
    }


@dataclass(frozen=True)
class SweepResult:
    """Aggregate counts for one sweep."""

    processed: int
    succeeded: int
    failed: int
    timestamp: str


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AutomationScheduler:
    """Runs due rules through the generation pipeline."""

    def __init__(
        self,
        repository: AutomationRepository,
        pipeline: GenerationPipeline,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._pipeline = pipeline
        self._clock = clock

    async def sweep(self) -> SweepResult:
        """Process every rule due at the start of the sweep.

        Returns:
            SweepResult with processed, succeeded and failed counts.
        """
        now = self._clock()
        rules = self._repository.list_due_rules(now)
        logger.info("Automation sweep: %d due rules", len(rules))

        processed = 0
        succeeded = 0
        for rule in rules:
            processed += 1
            rule_id = rule.id
            frequency = rule.schedule_frequency
            try:
                execution = await self.run_rule(rule, TriggerType.scheduled)
                if execution.status == ExecutionStatus.completed.value:
                    succeeded += 1
            except Exception:
                logger.exception("Automation rule %s could not be executed", rule_id)
                self._repository.rollback()

            try:
                self._repository.advance_next_run(rule, compute_next_run(frequency, now))
            except Exception:
                logger.exception("Failed to advance schedule for rule %s", rule_id)
                self._repository.rollback()

        logger.info(
            "Automation sweep finished: processed=%d succeeded=%d",
            processed,
            succeeded,
        )
        return SweepResult(
            processed=processed,
            succeeded=succeeded,
            failed=processed - succeeded,
            timestamp=to_iso(now),
        )

    async def run_rule(
        self, rule: AutomationRule, trigger: TriggerType
    ) -> AutomationExecution:
        """Run one rule and record exactly one terminal execution update.

        Pipeline failures are recorded on the execution row, not raised.

        Args:
            rule: Rule to run.
            trigger: Whether the run is scheduled or manual.

        Returns:
            The finished execution row.
        """
        execution = self._repository.create_execution(rule, trigger, self._clock())
        execution_id = execution.id
        payload = build_automation_payload(rule, trigger)
        logger.info("Running rule %s (%s), execution %s", rule.id, trigger.value, execution.id)

        try:
            outcome = await self._pipeline.run_automation(payload)
        except UpstreamError as e:
            logger.warning("Rule %s failed (%s): %s", rule.id, e.code, e.message)
            return self._repository.fail_execution(
                execution, e.message, e.to_details(), self._clock()
            )
        except Exception as e:
            logger.exception("Rule %s raised during pipeline invocation", rule.id)
            return self._repository.fail_execution(
                execution,
                format_message("E-4002", message=str(e) or type(e).__name__),
                {"code": "E-4002", "type": type(e).__name__},
                self._clock(),
            )

        try:
            return self._repository.complete_execution(
                execution,
                cards_created=outcome.cards_created,
                tokens_used=outcome.tokens_used,
                cost=outcome.cost,
                completed_at=self._clock(),
            )
        except Exception as e:
            # The row is back to its committed ``running`` state after rollback.
            logger.exception("Could not record completion of execution %s", execution_id)
            self._repository.rollback()
            return self._repository.fail_execution(
                execution,
                format_message(
                    "E-4002", message=f"could not store execution metrics: {e}"
                ),
                {"code": "E-4002", "type": type(e).__name__},
                self._clock(),
            )
