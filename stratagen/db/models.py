"""SQLAlchemy ORM models for automation rules and their execution audit.

Timestamps are stored as ISO8601 UTC strings (microsecond precision) for
SQLite compatibility; fixed-width formatting keeps string comparison in
step with chronological order. Uses SQLAlchemy 2.0 style with Mapped and
mapped_column.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def to_iso(value: datetime) -> str:
    """Format a datetime as a fixed-width ISO8601 UTC string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    """Parse a stored ISO8601 string back to an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return to_iso(datetime.now(UTC))


class ScheduleFrequency(str, Enum):
    """How often an automation rule runs."""

    hourly = "hourly"
    daily = "daily"
    weekly = "weekly"


class OptimizationLevel(str, Enum):
    """Cost/quality trade-off requested by the rule owner."""

    maximum_quality = "maximum_quality"
    balanced = "balanced"
    maximum_savings = "maximum_savings"


class TriggerType(str, Enum):
    """What started an execution."""

    scheduled = "scheduled"
    manual = "manual"


class ExecutionStatus(str, Enum):
    """Status values for an automation execution.

    Lifecycle: running -> completed | failed (exactly one terminal update)
    """

    running = "running"
    completed = "completed"
    failed = "failed"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class AutomationRule(Base):
    """User-configured schedule for unattended generation.

    The scheduler reads rules and owns exactly one field: ``next_run_at``.

    Attributes:
        id: UUID primary key
        user_id: Owner of the rule
        name: Display name
        enabled: Rule is active for manual use
        automation_enabled: Rule participates in scheduled sweeps
        schedule_frequency: hourly, daily or weekly
        next_run_at: ISO8601 UTC time the rule becomes due (NULL = never),
            normalized to the fixed-width form on write
        intelligence_categories: JSON list of category filters
        target_groups: JSON list of target group ids
        max_cards_per_run: Upper bound on cards generated per run
        optimization_level: Cost/quality preference
    """

    __tablename__ = "ai_generation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(nullable=False, default=True)
    automation_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)
    schedule_frequency: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ScheduleFrequency.daily.value
    )
    next_run_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    intelligence_categories: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    target_groups: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    max_cards_per_run: Mapped[int] = mapped_column(nullable=False, default=5)
    optimization_level: Mapped[str] = mapped_column(
        String(30), nullable=False, default=OptimizationLevel.balanced.value
    )

    created_at: Mapped[str] = mapped_column(String(50), nullable=False, default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    executions: Mapped[list["AutomationExecution"]] = relationship(
        back_populates="rule", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_rules_due", "automation_enabled", "next_run_at"),)

    @validates("next_run_at")
    def _normalize_next_run_at(self, key: str, value: str | datetime | None) -> str | None:
        """Store every next run time in the fixed-width UTC form.

        Raises:
            ValueError: If a string value is not ISO8601.
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return to_iso(value)
        parsed = from_iso(value)
        return to_iso(parsed) if parsed is not None else None

    @property
    def categories(self) -> list[str]:
        return _json_list(self.intelligence_categories)

    @property
    def groups(self) -> list[str]:
        return _json_list(self.target_groups)


class AutomationExecution(Base):
    """Audit record of one attempt at running a rule.

    Created ``running`` before the pipeline is invoked; receives exactly
    one terminal update afterwards.
    """

    __tablename__ = "ai_automation_executions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    rule_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ai_generation_rules.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    trigger_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TriggerType.scheduled.value
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ExecutionStatus.running.value
    )

    cards_created: Mapped[int] = mapped_column(nullable=False, default=0)
    tokens_used: Mapped[int] = mapped_column(nullable=False, default=0)
    cost_incurred: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    processing_time_ms: Mapped[int | None] = mapped_column(nullable=True)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_details: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[str] = mapped_column(String(50), nullable=False, default=utc_now_iso)
    completed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    rule: Mapped[AutomationRule] = relationship(back_populates="executions")

    __table_args__ = (Index("idx_executions_rule_started", "rule_id", "started_at"),)


def _json_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [str(v) for v in value] if isinstance(value, list) else []
