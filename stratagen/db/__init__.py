"""Database module for automation rules and execution audit."""

from stratagen.db.connection import (
    SessionLocal,
    engine,
    get_db,
    init_db,
)
from stratagen.db.models import (
    AutomationExecution,
    AutomationRule,
    Base,
    ExecutionStatus,
    OptimizationLevel,
    ScheduleFrequency,
    TriggerType,
)

__all__ = [
    # Models
    "Base",
    "AutomationRule",
    "AutomationExecution",
    # Enums
    "ScheduleFrequency",
    "OptimizationLevel",
    "TriggerType",
    "ExecutionStatus",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "init_db",
]
