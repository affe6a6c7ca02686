"""FastAPI routes for scheduled and manual automation runs."""

import logging

from fastapi import APIRouter, Depends, Query

from stratagen.api.dependencies import get_repository, get_scheduler
from stratagen.api.middleware.auth import get_caller_id, require_cron_secret
from stratagen.api.schemas import ExecutionListResponse, ExecutionResponse
from stratagen.db.models import TriggerType
from stratagen.services.automation_repository import (
    MAX_EXECUTIONS_PAGE,
    AutomationRepository,
)
from stratagen.services.automation_scheduler import AutomationScheduler

logger = logging.getLogger(__name__)

router = APIRouter(tags=["automation"])


@router.api_route(
    "/cron/daily-intelligence",
    methods=["GET", "POST"],
    dependencies=[Depends(require_cron_secret)],
)
async def run_scheduled_sweep(
    scheduler: AutomationScheduler = Depends(get_scheduler),
) -> dict:
    """Run every due automation rule once.

    Returns:
        Sweep summary with processed and successful rule counts.
    """
    result = await scheduler.sweep()
    return {
        "success": True,
        "message": "Daily intelligence automation completed",
        "processedAutomationRules": result.processed,
        "successfulRules": result.succeeded,
        "timestamp": result.timestamp,
    }


@router.post("/automation/rules/{rule_id}/run", response_model=ExecutionResponse)
async def run_rule_now(
    rule_id: str,
    caller_id: str = Depends(get_caller_id),
    repository: AutomationRepository = Depends(get_repository),
    scheduler: AutomationScheduler = Depends(get_scheduler),
) -> ExecutionResponse:
    """Run one of the caller's rules immediately.

    The rule's schedule is left unchanged.

    Raises:
        NotFoundError: If the rule is unknown or owned by another caller.
    """
    rule = repository.get_rule_for_owner(rule_id, caller_id)
    execution = await scheduler.run_rule(rule, TriggerType.manual)
    return ExecutionResponse.model_validate(execution)


@router.get("/automation/executions", response_model=ExecutionListResponse)
async def list_executions(
    rule_id: str | None = None,
    limit: int = Query(20, ge=1, le=MAX_EXECUTIONS_PAGE),
    caller_id: str = Depends(get_caller_id),
    repository: AutomationRepository = Depends(get_repository),
) -> ExecutionListResponse:
    """List the caller's execution audit rows, most recent first."""
    executions = repository.list_executions(caller_id, rule_id=rule_id, limit=limit)
    return ExecutionListResponse(
        executions=[ExecutionResponse.model_validate(e) for e in executions],
        total=len(executions),
    )
