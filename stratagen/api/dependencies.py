"""FastAPI dependencies exposing the stores built in the app lifespan."""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from stratagen.config import Settings
from stratagen.db.connection import get_db
from stratagen.services.analysis_cache import ResultCache
from stratagen.services.automation_repository import AutomationRepository
from stratagen.services.automation_scheduler import AutomationScheduler
from stratagen.services.generation_pipeline import GenerationPipeline
from stratagen.services.rate_limit import RateLimiter
from stratagen.services.session_registry import SessionRegistry
from stratagen.services.tool_client import ToolInvocationClient


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_result_cache(request: Request) -> ResultCache:
    return request.app.state.result_cache


def get_tool_client(request: Request) -> ToolInvocationClient:
    return request.app.state.tool_client


def get_pipeline(
    client: ToolInvocationClient = Depends(get_tool_client),
) -> GenerationPipeline:
    return GenerationPipeline(client)


def get_repository(db: Session = Depends(get_db)) -> AutomationRepository:
    return AutomationRepository(db)


def get_scheduler(
    repository: AutomationRepository = Depends(get_repository),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> AutomationScheduler:
    return AutomationScheduler(repository, pipeline)
