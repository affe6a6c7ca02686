"""Service layer for stratagen.

Upstream client, generation sessions and streaming, the in-process rate
limiter and result cache, and the automation scheduler.
"""

from stratagen.services.analysis_cache import ResultCache, analysis_fingerprint, is_cacheable
from stratagen.services.automation_repository import AutomationRepository, ExecutionStateError
from stratagen.services.automation_scheduler import AutomationScheduler, SweepResult, compute_next_run
from stratagen.services.cancellation import CancellationToken
from stratagen.services.generation_pipeline import (
    FIELD_GENERATION_FLOW,
    TRANSCRIPT_EDIT_FLOW,
    GenerationPipeline,
)
from stratagen.services.generation_session import GenerationSession, SessionPhase
from stratagen.services.rate_limit import RateLimiter
from stratagen.services.session_registry import SessionRegistry
from stratagen.services.streaming import StreamingResponder
from stratagen.services.tool_client import ToolInvocationClient

__all__ = [
    "ToolInvocationClient",
    "CancellationToken",
    "GenerationSession",
    "SessionPhase",
    "SessionRegistry",
    "StreamingResponder",
    "GenerationPipeline",
    "FIELD_GENERATION_FLOW",
    "TRANSCRIPT_EDIT_FLOW",
    "RateLimiter",
    "ResultCache",
    "analysis_fingerprint",
    "is_cacheable",
    "AutomationRepository",
    "ExecutionStateError",
    "AutomationScheduler",
    "SweepResult",
    "compute_next_run",
]
