"""FastAPI routes for streaming generation.

Each request starts a session, attaches a stream responder as its live
observer, and runs the pipeline as a background task. Frames are sent as
unnamed SSE events (``data: <JSON>``) with the frame type embedded in the
JSON payload. Request validation happens before the stream opens.
"""

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from stratagen.api.dependencies import get_pipeline, get_registry
from stratagen.api.middleware.auth import get_caller_id
from stratagen.api.schemas import FieldGenerationRequest, TranscriptEditRequest
from stratagen.services.generation_pipeline import (
    FIELD_GENERATION_FLOW,
    TRANSCRIPT_EDIT_FLOW,
    GenerationPipeline,
    InteractiveFlow,
)
from stratagen.services.session_registry import SessionRegistry
from stratagen.services.streaming import StreamingResponder

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generation"])


async def _frame_generator(
    responder: StreamingResponder,
) -> AsyncGenerator[dict, None]:
    """Yield SSE events from the responder until the stream closes.

    Yields:
        Event dictionaries with a JSON-encoded 'data' key.
    """
    try:
        async for frame in responder.frames():
            yield {"data": json.dumps(frame)}
    finally:
        # Covers client disconnects; the generation keeps running.
        responder.detach()


def start_stream(
    registry: SessionRegistry,
    pipeline: GenerationPipeline,
    flow: InteractiveFlow,
    payload: dict,
    caller_id: str,
) -> EventSourceResponse:
    """Start a session for ``flow`` and stream its transitions.

    Args:
        registry: Registry that owns the session and its token.
        pipeline: Pipeline that drives the session.
        flow: Progress plan and tool for the endpoint.
        payload: Tool request body.
        caller_id: Owner of the new session.

    Returns:
        EventSourceResponse draining the session's frames.
    """
    session_id = registry.start_session(flow.title, owner_id=caller_id)
    session = registry.get_session(session_id)
    responder = StreamingResponder(session)
    registry.attach_stream(session_id, responder)

    task = asyncio.create_task(
        pipeline.run_interactive(session, registry.token(session_id), flow, payload)
    )
    registry.track_task(session_id, task)
    logger.info("Streaming session %s (%s) for caller %s", session_id, flow.tool_name, caller_id)

    return EventSourceResponse(
        _frame_generator(responder),
        sep="\n",
        headers={"X-Session-Id": session_id},
    )


@router.post("/ai/edit-mode/generate")
async def generate_fields(
    body: FieldGenerationRequest,
    caller_id: str = Depends(get_caller_id),
    registry: SessionRegistry = Depends(get_registry),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> EventSourceResponse:
    """Stream generation of a card's fields.

    Frames: progress (context_gathering, configuring, generating,
    optimizing), then one complete or error frame.
    """
    payload = body.to_tool_payload(userId=caller_id)
    return start_stream(registry, pipeline, FIELD_GENERATION_FLOW, payload, caller_id)


@router.post("/voice/edit")
async def voice_edit(
    body: TranscriptEditRequest,
    caller_id: str = Depends(get_caller_id),
    registry: SessionRegistry = Depends(get_registry),
    pipeline: GenerationPipeline = Depends(get_pipeline),
) -> EventSourceResponse:
    """Stream a transcript-driven edit of a card."""
    payload = body.to_tool_payload(userId=caller_id)
    return start_stream(registry, pipeline, TRANSCRIPT_EDIT_FLOW, payload, caller_id)
