"""FastAPI routes for inspecting and cancelling generation sessions.

Handlers are async so registry access stays on the event loop thread.
"""

import logging

from fastapi import APIRouter, Depends

from stratagen.api.dependencies import get_registry
from stratagen.api.middleware.auth import get_caller_id
from stratagen.api.schemas import IndicatorPosition, SessionListResponse, SessionResponse
from stratagen.errors import NotFoundError
from stratagen.services.generation_session import GenerationSession
from stratagen.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai/sessions", tags=["sessions"])


def _owned_session(
    registry: SessionRegistry, session_id: str, caller_id: str
) -> GenerationSession:
    session = registry.get_session(session_id)
    if session is None or session.owner_id != caller_id:
        raise NotFoundError("Session", session_id)
    return session


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    caller_id: str = Depends(get_caller_id),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionListResponse:
    """Return the caller's current session and recent terminal sessions."""
    current = registry.current_session
    if current is not None and current.owner_id != caller_id:
        current = None
    history = [s for s in registry.history if s.owner_id == caller_id]
    return SessionListResponse(
        current=SessionResponse(**current.snapshot()) if current else None,
        history=[SessionResponse(**s.snapshot()) for s in history],
        active_count=registry.active_count,
    )


@router.get("/indicator-position", response_model=IndicatorPosition)
async def get_indicator_position(
    registry: SessionRegistry = Depends(get_registry),
) -> IndicatorPosition:
    return IndicatorPosition(**registry.indicator_position)


@router.put("/indicator-position", response_model=IndicatorPosition)
async def update_indicator_position(
    body: IndicatorPosition,
    registry: SessionRegistry = Depends(get_registry),
) -> IndicatorPosition:
    return IndicatorPosition(**registry.update_indicator_position(body.x, body.y))


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    caller_id: str = Depends(get_caller_id),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResponse:
    """Return one session.

    Raises:
        NotFoundError: If the session is unknown, evicted or not the caller's.
    """
    return SessionResponse(**_owned_session(registry, session_id, caller_id).snapshot())


@router.post("/{session_id}/cancel", response_model=SessionResponse)
async def cancel_session(
    session_id: str,
    caller_id: str = Depends(get_caller_id),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionResponse:
    """Cancel an in-flight session; a terminal session is returned unchanged."""
    _owned_session(registry, session_id, caller_id)
    session = registry.cancel(session_id)
    logger.info("Caller %s cancelled session %s", caller_id, session_id)
    return SessionResponse(**session.snapshot())
