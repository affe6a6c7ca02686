"""Stream responder bridging one GenerationSession to an SSE channel.

The responder is the session's live observer. Each transition becomes one
frame payload on an asyncio.Queue that the HTTP response drains. Terminal
transitions enqueue the final frame followed by an end-of-stream marker,
after which nothing else is forwarded.

Frame payloads:
    {"type": "progress", "phase": ..., "message": ..., "progress": ...}
    {...result fields, "type": "complete"}  (the discriminator wins)
    {"type": "error", "error": ..., "code": ...}
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from stratagen.services.generation_session import (
    GenerationSession,
    SessionEvent,
    SessionPhase,
)

logger = logging.getLogger(__name__)

_END_OF_STREAM = None


def event_to_frame(event: SessionEvent) -> dict[str, Any]:
    """Build the frame payload for a session transition."""
    if event.phase == SessionPhase.complete:
        return {**(event.result or {}), "type": "complete"}
    if event.phase == SessionPhase.error:
        return {"type": "error", "error": event.message, "code": event.error_code}
    if event.phase == SessionPhase.cancelled:
        return {
            "type": "error",
            "error": event.message,
            "code": event.error_code,
            "cancelled": True,
        }
    return {
        "type": "progress",
        "phase": event.step or event.phase.value,
        "message": event.message,
        "progress": event.progress,
    }


def format_frame(payload: dict[str, Any]) -> str:
    """Serialize a payload as a self-delimited ``data: <JSON>\\n\\n`` frame."""
    return f"data: {json.dumps(payload)}\n\n"


class StreamingResponder:
    """Live observer that forwards one session's transitions as frames.

    Disconnecting the consumer (``detach``) stops forwarding but never
    cancels the generation; cancellation goes through the registry.
    """

    def __init__(self, session: GenerationSession) -> None:
        self._session = session
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._closed = False
        self._detached = False
        self.frames_sent = 0

    @property
    def session_id(self) -> str:
        return self._session.id

    @property
    def closed(self) -> bool:
        """True once the terminal frame and end-of-stream marker are queued."""
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    def on_session_event(self, session: GenerationSession, event: SessionEvent) -> None:
        if self._closed or self._detached:
            return
        self._queue.put_nowait(event_to_frame(event))
        self.frames_sent += 1
        if event.terminal:
            self._close()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END_OF_STREAM)
        self._session.detach_live_observer(self)
        logger.debug("Stream for session %s closed after %d frames", self.session_id, self.frames_sent)

    def detach(self) -> None:
        """Stop forwarding; called when the consumer goes away."""
        if self._detached:
            return
        self._detached = True
        self._session.detach_live_observer(self)
        if not self._closed:
            logger.info(
                "Consumer of session %s disconnected; generation continues",
                self.session_id,
            )

    async def frames(self) -> AsyncIterator[dict[str, Any]]:
        """Yield frame payloads in order until the stream closes."""
        while True:
            payload = await self._queue.get()
            if payload is _END_OF_STREAM:
                return
            yield payload
