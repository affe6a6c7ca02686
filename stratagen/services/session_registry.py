"""In-memory registry of generation sessions.

Tracks every in-flight session keyed by id, the single "current" session
(the most recently started one), a bounded most-recent-first history of
terminal sessions, and the cancellation token and task of each in-flight
generation.

Single-process only (one event loop); sessions are not shared across
workers.

Example:
    registry = SessionRegistry(history_limit=10)
    session_id = registry.start_session("Generating Vision", owner_id="u1")
    registry.update_progress(session_id, 50, "Generating content...")
    registry.complete(session_id, "Done", result={"fields": {}})
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Callable

from stratagen.errors import NotFoundError
from stratagen.services.cancellation import CancellationToken
from stratagen.services.generation_session import (
    GenerationSession,
    SessionEvent,
    SessionObserver,
)

logger = logging.getLogger(__name__)

DEFAULT_INDICATOR_POSITION = {"x": -140, "y": -60}


class SessionRegistry:
    """Owns sessions, their cancellation tokens, and outcome history."""

    def __init__(
        self,
        history_limit: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._sessions: dict[str, GenerationSession] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._history: deque[GenerationSession] = deque(maxlen=history_limit)
        self._current_id: str | None = None
        self.indicator_position: dict[str, float] = dict(DEFAULT_INDICATOR_POSITION)

    # Lifecycle

    def start_session(self, title: str, owner_id: str | None = None) -> str:
        """Create, start and make current a new session.

        The previous current session is superseded for display only; it
        keeps running and keeps its token.

        Returns:
            The new session id.
        """
        session = GenerationSession(owner_id=owner_id, clock=self._clock)
        session.subscribe(_HistoryRecorder(self))
        session_id = session.start(title)

        previous_id = self._current_id
        self._sessions[session_id] = session
        self._tokens[session_id] = CancellationToken()
        self._current_id = session_id

        # A superseded session that already finished is only in history now.
        previous = self._sessions.get(previous_id) if previous_id else None
        if previous is not None and previous.is_terminal:
            self._sessions.pop(previous_id, None)
        return session_id

    def _require(self, session_id: str) -> GenerationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session

    def update_progress(self, session_id: str, progress: float, message: str | None = None) -> bool:
        return self._require(session_id).advance(progress, message)

    def complete(self, session_id: str, message: str = "Processing complete!", result: dict | None = None) -> bool:
        return self._require(session_id).complete(message, result)

    def error(self, session_id: str, message: str, code: str | None = None) -> bool:
        return self._require(session_id).error(message, code)

    def cancel(self, session_id: str) -> GenerationSession:
        """Fire the session's token and drive it to ``cancelled``.

        Cancelling a terminal session is a no-op that returns it unchanged.

        Raises:
            NotFoundError: If the session is unknown or already evicted.
        """
        session = self.get_session(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        token = self._tokens.get(session_id)
        if token is not None:
            token.cancel()
        session.cancel()
        return session

    def cancel_all(self) -> int:
        """Cancel every in-flight session (shutdown). Returns the count."""
        active = [s.id for s in self._sessions.values() if not s.is_terminal]
        for session_id in active:
            self.cancel(session_id)
        return len(active)

    async def wait_for_tasks(self, timeout: float) -> int:
        """Wait for tracked generation tasks to finish.

        Tasks still running after ``timeout`` seconds are cancelled and
        awaited.

        Returns:
            Number of tasks that had to be force-cancelled.
        """
        tasks = list(self._tasks.values())
        if not tasks:
            return 0
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Force-cancelled %d generation tasks on shutdown", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)

    # Wiring for the interactive path

    def token(self, session_id: str) -> CancellationToken:
        token = self._tokens.get(session_id)
        if token is None:
            raise NotFoundError("Session", session_id)
        return token

    def attach_stream(self, session_id: str, observer: SessionObserver) -> None:
        """Attach the single live observer to an in-flight session."""
        self._require(session_id).attach_live_observer(observer)

    def track_task(self, session_id: str, task: asyncio.Task) -> None:
        """Hold a reference to the generation task until it finishes."""
        self._tasks[session_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(session_id, None))

    # Inspection

    def get_session(self, session_id: str) -> GenerationSession | None:
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        for past in self._history:
            if past.id == session_id:
                return past
        return None

    @property
    def current_session(self) -> GenerationSession | None:
        if self._current_id is None:
            return None
        return self.get_session(self._current_id)

    @property
    def history(self) -> list[GenerationSession]:
        """Terminal sessions, most recent first."""
        return list(self._history)

    @property
    def active_count(self) -> int:
        return sum(1 for s in self._sessions.values() if not s.is_terminal)

    def update_indicator_position(self, x: float, y: float) -> dict[str, float]:
        self.indicator_position = {"x": x, "y": y}
        return self.indicator_position

    # Observer callback

    def _record_terminal(self, session: GenerationSession) -> None:
        self._history.appendleft(session)
        self._tokens.pop(session.id, None)
        if session.id != self._current_id:
            self._sessions.pop(session.id, None)


class _HistoryRecorder:
    """Passive observer that files terminal sessions into history."""

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry

    def on_session_event(self, session: GenerationSession, event: SessionEvent) -> None:
        if event.terminal:
            self._registry._record_terminal(session)
