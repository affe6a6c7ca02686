"""Per-request generation state machine with observer fan-out.

Lifecycle: idle -> processing -> complete | error | cancelled

Terminal phases are final. Progress updates that arrive after a terminal
transition (late callbacks after cancellation) are ignored rather than
raising, and a second terminal call keeps the first outcome.

Observers are synchronous: each transition is delivered to every observer
before the mutating call returns, so observers see transitions in exactly
the order they happen.
"""

import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from stratagen.errors import GenerationCancelled

logger = logging.getLogger(__name__)

_session_counter = itertools.count(1)


class SessionPhase(str, Enum):
    """Phases of a generation session."""

    idle = "idle"
    processing = "processing"
    complete = "complete"
    error = "error"
    cancelled = "cancelled"


TERMINAL_PHASES = frozenset(
    {SessionPhase.complete, SessionPhase.error, SessionPhase.cancelled}
)


class SessionStateError(RuntimeError):
    """Raised for transitions the state machine never allows (e.g. restart)."""


@dataclass(frozen=True)
class SessionEvent:
    """One observed transition.

    Attributes:
        session_id: Session that transitioned.
        phase: Session phase after the transition.
        step: Caller-supplied label for the current processing step.
        progress: Progress after the transition (0-100).
        message: Latest human-readable status.
        result: Terminal payload for ``complete`` transitions.
        error_code: Registry code for ``error``/``cancelled`` transitions.
    """

    session_id: str
    phase: SessionPhase
    step: str
    progress: int
    message: str
    result: dict | None = None
    error_code: str | None = None

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


class SessionObserver(Protocol):
    """Receives every transition of a session it is subscribed to."""

    def on_session_event(self, session: "GenerationSession", event: SessionEvent) -> None:
        ...


def _new_session_id() -> str:
    return f"ai-session-{int(time.time() * 1000)}-{next(_session_counter)}"


@dataclass(eq=False)
class GenerationSession:
    """State of one logical generation attempt.

    Exactly one writer (the orchestration flow or the registry on cancel)
    mutates a session; stream responders and the registry only observe.

    Attributes:
        owner_id: Caller that started the session.
        clock: Monotonic time source for start/end timestamps.
    """

    owner_id: str | None = None
    clock: Callable[[], float] = time.monotonic
    id: str = ""
    title: str = ""
    phase: SessionPhase = SessionPhase.idle
    step: str = ""
    progress: int = 0
    message: str = ""
    start_time: float | None = None
    end_time: float | None = None
    result: dict | None = None
    error_code: str | None = None
    _observers: list[SessionObserver] = field(default_factory=list, repr=False)
    _live_observer: SessionObserver | None = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    # Observers

    def subscribe(self, observer: SessionObserver) -> None:
        """Register a passive observer (history recorders, audit writers)."""
        self._observers.append(observer)

    def attach_live_observer(self, observer: SessionObserver) -> None:
        """Attach the single live observer (the stream responder).

        Raises:
            SessionStateError: If a different live observer is attached.
        """
        if self._live_observer is not None and self._live_observer is not observer:
            raise SessionStateError(f"Session {self.id} already has a live observer")
        self._live_observer = observer

    def detach_live_observer(self, observer: SessionObserver) -> None:
        if self._live_observer is observer:
            self._live_observer = None

    @property
    def live_observer(self) -> SessionObserver | None:
        return self._live_observer

    def _notify(self, event: SessionEvent) -> None:
        observers = list(self._observers)
        if self._live_observer is not None:
            observers.insert(0, self._live_observer)
        for observer in observers:
            try:
                observer.on_session_event(self, event)
            except Exception as e:
                logger.error(
                    "Observer %s failed on session %s: %s",
                    type(observer).__name__,
                    self.id,
                    e,
                )

    def _event(self, **extra: Any) -> SessionEvent:
        return SessionEvent(
            session_id=self.id,
            phase=self.phase,
            step=self.step,
            progress=self.progress,
            message=self.message,
            **extra,
        )

    # Transitions

    def start(self, title: str, message: str = "Starting...") -> str:
        """Move idle -> processing and allocate the session id.

        Raises:
            SessionStateError: If the session has already been started.
        """
        if self.phase != SessionPhase.idle:
            raise SessionStateError(f"Session {self.id} cannot be restarted")
        self.id = self.id or _new_session_id()
        self.title = title
        self.phase = SessionPhase.processing
        self.progress = 0
        self.message = message
        self.start_time = self.clock()
        logger.info("Session %s started: %s", self.id, title)
        self._notify(self._event())
        return self.id

    def advance(self, progress: float, message: str | None = None, step: str | None = None) -> bool:
        """Record progress while processing.

        Progress is clamped to [0, 100] and never decreases. Calls on a
        session that is not processing are ignored.

        Returns:
            True if the update was applied.
        """
        if self.phase != SessionPhase.processing:
            return False
        clamped = int(min(100, max(0, progress)))
        self.progress = max(self.progress, clamped)
        if message:
            self.message = message
        if step:
            self.step = step
        self._notify(self._event())
        return True

    def complete(self, message: str = "Processing complete!", result: dict | None = None) -> bool:
        """Terminal success. Ignored if already terminal."""
        if self.is_terminal:
            return False
        self.phase = SessionPhase.complete
        self.progress = 100
        self.message = message
        self.result = result or {}
        self.end_time = self.clock()
        logger.info("Session %s complete", self.id)
        self._notify(self._event(result=self.result))
        return True

    def error(self, message: str, code: str | None = None) -> bool:
        """Terminal failure. Ignored if already terminal."""
        if self.is_terminal:
            return False
        self.phase = SessionPhase.error
        self.message = message
        self.error_code = code
        self.end_time = self.clock()
        logger.info("Session %s failed: %s", self.id, message)
        self._notify(self._event(error_code=code))
        return True

    def cancel(self, message: str | None = None) -> bool:
        """Terminal cancellation. Ignored if already terminal."""
        if self.is_terminal:
            return False
        cancelled = GenerationCancelled()
        self.phase = SessionPhase.cancelled
        self.message = message or cancelled.message
        self.error_code = cancelled.code
        self.end_time = self.clock()
        logger.info("Session %s cancelled", self.id)
        self._notify(self._event(error_code=self.error_code))
        return True

    def snapshot(self) -> dict:
        """Serializable view of the session for API responses."""
        duration_ms = None
        if self.start_time is not None and self.end_time is not None:
            duration_ms = int((self.end_time - self.start_time) * 1000)
        return {
            "id": self.id,
            "title": self.title,
            "phase": self.phase.value,
            "step": self.step,
            "progress": self.progress,
            "message": self.message,
            "error_code": self.error_code,
            "duration_ms": duration_ms,
        }
