"""Cooperative cancellation token threaded through every upstream call.

A token is owned by the session registry and handed to the pipeline. The
pipeline wraps each suspension point in ``token.guard(...)``: the token is
checked before the call is issued, the in-flight call is aborted as soon as
the token fires, and a result that arrives after cancellation is discarded.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from stratagen.errors import GenerationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal for a single generation."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Fire the token. Idempotent; the first reason is kept."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise GenerationCancelled if the token has fired."""
        if self._event.is_set():
            raise GenerationCancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Args:
            awaitable: The suspension point (typically an HTTP call).

        Returns:
            The awaitable's result when it finishes before cancellation.

        Raises:
            GenerationCancelled: If the token was already set, fires while
                the call is in flight, or fired before the result could be
                used.
        """
        if self._event.is_set():
            # Never issue the call; close the coroutine so it is not leaked.
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise GenerationCancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done and not self._event.is_set():
            return task.result()

        if task.done():
            # Response already received; the result is discarded.
            if not task.cancelled() and task.exception() is not None:
                logger.debug(
                    "Discarding upstream failure after cancellation: %s",
                    task.exception(),
                )
        else:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug("Aborted call raised during cancellation: %s", e)
        raise GenerationCancelled()
