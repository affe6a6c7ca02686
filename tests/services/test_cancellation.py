"""Tests for CancellationToken.guard."""

import asyncio

import pytest

from stratagen.errors import GenerationCancelled
from stratagen.services.cancellation import CancellationToken


class TestGuard:
    @pytest.mark.asyncio
    async def test_returns_result_when_not_cancelled(self):
        token = CancellationToken()

        async def call():
            return 42

        assert await token.guard(call()) == 42

    @pytest.mark.asyncio
    async def test_already_cancelled_never_issues_call(self):
        token = CancellationToken()
        token.cancel()
        started = False

        async def call():
            nonlocal started
            started = True

        with pytest.raises(GenerationCancelled):
            await token.guard(call())
        assert started is False

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_call(self):
        token = CancellationToken()
        aborted = asyncio.Event()

        async def hanging_call():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                aborted.set()
                raise

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel("user pressed stop")

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(GenerationCancelled):
            await asyncio.wait_for(token.guard(hanging_call()), timeout=5)
        await canceller

        assert aborted.is_set()
        assert token.reason == "user pressed stop"

    @pytest.mark.asyncio
    async def test_propagates_call_errors(self):
        token = CancellationToken()

        async def failing():
            raise ValueError("upstream broke")

        with pytest.raises(ValueError, match="upstream broke"):
            await token.guard(failing())


class TestToken:
    def test_cancel_is_idempotent(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(GenerationCancelled):
            token.raise_if_cancelled()
