"""Unit tests for CancelToken."""

import asyncio

import pytest

from localgpt.services.cancellation import CancelToken, race
from localgpt.services.exceptions import Cancelled


class TestCancelToken:
    """Test token state."""

    def test_initial_state(self):
        """Test a new token has not fired."""
        token = CancelToken()
        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel_is_idempotent(self):
        """Test cancelling twice keeps the token fired."""
        token = CancelToken()
        token.cancel()
        token.cancel()

        assert token.cancelled is True
        with pytest.raises(Cancelled):
            token.raise_if_cancelled()


class TestRace:
    """Test racing awaitables against a token."""

    @pytest.mark.asyncio
    async def test_result_returned(self):
        """Test the awaitable's result passes through."""
        token = CancelToken()

        async def work():
            return 42

        assert await token.race(work()) == 42

    @pytest.mark.asyncio
    async def test_exception_propagates(self):
        """Test the awaitable's exception passes through."""
        token = CancelToken()

        async def work():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await token.race(work())

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        """Test a fired token raises without running the awaitable to completion."""
        token = CancelToken()
        token.cancel()
        finished = []

        async def work():
            await asyncio.sleep(0)
            finished.append(True)

        with pytest.raises(Cancelled):
            await token.race(work())

        assert finished == []

    @pytest.mark.asyncio
    async def test_cancel_interrupts_pending_work(self):
        """Test firing the token cancels the work it is racing."""
        token = CancelToken()
        interrupted = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                interrupted.set()
                raise

        asyncio.get_running_loop().call_later(0.01, token.cancel)

        with pytest.raises(Cancelled):
            await asyncio.wait_for(token.race(work()), timeout=5)

        assert interrupted.is_set()

    @pytest.mark.asyncio
    async def test_task_cancellation_not_swallowed(self):
        """Test cancelling the awaiting task raises CancelledError, not Cancelled."""
        token = CancelToken()
        task = asyncio.create_task(token.race(asyncio.sleep(30)))
        await asyncio.sleep(0.01)

        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_module_race_without_token(self):
        """Test race() without a token is a plain await."""

        async def work():
            return "done"

        assert await race(None, work()) == "done"
