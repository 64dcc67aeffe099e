"""Cancellation tokens shared by every awaiting step of an action run."""

import asyncio
import contextlib
from typing import Awaitable, Optional, TypeVar

from localgpt.services.exceptions import Cancelled

T = TypeVar("T")


class CancelToken:
    """One-shot cancellation signal for a single user-triggered operation.

    The token is passed down through orchestration, provider requests and
    stream decoding. Every suspension point awaits through `race()`, so
    cancelling aborts the pending network read immediately instead of at
    the next chunk boundary.

    Example:
        >>> token = CancelToken()
        >>> task = asyncio.create_task(runner.run(action, text, print, token))
        >>> token.cancel()
        >>> await task  # raises Cancelled
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation. Safe to call more than once."""
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise Cancelled if the token has fired."""
        if self._event.is_set():
            raise Cancelled()

    async def wait(self) -> None:
        """Block until the token fires."""
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token fires first.

        Args:
            awaitable: Coroutine or future to await

        Returns:
            The awaitable's result

        Raises:
            Cancelled: If the token fired before the awaitable completed.
                The awaitable is cancelled and awaited before raising.
        """
        work = asyncio.ensure_future(awaitable)
        if self._event.is_set():
            work.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await work
            raise Cancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            waiter.cancel()
            raise

        if work.done():
            waiter.cancel()
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise Cancelled()


async def race(token: Optional[CancelToken], awaitable: Awaitable[T]) -> T:
    """Await through `token` when one is given, plainly otherwise."""
    if token is None:
        return await awaitable
    return await token.race(awaitable)
