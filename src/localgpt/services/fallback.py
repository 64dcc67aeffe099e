"""Primary/fallback provider orchestration."""

from typing import AsyncIterator, Callable, Optional

from localgpt.models.action import Action
from localgpt.models.stream import StreamUpdate
from localgpt.services.cancellation import CancelToken
from localgpt.services.exceptions import Cancelled, ProviderUnreachable
from localgpt.services.providers.base import ProviderClient, UpdateCallback
from localgpt.utils.logging import get_logger


logger = get_logger(__name__)


class FallbackOrchestrator:
    """
    Runs actions on a primary provider, retrying once on a secondary one.

    Only ProviderUnreachable triggers the fallback; cancellation and
    in-stream protocol errors propagate as-is, and so does any failure of
    the secondary. The secondary restarts the whole operation with its own
    default model, so any text the primary delivered before failing is void.
    """

    def __init__(self, primary: ProviderClient, secondary: Optional[ProviderClient] = None):
        """
        Initialize orchestrator.

        Args:
            primary: Provider tried first
            secondary: Optional provider tried when the primary is unreachable
        """
        self.primary = primary
        self.secondary = secondary

    async def run(
        self,
        text: str,
        action: Action,
        on_update: Optional[UpdateCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        on_fallback: Optional[Callable[[ProviderUnreachable], None]] = None,
    ) -> str:
        """
        Run an action, falling back once if the primary is unreachable.

        Args:
            text: Input text
            action: Action to run
            on_update: Called with the full text generated so far
            cancel_token: Optional cancellation token
            on_fallback: Called with the primary's error right before the
                secondary starts. Callers reset any displayed partial text
                here: the secondary's updates form a new stream.

        Returns:
            Final generated text

        Raises:
            ProviderUnreachable: If the primary fails and there is no secondary,
                or if the secondary fails too
            StreamProtocolError: On malformed stream content
            Cancelled: If the token fires
        """
        try:
            return await self.primary.process(text, action, on_update, cancel_token)
        except ProviderUnreachable as e:
            if self.secondary is None:
                raise
            self._log_fallback(action, e)
            if cancel_token is not None and cancel_token.cancelled:
                raise Cancelled() from e
            if on_fallback is not None:
                on_fallback(e)

        return await self.secondary.process(text, action, on_update, cancel_token)

    async def stream(
        self,
        text: str,
        action: Action,
        cancel_token: Optional[CancelToken] = None,
    ) -> AsyncIterator[StreamUpdate]:
        """
        Pull-based variant of run().

        The secondary is used only if the primary failed before yielding
        anything: updates already handed to the consumer cannot be taken
        back, so a primary failure after its first update propagates. Use
        run() with on_fallback to restart after partial output.

        Yields:
            StreamUpdate with the full text generated so far
        """
        delivered = False
        try:
            async for update in self.primary.stream(text, action, cancel_token):
                delivered = True
                yield update
            return
        except ProviderUnreachable as e:
            if self.secondary is None or delivered:
                raise
            self._log_fallback(action, e)

        async for update in self.secondary.stream(text, action, cancel_token):
            yield update

    def _log_fallback(self, action: Action, error: ProviderUnreachable) -> None:
        logger.warning(
            "provider_fallback",
            action=action.name,
            primary=self.primary.dialect.name,
            secondary=self.secondary.dialect.name if self.secondary else None,
            error=str(error),
        )
