"""Running actions end to end: defaults, retrieval augmentation, fallback."""

from typing import Callable, Optional

from localgpt.models.action import Action, Creativity
from localgpt.models.config import Config
from localgpt.rag.embedding_cache import EmbeddingCache
from localgpt.rag.retriever import EmbeddingRetriever, build_enhanced_text
from localgpt.services.cancellation import CancelToken
from localgpt.services.exceptions import EmbeddingUnavailable, ProviderUnreachable
from localgpt.services.fallback import FallbackOrchestrator
from localgpt.services.providers.base import UpdateCallback
from localgpt.services.registry import create_provider
from localgpt.utils.logging import get_logger


logger = get_logger(__name__)


class ActionRunner:
    """
    Caller-side glue around the provider core.

    For each run:
    1. Actions without their own temperature get the configured creativity
    2. With a context document, the input is prefixed with the passages
       most relevant to it (skipped when retrieval is unavailable)
    3. The request goes through the FallbackOrchestrator
    """

    def __init__(
        self,
        orchestrator: FallbackOrchestrator,
        retriever: Optional[EmbeddingRetriever] = None,
        creativity: Creativity = Creativity.LOW,
    ):
        self.orchestrator = orchestrator
        self.retriever = retriever
        self.creativity = creativity

    @classmethod
    def from_config(cls, config: Config, cache: Optional[EmbeddingCache] = None) -> "ActionRunner":
        """
        Build providers, retriever and orchestrator from configuration.

        Args:
            config: Validated configuration
            cache: Shared embedding cache; a new one is created if None

        Returns:
            Ready-to-use ActionRunner
        """
        primary = create_provider(config.primary_provider)
        fallback_config = config.fallback_provider
        secondary = create_provider(fallback_config) if fallback_config is not None else None

        if cache is None:
            cache = EmbeddingCache(max_entries=config.rag.cache_max_entries)

        retriever = EmbeddingRetriever(primary, cache, config.rag)
        return cls(
            FallbackOrchestrator(primary, secondary),
            retriever=retriever,
            creativity=config.defaults.creativity,
        )

    def apply_defaults(self, action: Action) -> Action:
        """Return the action with the default temperature filled in, if it has none."""
        if action.temperature is not None:
            return action
        temperature = self.creativity.temperature
        if temperature is None:
            return action
        return action.model_copy(update={"temperature": temperature})

    async def enhance(
        self,
        action: Action,
        text: str,
        context_document: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        """
        Prefix `text` with passages of `context_document` relevant to it.

        Falls back to the unchanged text if retrieval is disabled, finds
        nothing, or the query cannot be embedded.
        """
        if self.retriever is None or not self.retriever.enabled:
            return text

        query = text or action.prompt
        if not query.strip():
            return text

        try:
            passages = await self.retriever.retrieve(context_document, query, cancel_token)
        except EmbeddingUnavailable as e:
            logger.warning("retrieval_unavailable", action=action.name, error=str(e))
            return text

        logger.info("action_enhanced", action=action.name, passages=len(passages))
        return build_enhanced_text(passages, text)

    async def run(
        self,
        action: Action,
        text: str,
        on_update: Optional[UpdateCallback] = None,
        cancel_token: Optional[CancelToken] = None,
        context_document: Optional[str] = None,
        on_fallback: Optional[Callable[[ProviderUnreachable], None]] = None,
    ) -> str:
        """
        Run an action against the configured providers.

        Args:
            action: Action to run
            text: Input text (usually the user's selection)
            on_update: Called with the full text generated so far
            cancel_token: Optional cancellation token
            context_document: Optional document to retrieve context passages from
            on_fallback: Called when the secondary provider takes over

        Returns:
            Final generated text

        Raises:
            ProviderUnreachable: If no provider could be reached
            StreamProtocolError: On malformed stream content
            Cancelled: If the token fires
        """
        action = self.apply_defaults(action)

        if context_document:
            text = await self.enhance(action, text, context_document, cancel_token)

        logger.info(
            "action_started",
            action=action.name,
            temperature=action.temperature,
            enhanced=bool(context_document),
        )
        result = await self.orchestrator.run(
            text,
            action,
            on_update=on_update,
            cancel_token=cancel_token,
            on_fallback=on_fallback,
        )
        logger.info("action_completed", action=action.name, output_length=len(result))
        return result

    def clear_embeddings_cache(self) -> None:
        """Drop all cached embedding vectors."""
        if self.retriever is not None:
            self.retriever.cache.clear()
