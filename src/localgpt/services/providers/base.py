"""Provider client interface shared by the Ollama and OpenAI-compatible clients."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, Optional

import httpx
import numpy as np

from localgpt.models.action import Action
from localgpt.models.stream import StreamUpdate
from localgpt.services.cancellation import CancelToken, race
from localgpt.services.exceptions import (
    Cancelled,
    EmbeddingUnavailable,
    ProviderUnreachable,
)
from localgpt.services.stream_decoder import StreamDialect, decode_stream
from localgpt.utils.logging import get_logger


logger = get_logger(__name__)

UpdateCallback = Callable[[str], None]


def build_user_message(prompt: str, text: str) -> str:
    """Join the action prompt and the input text with a blank line, skipping empty halves."""
    return "\n\n".join(part for part in (prompt, text) if part)


def _response_detail(response: httpx.Response) -> Optional[str]:
    """Best-effort server error message from an already-read error response."""
    try:
        data = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None

    if isinstance(data, dict) and "error" in data:
        error = data["error"]
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(error)
    return None


class ProviderClient(ABC):
    """
    HTTP client for one model provider.

    Subclasses describe the wire protocol (paths, request bodies, response
    fields); this base class owns request issuing, error translation,
    cancellation and stream reduction.

    Every request opens its own httpx.AsyncClient, so a client object holds
    no connection state and can be shared between concurrent operations.
    """

    dialect: StreamDialect

    def __init__(self, config: Any, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize provider client.

        Args:
            config: Provider configuration (base URL, models, credentials)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        self.transport = transport
        self.timeout = httpx.Timeout(
            connect=10.0,
            read=60.0,  # Per-read timeout for streaming
            write=10.0,
            pool=10.0
        )

    @property
    def base_url(self) -> str:
        """Configured base URL without trailing slashes."""
        return str(self.config.base_url).rstrip("/")

    @property
    def embedding_model(self) -> Optional[str]:
        """Embedding model for retrieval, or None when retrieval is disabled."""
        return self.config.embedding_model

    def resolve_model(self, action: Action) -> str:
        """Model for an action: its own override, else the provider default."""
        return action.model or self.config.default_model

    def headers(self) -> Dict[str, str]:
        """Extra request headers (authentication)."""
        return {}

    def _client(self, timeout: Optional[httpx.Timeout] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            headers=self.headers(),
            transport=self.transport,
        )

    @abstractmethod
    def generation_url(self) -> str:
        """URL of the streamed generation endpoint."""

    @abstractmethod
    def build_generation_payload(self, text: str, action: Action) -> Dict[str, Any]:
        """Request body for a streamed generation."""

    @abstractmethod
    def models_url(self) -> str:
        """URL of the model catalog endpoint."""

    @abstractmethod
    def parse_models(self, data: Any) -> Dict[str, str]:
        """Map a model catalog response to {model id: display label}."""

    @abstractmethod
    def embeddings_url(self) -> str:
        """URL of the embeddings endpoint."""

    @abstractmethod
    def build_embedding_payload(self, text: str, model: str) -> Dict[str, Any]:
        """Request body for a single-text embedding."""

    @abstractmethod
    def parse_embedding(self, data: Any) -> list[float]:
        """Extract the vector from an embeddings response."""

    async def stream(
        self,
        text: str,
        action: Action,
        cancel_token: Optional[CancelToken] = None,
    ) -> AsyncIterator[StreamUpdate]:
        """
        Run an action and yield accumulated-text updates as they arrive.

        Args:
            text: Input text the action is applied to
            action: Action to run
            cancel_token: Optional token; firing it aborts the request

        Yields:
            StreamUpdate with the full text generated so far

        Raises:
            ProviderUnreachable: On connection failure, timeout, undecodable
                response body or non-2xx status
            StreamProtocolError: On malformed stream content
            Cancelled: If the token fires
        """
        url = self.generation_url()
        payload = self.build_generation_payload(text, action)

        logger.info(
            "llm_request_started",
            provider=self.dialect.name,
            url=url,
            model=payload.get("model"),
            input_length=len(text),
        )
        logger.debug("llm_request_payload", provider=self.dialect.name, payload=payload)

        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        try:
            async with self._client() as client:
                request = client.build_request("POST", url, json=payload)
                response = await race(cancel_token, client.send(request, stream=True))
                try:
                    if response.is_error:
                        await race(cancel_token, response.aread())
                        logger.error(
                            "llm_http_error",
                            provider=self.dialect.name,
                            status_code=response.status_code,
                        )
                        raise ProviderUnreachable(
                            url,
                            status_code=response.status_code,
                            detail=_response_detail(response),
                        )

                    async for update in decode_stream(
                        response.aiter_text(), self.dialect, cancel_token
                    ):
                        yield update
                finally:
                    await response.aclose()

        except httpx.HTTPError as e:
            logger.error(
                "llm_request_failed",
                provider=self.dialect.name,
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProviderUnreachable(url, detail=str(e) or type(e).__name__) from e

        logger.info("llm_request_completed", provider=self.dialect.name, url=url)

    async def process(
        self,
        text: str,
        action: Action,
        on_update: Optional[UpdateCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        """
        Run an action, pushing every accumulated text to `on_update`.

        Args:
            text: Input text the action is applied to
            action: Action to run
            on_update: Called with the full text generated so far
            cancel_token: Optional token; firing it aborts the request

        Returns:
            Final generated text

        Raises:
            ProviderUnreachable, StreamProtocolError, Cancelled: See stream()
        """
        final_text = ""
        async for update in self.stream(text, action, cancel_token):
            final_text = update.accumulated_text
            if on_update is not None:
                on_update(final_text)

        # A token that fired after the last chunk still means no result
        if cancel_token is not None and cancel_token.cancelled:
            raise Cancelled()

        return final_text

    async def get_models(self) -> Dict[str, str]:
        """
        List models available on the provider.

        Returns:
            Mapping of model identifier to display label

        Raises:
            ProviderUnreachable: If the server cannot be reached or errors.
                Callers should treat this as "no models known".
        """
        url = self.models_url()
        try:
            async with self._client(httpx.Timeout(10.0)) as client:
                response = await client.get(url)
                response.raise_for_status()
                models = self.parse_models(response.json())

        except httpx.HTTPStatusError as e:
            logger.warning(
                "models_http_error",
                provider=self.dialect.name,
                status_code=e.response.status_code,
            )
            raise ProviderUnreachable(
                url,
                status_code=e.response.status_code,
                detail=_response_detail(e.response),
            ) from e
        except httpx.HTTPError as e:
            logger.warning("models_request_failed", provider=self.dialect.name, error=str(e))
            raise ProviderUnreachable(url, detail=str(e) or type(e).__name__) from e
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ProviderUnreachable(url, detail=f"Invalid model list: {e}") from e

        logger.info("models_listed", provider=self.dialect.name, count=len(models))
        return models

    async def embed(
        self,
        text: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> np.ndarray:
        """
        Compute the embedding vector of a single text.

        Args:
            text: Text to embed
            cancel_token: Optional token; firing it aborts the request

        Returns:
            1-D float32 vector

        Raises:
            EmbeddingUnavailable: If no embedding model is configured or the call fails
            Cancelled: If the token fires
        """
        model = self.embedding_model
        if not model:
            raise EmbeddingUnavailable("No embedding model configured")

        url = self.embeddings_url()
        try:
            async with self._client() as client:
                response = await race(
                    cancel_token,
                    client.post(url, json=self.build_embedding_payload(text, model)),
                )
                response.raise_for_status()
                vector = self.parse_embedding(response.json())

        except httpx.HTTPStatusError as e:
            raise EmbeddingUnavailable(
                f"Embedding request to {url} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingUnavailable(f"Embedding request to {url} failed: {e}") from e
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingUnavailable(f"Invalid embedding response from {url}: {e}") from e

        if not vector:
            raise EmbeddingUnavailable(f"Empty embedding returned by {url}")

        return np.asarray(vector, dtype=np.float32)
