"""Embedding-based passage retrieval for enhanced actions."""

from typing import List, Optional, Sequence

import numpy as np

from localgpt.models.config import RAGConfig
from localgpt.models.stream import Passage
from localgpt.rag.chunker import split_passages
from localgpt.rag.embedding_cache import EmbeddingCache
from localgpt.services.cancellation import CancelToken
from localgpt.services.exceptions import EmbeddingUnavailable
from localgpt.services.providers.base import ProviderClient
from localgpt.utils.logging import get_logger


logger = get_logger(__name__)

CONTEXT_HEADER = "Context:"


def cosine_similarities(query: np.ndarray, vectors: Sequence[np.ndarray]) -> np.ndarray:
    """
    Cosine similarity of each vector against the query.

    Zero-length vectors score 0.0 instead of dividing by zero.

    Args:
        query: 1-D query vector
        vectors: Vectors of the same dimension as the query

    Returns:
        1-D array of similarities in [-1, 1], in input order
    """
    matrix = np.vstack(vectors).astype(np.float64)
    query_arr = np.asarray(query, dtype=np.float64)

    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_arr)
    dots = matrix @ query_arr
    return np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)


def build_enhanced_text(passages: Sequence[Passage], text: str) -> str:
    """
    Prepend retrieved passages to the input text.

    Args:
        passages: Selected passages, most relevant first
        text: Original input text

    Returns:
        Text with a context block in front, or `text` unchanged if there
        are no passages
    """
    if not passages:
        return text
    context = "\n\n".join(passage.text for passage in passages)
    return f"{CONTEXT_HEADER}\n{context}\n\n{text}" if text else f"{CONTEXT_HEADER}\n{context}"


class EmbeddingRetriever:
    """
    Selects the passages of a document most relevant to a query.

    Embeddings come from the provider's embedding endpoint, one text per
    call, and are memoized in the shared EmbeddingCache. Retrieval is
    disabled (returns no passages) when the provider has no embedding model.
    """

    def __init__(
        self,
        provider: ProviderClient,
        cache: EmbeddingCache,
        config: Optional[RAGConfig] = None,
    ):
        """
        Initialize retriever.

        Args:
            provider: Provider used for embedding calls
            cache: Shared embedding cache
            config: Retrieval settings (top_k, chunk sizes); defaults if None
        """
        self.provider = provider
        self.cache = cache
        self.config = config or RAGConfig()

    @property
    def enabled(self) -> bool:
        """True when the provider has an embedding model configured."""
        return bool(self.provider.embedding_model)

    async def embed(self, text: str, cancel_token: Optional[CancelToken] = None) -> np.ndarray:
        """
        Embedding of `text`, from the cache or from the provider.

        Raises:
            EmbeddingUnavailable: If the vector is not cached and the call fails
            Cancelled: If the token fires
        """
        model = self.provider.embedding_model
        if not model:
            raise EmbeddingUnavailable("No embedding model configured")

        vector = self.cache.get(text, model)
        if vector is not None:
            logger.debug("embedding_cache_hit", model=model, text_length=len(text))
            return vector

        logger.debug("embedding_cache_miss", model=model, text_length=len(text))
        vector = await self.provider.embed(text, cancel_token)
        self.cache.put(text, model, vector)
        return vector

    async def retrieve(
        self,
        document: str,
        query: str,
        cancel_token: Optional[CancelToken] = None,
        top_k: Optional[int] = None,
    ) -> List[Passage]:
        """
        Find the passages of `document` most similar to `query`.

        Args:
            document: Source document to chunk and search
            query: Text the passages should be relevant to
            cancel_token: Optional cancellation token
            top_k: Number of passages to return (defaults to config.top_k)

        Returns:
            Up to top_k passages in descending similarity order, ties in
            document order. Empty if retrieval is disabled or the document
            has no content.

        Raises:
            EmbeddingUnavailable: If the query itself cannot be embedded.
                Individual passages that cannot be embedded are skipped.
            ValueError: If top_k is less than 1
            Cancelled: If the token fires
        """
        if not self.enabled:
            logger.debug("retrieval_skipped", reason="no_embedding_model")
            return []

        top_k = top_k if top_k is not None else self.config.top_k
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")

        passages = split_passages(document, self.config.chunk_size, self.config.chunk_overlap)
        if not passages:
            logger.debug("retrieval_skipped", reason="empty_document")
            return []

        query_vector = await self.embed(query, cancel_token)

        embedded: List[Passage] = []
        for passage in passages:
            try:
                vector = await self.embed(passage.text, cancel_token)
            except EmbeddingUnavailable as e:
                logger.warning(
                    "passage_embedding_failed",
                    source_offset=passage.source_offset,
                    error=str(e),
                )
                continue

            if vector.shape != query_vector.shape:
                logger.warning(
                    "passage_embedding_dimension_mismatch",
                    source_offset=passage.source_offset,
                    expected=query_vector.shape[0],
                    got=vector.shape[0],
                )
                continue

            passage.vector = vector
            embedded.append(passage)

        if not embedded:
            return []

        scores = cosine_similarities(query_vector, [passage.vector for passage in embedded])
        for passage, score in zip(embedded, scores):
            passage.score = float(score)

        # sorted() is stable, so equal scores keep document order
        ranked = sorted(embedded, key=lambda passage: passage.score, reverse=True)[:top_k]

        logger.info(
            "retrieval_completed",
            passages=len(passages),
            embedded=len(embedded),
            returned=len(ranked),
            cache=self.cache.stats.to_dict(),
        )
        return ranked
