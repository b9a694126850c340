"""Batch embedding client backed by the OpenAI embeddings API."""

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

from openai import OpenAI

from backend.rag.config import Settings
from backend.rag.errors import EmbeddingError
from backend.rag.exec.executor import ProviderExecutor

logger = logging.getLogger(__name__)

PROVIDER = "embeddings"


class Embedder(Protocol):
    """Anything that turns texts into vectors, one per text, in order."""

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class EmbeddingClient:
    """Embeds texts in provider-sized batches with bounded concurrency."""

    def __init__(
        self,
        client: OpenAI,
        executor: ProviderExecutor,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        batch_size: int = 100,
        max_concurrency: int = 4,
    ) -> None:
        self.client = client
        self.executor = executor
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency

    @classmethod
    def from_settings(
        cls, client: OpenAI, executor: ProviderExecutor, settings: Settings
    ) -> "EmbeddingClient":
        return cls(
            client,
            executor,
            model=settings.openai_embeddings_model,
            dimensions=settings.embedding_dimensions,
            batch_size=settings.embed_batch_size,
            max_concurrency=settings.embed_max_concurrency,
        )

    def _embed_request(self, batch: Sequence[str]) -> list[list[float]]:
        """Embed one provider request worth of texts."""

        def _request():
            return self.client.embeddings.create(
                model=self.model,
                input=list(batch),
                dimensions=self.dimensions,
            )

        response = self.executor.call(PROVIDER, _request, error_cls=EmbeddingError)

        # The API tags each vector with its input index; don't trust list order
        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(batch):
            raise EmbeddingError(
                PROVIDER,
                "malformed",
                f"expected {len(batch)} embeddings, got {len(data)}",
            )
        vectors = [list(item.embedding) for item in data]
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    PROVIDER,
                    "malformed",
                    f"expected {self.dimensions} dimensions, got {len(vector)}",
                )
        return vectors

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed ``texts``; output length and order match the input.

        Any failed request fails the whole call; partial results are
        discarded.

        Raises:
            EmbeddingError: If any request fails after retries.
        """
        if not texts:
            return []

        batches = [
            texts[i : i + self.batch_size] for i in range(0, len(texts), self.batch_size)
        ]
        if len(batches) == 1:
            results = [self._embed_request(batches[0])]
        else:
            workers = min(self.max_concurrency, len(batches))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(self._embed_request, batches))

        vectors = [vector for batch_vectors in results for vector in batch_vectors]
        logger.debug(
            "embedded_batch",
            extra={"texts": len(texts), "requests": len(batches)},
        )
        return vectors
