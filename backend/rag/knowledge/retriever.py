"""Similarity search over knowledge chunks."""

import logging
from collections.abc import Sequence
from typing import Any

import numpy as np
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from backend.rag.adapters.embeddings import Embedder
from backend.rag.db.base import get_session
from backend.rag.db.models.knowledge_chunk import KnowledgeChunk
from backend.rag.db.models.knowledge_document import KnowledgeDocument
from backend.rag.errors import RagValidationError
from backend.rag.knowledge.store import scope_filter
from backend.rag.metrics.registry import MetricsClient
from backend.rag.models.answer import ScoredChunk
from backend.rag.models.common import KnowledgeScope

logger = logging.getLogger(__name__)


def rank_key(chunk: ScoredChunk) -> tuple[float, int, str]:
    """Sort key: similarity descending, then lower seq, then lower document id."""
    return (-chunk.similarity, chunk.seq, str(chunk.document_id))


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of ``query`` against each row; NaN for zero rows."""
    q = np.asarray(query, dtype=np.float64)
    q_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(matrix, axis=1)
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = (matrix @ q) / (row_norms * q_norm)
    sims[row_norms == 0] = np.nan
    return sims


class Retriever:
    """Embeds a query and returns the most similar chunks in scope.

    On PostgreSQL with pgvector the ranking runs in SQL; elsewhere candidate
    vectors are loaded and ranked with numpy.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        embedder: Embedder,
        default_k: int = 12,
        default_min_similarity: float = 0.70,
        include_global: bool = True,
        use_pgvector: bool | None = None,
        metrics: MetricsClient | None = None,
    ) -> None:
        """Initialize retriever.

        Args:
            session_factory: Session factory for the knowledge store.
            embedder: Query embedder; must match the stored vectors' model.
            default_k: Chunks returned when the caller passes no ``k``.
            default_min_similarity: Floor used when the caller passes none.
            include_global: Search the global pool alongside a canvas.
            use_pgvector: Force the SQL path on or off; None picks it from
                the bound dialect.
            metrics: Optional in-process metrics registry.
        """
        self.session_factory = session_factory
        self.embedder = embedder
        self.default_k = default_k
        self.default_min_similarity = default_min_similarity
        self.include_global = include_global
        self.use_pgvector = use_pgvector
        self.metrics = metrics

    def _sql_ranking(self, session: Session) -> bool:
        if self.use_pgvector is not None:
            return self.use_pgvector
        return session.get_bind().dialect.name == "postgresql"

    def retrieve(
        self,
        scope: KnowledgeScope,
        query: str,
        k: int | None = None,
        min_similarity: float | None = None,
        include_global: bool | None = None,
    ) -> list[ScoredChunk]:
        """Top-``k`` chunks with similarity at or above ``min_similarity``.

        Returns:
            Chunks sorted by similarity descending, ties broken by lower
            ``seq`` then lower ``document_id``. Empty when nothing clears
            the floor.

        Raises:
            RagValidationError: For an empty query, invalid scope or
                non-positive ``k``. No embedding call is made.
        """
        if not isinstance(scope, KnowledgeScope):
            raise RagValidationError(f"invalid scope: {scope!r}")
        if not query or not query.strip():
            raise RagValidationError("query must not be empty")
        k = self.default_k if k is None else k
        if k <= 0:
            raise RagValidationError("k must be positive")
        floor = self.default_min_similarity if min_similarity is None else min_similarity
        if not -1.0 <= floor <= 1.0:
            raise RagValidationError("min_similarity must lie in [-1, 1]")
        scopes = scope.searchable(
            self.include_global if include_global is None else include_global
        )

        query_vector = self.embedder.embed_batch([query])[0]

        with get_session(self.session_factory) as session:
            if self._sql_ranking(session):
                results = self._rank_in_sql(session, scopes, query_vector, k, floor)
            else:
                results = self._rank_in_python(session, scopes, query_vector, k, floor)

        if self.metrics is not None:
            self.metrics.observe_retrieval(len(results))
        logger.info(
            "retrieval_done",
            extra={"owner_id": str(scope.owner_id), "k": k, "matched": len(results)},
        )
        return results

    def _rank_in_sql(
        self,
        session: Session,
        scopes: list[KnowledgeScope],
        query_vector: list[float],
        k: int,
        floor: float,
    ) -> list[ScoredChunk]:
        similarity = (1 - KnowledgeChunk.embedding.cosine_distance(query_vector)).label(
            "similarity"
        )
        stmt = (
            select(
                KnowledgeChunk.chunk_id,
                KnowledgeChunk.document_id,
                KnowledgeChunk.seq,
                KnowledgeChunk.text,
                KnowledgeDocument.title,
                similarity,
            )
            .join(KnowledgeDocument, KnowledgeChunk.document_id == KnowledgeDocument.document_id)
            .where(scope_filter(KnowledgeChunk, scopes))
            .where(similarity >= floor)
            .order_by(similarity.desc(), KnowledgeChunk.seq, KnowledgeChunk.document_id)
            .limit(k)
        )
        rows = session.execute(stmt).all()
        return [self._scored(row, float(row.similarity)) for row in rows]

    def _rank_in_python(
        self,
        session: Session,
        scopes: list[KnowledgeScope],
        query_vector: list[float],
        k: int,
        floor: float,
    ) -> list[ScoredChunk]:
        stmt = (
            select(
                KnowledgeChunk.chunk_id,
                KnowledgeChunk.document_id,
                KnowledgeChunk.seq,
                KnowledgeChunk.text,
                KnowledgeDocument.title,
                KnowledgeChunk.embedding,
            )
            .join(KnowledgeDocument, KnowledgeChunk.document_id == KnowledgeDocument.document_id)
            .where(scope_filter(KnowledgeChunk, scopes))
        )
        rows = session.execute(stmt).all()
        if not rows:
            return []

        matrix = np.asarray([row.embedding for row in rows], dtype=np.float64)
        sims = cosine_similarities(query_vector, matrix)

        scored = [
            self._scored(row, float(sim))
            for row, sim in zip(rows, sims)
            if not np.isnan(sim) and sim >= floor
        ]
        scored.sort(key=rank_key)
        return scored[:k]

    @staticmethod
    def _scored(row: Any, similarity: float) -> ScoredChunk:
        return ScoredChunk(
            chunk_id=row.chunk_id,
            document_id=row.document_id,
            document_title=row.title,
            seq=row.seq,
            text=row.text,
            similarity=similarity,
        )
