"""Knowledge document and chunk persistence."""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from backend.rag.adapters.embeddings import Embedder
from backend.rag.db.base import get_session
from backend.rag.db.models.knowledge_chunk import KnowledgeChunk
from backend.rag.db.models.knowledge_document import KnowledgeDocument
from backend.rag.errors import (
    DocumentNotFoundError,
    IngestionError,
    ProviderError,
    RagValidationError,
)
from backend.rag.knowledge.chunker import chunk, estimate_tokens
from backend.rag.metrics.registry import MetricsClient
from backend.rag.models.common import DocumentKind, KnowledgeScope
from backend.rag.models.ingest import IngestRequest, ingest_adapter

logger = logging.getLogger(__name__)


def scope_filter(model: Any, scopes: Sequence[KnowledgeScope]):
    """WHERE clause matching rows of ``model`` in any of ``scopes``."""
    clauses = []
    for scope in scopes:
        owner = (
            model.owner_id == scope.owner_id
            if scope.owner_id is not None
            else model.owner_id.is_(None)
        )
        clauses.append(and_(model.scope == scope.kind.value, owner))
    return or_(*clauses)


def _check_scope(scope: Any) -> KnowledgeScope:
    if not isinstance(scope, KnowledgeScope):
        raise RagValidationError(f"invalid scope: {scope!r}")
    return scope


def _check_kind(kind: Any) -> DocumentKind:
    try:
        return DocumentKind(kind)
    except ValueError as exc:
        raise RagValidationError(f"unknown document kind: {kind!r}") from exc


class KnowledgeStore:
    """Stores knowledge documents and their embedded chunks.

    A document's chunk set is only ever replaced as a whole: new embeddings
    are computed first, then old chunks are deleted and new ones inserted in
    one transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        embedder: Embedder,
        chunk_size: int = 1000,
        chunk_overlap: int = 150,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.metrics = metrics

    def split(self, content: str) -> list[str]:
        """Chunk ``content`` with the store's configured window."""
        return chunk(content, self.chunk_size, self.chunk_overlap)

    def upsert_document(
        self,
        scope: KnowledgeScope,
        kind: DocumentKind | str,
        title: str,
        content: str,
        source_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UUID:
        """Create a document, or update the singleton for internal kinds.

        Args:
            scope: Scope the document belongs to.
            kind: Document kind.
            title: Display title used in citations.
            content: Full text.
            source_url: Origin of scraped or transcribed content.
            metadata: Free-form metadata stored with the document.

        Returns:
            Document id. For internal kinds this is stable across calls.
        """
        scope = _check_scope(scope)
        kind = _check_kind(kind)
        metadata = dict(metadata or {})

        if not kind.is_internal:
            with get_session(self.session_factory) as session:
                document = KnowledgeDocument(
                    scope=scope.kind.value,
                    owner_id=scope.owner_id,
                    kind=kind.value,
                    title=title,
                    content=content,
                    source_url=source_url,
                    doc_metadata=metadata,
                )
                session.add(document)
                session.flush()
                return document.document_id

        key = scope.singleton_key(kind)
        metadata.setdefault("system", "internal")
        # A concurrent first sync may insert the same singleton; the loser
        # hits the unique key and retries as an update.
        for attempt in range(2):
            try:
                with get_session(self.session_factory) as session:
                    document = session.scalars(
                        select(KnowledgeDocument).where(
                            KnowledgeDocument.singleton_key == key
                        )
                    ).one_or_none()
                    if document is None:
                        document = KnowledgeDocument(
                            scope=scope.kind.value,
                            owner_id=scope.owner_id,
                            kind=kind.value,
                            singleton_key=key,
                        )
                        session.add(document)
                    document.title = title
                    document.content = content
                    document.source_url = source_url
                    document.doc_metadata = metadata
                    document.updated_at = datetime.now(UTC)
                    session.flush()
                    return document.document_id
            except IntegrityError:
                if attempt:
                    raise
                logger.info("singleton_insert_race", extra={"singleton_key": key})
        raise AssertionError("unreachable")

    def replace_chunks(self, document_id: UUID, texts: Sequence[str]) -> int:
        """Replace the document's chunk set with ``texts``.

        Embeddings are computed before anything is deleted, so a provider
        failure leaves the previous chunk set intact.

        Returns:
            Number of chunks stored.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            IngestionError: If embedding fails.
        """
        texts = list(texts)
        with get_session(self.session_factory) as session:
            if session.get(KnowledgeDocument, document_id) is None:
                raise DocumentNotFoundError(f"document {document_id} not found")

        try:
            vectors = self.embedder.embed_batch(texts) if texts else []
        except ProviderError as exc:
            raise IngestionError(document_id, exc) from exc
        if len(vectors) != len(texts):
            raise IngestionError(
                document_id,
                ValueError(f"expected {len(texts)} embeddings, got {len(vectors)}"),
            )

        with get_session(self.session_factory) as session:
            document = session.get(KnowledgeDocument, document_id)
            if document is None:
                raise DocumentNotFoundError(f"document {document_id} not found")
            session.execute(
                delete(KnowledgeChunk).where(KnowledgeChunk.document_id == document_id)
            )
            session.add_all(
                KnowledgeChunk(
                    document_id=document_id,
                    scope=document.scope,
                    owner_id=document.owner_id,
                    seq=seq,
                    text=text,
                    embedding=vector,
                    token_estimate=estimate_tokens(text),
                )
                for seq, (text, vector) in enumerate(zip(texts, vectors), start=1)
            )

        logger.info(
            "chunks_replaced",
            extra={"document_id": str(document_id), "chunks": len(texts)},
        )
        return len(texts)

    def ingest(self, scope: KnowledgeScope, request: IngestRequest | dict[str, Any]) -> UUID:
        """Store an uploaded source and build its chunks.

        The document row is kept even when embedding fails, so the caller
        can retry with :meth:`reindex`.

        Raises:
            RagValidationError: If the request is not a valid source.
            IngestionError: If embedding fails.
        """
        scope = _check_scope(scope)
        if isinstance(request, dict):
            try:
                request = ingest_adapter.validate_python(request)
            except ValidationError as exc:
                raise RagValidationError(str(exc)) from exc

        document_id = self.upsert_document(
            scope,
            request.document_kind,
            request.title,
            request.content,
            source_url=request.source_url,
            metadata=request.document_metadata(),
        )
        try:
            self.replace_chunks(document_id, self.split(request.content))
        except IngestionError:
            if self.metrics is not None:
                self.metrics.inc_ingestion(request.kind, ok=False)
            raise
        if self.metrics is not None:
            self.metrics.inc_ingestion(request.kind, ok=True)
        return document_id

    def reindex(self, document_id: UUID) -> int:
        """Rebuild chunks from the stored document content."""
        document = self.get_document(document_id)
        return self.replace_chunks(document_id, self.split(document.content))

    def delete_document(self, document_id: UUID) -> None:
        """Delete a user document and its chunks.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            RagValidationError: For internal documents, which only go away
                with their canvas.
        """
        with get_session(self.session_factory) as session:
            document = session.get(KnowledgeDocument, document_id)
            if document is None:
                raise DocumentNotFoundError(f"document {document_id} not found")
            if DocumentKind(document.kind).is_internal:
                raise RagValidationError("internal documents cannot be deleted individually")
            session.delete(document)
        logger.info("document_deleted", extra={"document_id": str(document_id)})

    def delete_scope(self, scope: KnowledgeScope) -> int:
        """Delete every document of ``scope``, internal ones included.

        Returns:
            Number of documents removed.
        """
        scope = _check_scope(scope)
        with get_session(self.session_factory) as session:
            session.execute(delete(KnowledgeChunk).where(scope_filter(KnowledgeChunk, [scope])))
            result = session.execute(
                delete(KnowledgeDocument).where(scope_filter(KnowledgeDocument, [scope]))
            )
            removed = result.rowcount or 0
        logger.info(
            "scope_deleted",
            extra={"scope": scope.kind.value, "owner_id": str(scope.owner_id), "documents": removed},
        )
        return removed

    def get_document(self, document_id: UUID) -> KnowledgeDocument:
        with get_session(self.session_factory) as session:
            document = session.get(KnowledgeDocument, document_id)
            if document is None:
                raise DocumentNotFoundError(f"document {document_id} not found")
            return document

    def list_documents(
        self, scope: KnowledgeScope, kind: DocumentKind | str | None = None
    ) -> list[KnowledgeDocument]:
        """Documents of ``scope``, most recently updated first."""
        scope = _check_scope(scope)
        stmt = select(KnowledgeDocument).where(scope_filter(KnowledgeDocument, [scope]))
        if kind is not None:
            stmt = stmt.where(KnowledgeDocument.kind == _check_kind(kind).value)
        stmt = stmt.order_by(KnowledgeDocument.updated_at.desc())
        with get_session(self.session_factory) as session:
            return list(session.scalars(stmt).all())

    def recent_documents(
        self, scopes: Sequence[KnowledgeScope], limit: int
    ) -> list[KnowledgeDocument]:
        """Most recently updated documents across ``scopes``."""
        stmt = (
            select(KnowledgeDocument)
            .where(scope_filter(KnowledgeDocument, scopes))
            .order_by(KnowledgeDocument.updated_at.desc())
            .limit(limit)
        )
        with get_session(self.session_factory) as session:
            return list(session.scalars(stmt).all())

    def list_chunks(self, document_id: UUID) -> list[KnowledgeChunk]:
        """Chunks of a document in ``seq`` order."""
        stmt = (
            select(KnowledgeChunk)
            .where(KnowledgeChunk.document_id == document_id)
            .order_by(KnowledgeChunk.seq)
        )
        with get_session(self.session_factory) as session:
            return list(session.scalars(stmt).all())
