"""Knowledge chunk ORM model with embedding vector."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.rag.db.base import Base
from backend.rag.db.mixins import ScopedMixin, utcnow
from backend.rag.db.uuid_type import UniversalUUID
from backend.rag.db.vector_type import EmbeddingVector

if TYPE_CHECKING:
    from .knowledge_document import KnowledgeDocument


class KnowledgeChunk(ScopedMixin, Base):
    """Chunk of a knowledge document with its embedding.

    ``scope``/``owner_id`` are copied from the document so similarity
    queries can filter without a join.
    """

    __tablename__ = "knowledge_chunk"

    chunk_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    document_id: Mapped[UUID] = mapped_column(
        UniversalUUID(),
        ForeignKey("knowledge_document.document_id", ondelete="CASCADE"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(EmbeddingVector(), nullable=False)
    token_estimate: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    document: Mapped["KnowledgeDocument"] = relationship(
        "KnowledgeDocument", back_populates="chunks"
    )

    __table_args__ = (
        UniqueConstraint("document_id", "seq", name="uq_knowledge_chunk_doc_seq"),
        Index("idx_knowledge_chunk_scope", "scope", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<KnowledgeChunk(chunk_id={self.chunk_id}, document_id={self.document_id}, seq={self.seq})>"
