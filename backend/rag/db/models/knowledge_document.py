"""Knowledge document ORM model."""

from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.rag.db.base import Base
from backend.rag.db.mixins import ScopedMixin, TimestampMixin
from backend.rag.db.uuid_type import UniversalUUID

if TYPE_CHECKING:
    from .knowledge_chunk import KnowledgeChunk


class KnowledgeDocument(ScopedMixin, TimestampMixin, Base):
    """One ingested source, or the synthetic document for an internal kind."""

    __tablename__ = "knowledge_document"

    document_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    doc_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    # Set only for internal kinds; the unique index makes them singletons.
    singleton_key: Mapped[str | None] = mapped_column(
        String(128), nullable=True, unique=True
    )

    chunks: Mapped[list["KnowledgeChunk"]] = relationship(
        "KnowledgeChunk",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="KnowledgeChunk.seq",
    )

    __table_args__ = (Index("idx_knowledge_document_scope", "scope", "owner_id"),)

    def __repr__(self) -> str:
        return (
            f"<KnowledgeDocument(document_id={self.document_id}, "
            f"scope={self.scope}, kind={self.kind})>"
        )
