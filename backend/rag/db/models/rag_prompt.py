"""Editable system instruction for answer synthesis."""

from uuid import UUID, uuid4

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.rag.db.base import Base
from backend.rag.db.mixins import TimestampMixin
from backend.rag.db.uuid_type import UniversalUUID


class RagPrompt(TimestampMixin, Base):
    """Instruction header maintained by operators; newest active one wins."""

    __tablename__ = "rag_prompt"

    prompt_id: Mapped[UUID] = mapped_column(
        UniversalUUID(), primary_key=True, default=uuid4
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<RagPrompt(prompt_id={self.prompt_id}, name={self.name}, version={self.version})>"
