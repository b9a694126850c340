"""Mixins for common ORM model patterns."""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.rag.db.uuid_type import UniversalUUID


def utcnow() -> datetime:
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamp fields."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


class ScopedMixin:
    """Mixin for rows that belong to a knowledge scope.

    ``owner_id`` is the canvas id for canvas-scoped rows and NULL for the
    global pool.
    """

    scope: Mapped[str] = mapped_column(String(16), nullable=False)
    owner_id: Mapped[UUID | None] = mapped_column(
        UniversalUUID(), nullable=True, index=True
    )
