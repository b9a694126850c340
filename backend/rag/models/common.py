"""Common data types and enums used across the RAG core."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ScopeKind(str, Enum):
    """Partition a knowledge row belongs to."""

    canvas = "canvas"
    global_ = "global"


class DocumentKind(str, Enum):
    """Source kind of a knowledge document."""

    text = "text"
    url = "url"
    youtube = "youtube"
    pdf = "pdf"
    internal_nodes = "internal-nodes"
    internal_memos = "internal-memos"
    internal_todos = "internal-todos"

    @property
    def is_internal(self) -> bool:
        return self in INTERNAL_KINDS


INTERNAL_KINDS: frozenset[DocumentKind] = frozenset(
    {
        DocumentKind.internal_nodes,
        DocumentKind.internal_memos,
        DocumentKind.internal_todos,
    }
)


class KnowledgeScope(BaseModel):
    """A canvas's private knowledge, or the shared global pool."""

    model_config = ConfigDict(frozen=True)

    kind: ScopeKind = Field(description="canvas or global")
    owner_id: UUID | None = Field(
        default=None, description="Canvas id; must be unset for the global pool"
    )

    @model_validator(mode="after")
    def _check_owner(self) -> KnowledgeScope:
        if self.kind is ScopeKind.canvas and self.owner_id is None:
            raise ValueError("canvas scope requires owner_id")
        if self.kind is ScopeKind.global_ and self.owner_id is not None:
            raise ValueError("global scope cannot have owner_id")
        return self

    @classmethod
    def canvas(cls, canvas_id: UUID) -> KnowledgeScope:
        return cls(kind=ScopeKind.canvas, owner_id=canvas_id)

    @classmethod
    def global_pool(cls) -> KnowledgeScope:
        return cls(kind=ScopeKind.global_)

    def singleton_key(self, kind: DocumentKind) -> str:
        """Unique key of the synthetic document for an internal kind."""
        return f"{self.kind.value}:{self.owner_id or '-'}:{kind.value}"

    def searchable(self, include_global: bool) -> list[KnowledgeScope]:
        """Scopes a query in this scope searches."""
        if include_global and self.kind is ScopeKind.canvas:
            return [self, KnowledgeScope.global_pool()]
        return [self]
