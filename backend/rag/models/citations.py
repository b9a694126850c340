"""Citation records returned alongside answers."""

from uuid import UUID

from pydantic import BaseModel, Field


class KnowledgeCitation(BaseModel):
    """Reference to a knowledge chunk used in the context."""

    chunk_id: UUID
    document_id: UUID
    title: str
    snippet: str = Field(description="Leading excerpt of the chunk text")
    similarity: float


class WebCitation(BaseModel):
    """Reference to a web search result used in the context."""

    title: str
    url: str
    source: str | None = Field(default=None, description="Publisher domain")
    snippet: str = ""
    relevance_score: float | None = None
