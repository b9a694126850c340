"""Retrieval results and final answer payloads."""

from uuid import UUID

from pydantic import BaseModel, Field

from backend.rag.models.citations import KnowledgeCitation, WebCitation
from backend.rag.models.decision import ActionDecision, ActionName


class ScoredChunk(BaseModel):
    """Knowledge chunk with its similarity to the query."""

    chunk_id: UUID
    document_id: UUID
    document_title: str
    seq: int
    text: str
    similarity: float


class WebResult(BaseModel):
    """Single organic web search result."""

    title: str
    url: str
    snippet: str = ""
    source: str | None = None
    relevance_score: float | None = None


class RagUsage(BaseModel):
    """What the pipeline consulted for an answer."""

    action: ActionName
    chunks_matched: int = 0
    web_search_used: bool = False


class RagAnswer(BaseModel):
    """Answer text with the citations of the context it was grounded in."""

    answer: str
    decision: ActionDecision
    knowledge_citations: list[KnowledgeCitation] = Field(default_factory=list)
    web_citations: list[WebCitation] = Field(default_factory=list)
    usage: RagUsage
