"""LangGraph state definition for the query pipeline."""

from pydantic import BaseModel, ConfigDict, Field

from backend.rag.graph.context_builder import BuiltContext
from backend.rag.models.answer import RagAnswer, ScoredChunk
from backend.rag.models.chat import ChatTurn
from backend.rag.models.common import KnowledgeScope
from backend.rag.models.decision import ActionDecision


class RagState(BaseModel):
    """Typed state passed through every node of one query."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    scope: KnowledgeScope = Field(description="Scope the question is asked in")
    query: str = Field(description="User question")
    history: list[ChatTurn] = Field(
        default_factory=list, description="Recent turns, oldest first"
    )
    initial_chunks: list[ScoredChunk] | None = Field(
        default=None,
        description="Initial retrieval; None when it failed",
    )
    decision: ActionDecision | None = Field(default=None, description="Decided action")
    context: BuiltContext | None = Field(default=None, description="Assembled context")
    answer: RagAnswer | None = Field(default=None, description="Final answer")
