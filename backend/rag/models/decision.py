"""Query-time action decision, a closed tagged union."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

ActionName = Literal[
    "KNOWLEDGE_ONLY",
    "WEB_SEARCH",
    "CLARIFY",
    "CONVERSATION_SUMMARY",
    "KNOWLEDGE_SUMMARY",
]

ACTIONS: tuple[str, ...] = (
    "KNOWLEDGE_ONLY",
    "WEB_SEARCH",
    "CLARIFY",
    "CONVERSATION_SUMMARY",
    "KNOWLEDGE_SUMMARY",
)


class _Decision(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    reason: str = Field(default="", description="Short justification")


class KnowledgeOnly(_Decision):
    """Internal knowledge is enough."""

    action: Literal["KNOWLEDGE_ONLY"] = "KNOWLEDGE_ONLY"


class WebSearch(_Decision):
    """External web search is required."""

    action: Literal["WEB_SEARCH"] = "WEB_SEARCH"
    search_query: str = Field(min_length=1)


class Clarify(_Decision):
    """The question is too ambiguous to answer; ask the user instead."""

    action: Literal["CLARIFY"] = "CLARIFY"
    clarification_question: str = Field(min_length=1)


class ConversationSummary(_Decision):
    """Summarize the recent conversation."""

    action: Literal["CONVERSATION_SUMMARY"] = "CONVERSATION_SUMMARY"


class KnowledgeSummary(_Decision):
    """Summarize the knowledge base broadly."""

    action: Literal["KNOWLEDGE_SUMMARY"] = "KNOWLEDGE_SUMMARY"


ActionDecision = Annotated[
    Union[KnowledgeOnly, WebSearch, Clarify, ConversationSummary, KnowledgeSummary],
    Field(discriminator="action"),
]

decision_adapter: TypeAdapter[ActionDecision] = TypeAdapter(ActionDecision)

KNOWLEDGE_ACTIONS: frozenset[str] = frozenset({"KNOWLEDGE_ONLY", "KNOWLEDGE_SUMMARY"})
