"""Pydantic models for the RAG core."""

from .answer import RagAnswer, RagUsage, ScoredChunk, WebResult
from .chat import ChatHistoryReader, ChatRole, ChatTurn
from .citations import KnowledgeCitation, WebCitation
from .common import INTERNAL_KINDS, DocumentKind, KnowledgeScope, ScopeKind
from .decision import (
    ACTIONS,
    ActionDecision,
    ActionName,
    Clarify,
    ConversationSummary,
    KnowledgeOnly,
    KnowledgeSummary,
    WebSearch,
)
from .ingest import IngestRequest, PdfSource, TextSource, UrlSource, YoutubeSource
from .workspace import CanvasNode, Memo, Todo

__all__ = [
    "ACTIONS",
    "ActionDecision",
    "ActionName",
    "CanvasNode",
    "ChatHistoryReader",
    "ChatRole",
    "ChatTurn",
    "Clarify",
    "ConversationSummary",
    "DocumentKind",
    "INTERNAL_KINDS",
    "IngestRequest",
    "KnowledgeCitation",
    "KnowledgeOnly",
    "KnowledgeScope",
    "KnowledgeSummary",
    "Memo",
    "PdfSource",
    "RagAnswer",
    "RagUsage",
    "ScopeKind",
    "ScoredChunk",
    "TextSource",
    "Todo",
    "UrlSource",
    "WebCitation",
    "WebResult",
    "WebSearch",
    "YoutubeSource",
]
