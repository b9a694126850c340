"""ORM models for knowledge store tables."""

from .knowledge_chunk import KnowledgeChunk
from .knowledge_document import KnowledgeDocument
from .rag_prompt import RagPrompt

__all__ = [
    "KnowledgeDocument",
    "KnowledgeChunk",
    "RagPrompt",
]
