"""Knowledge ingestion, storage, synchronization and retrieval."""

from backend.rag.knowledge.chunker import chunk, chunk_spans, estimate_tokens
from backend.rag.knowledge.internal_sync import (
    InternalStateSynchronizer,
    render_memos,
    render_nodes,
    render_todos,
)
from backend.rag.knowledge.prompt_store import RagPromptStore
from backend.rag.knowledge.retriever import Retriever
from backend.rag.knowledge.store import KnowledgeStore

__all__ = [
    "InternalStateSynchronizer",
    "KnowledgeStore",
    "RagPromptStore",
    "Retriever",
    "chunk",
    "chunk_spans",
    "estimate_tokens",
    "render_memos",
    "render_nodes",
    "render_todos",
]
