"""Adapters for external model and search providers."""

from backend.rag.adapters.embeddings import Embedder, EmbeddingClient
from backend.rag.adapters.llm import ChatModel, OpenAIChatModel
from backend.rag.adapters.web_search import (
    DisabledWebSearch,
    SerpApiSearchAdapter,
    WebSearchAdapter,
)

__all__ = [
    "ChatModel",
    "DisabledWebSearch",
    "Embedder",
    "EmbeddingClient",
    "OpenAIChatModel",
    "SerpApiSearchAdapter",
    "WebSearchAdapter",
]
