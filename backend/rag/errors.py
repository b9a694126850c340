"""Exceptions raised by the RAG core."""

from typing import Literal
from uuid import UUID

ProviderErrorKind = Literal[
    "timeout",
    "rate_limited",
    "unavailable",
    "malformed",
    "breaker_open",
    "rejected",
]

TRANSIENT_KINDS: frozenset[str] = frozenset({"timeout", "rate_limited", "unavailable"})


class RagError(Exception):
    """Base exception for RAG core errors."""
    pass


class RagValidationError(RagError, ValueError):
    """Raised when a request is rejected before any external call."""
    pass


class ProviderError(RagError):
    """Raised when an external provider call fails after retries."""

    def __init__(self, provider: str, kind: ProviderErrorKind, message: str) -> None:
        super().__init__(f"{provider} {kind}: {message}")
        self.provider = provider
        self.kind = kind

    @property
    def transient(self) -> bool:
        """Whether the failure may succeed if the caller retries later."""
        return self.kind in TRANSIENT_KINDS


class EmbeddingError(ProviderError):
    """Raised when an embedding batch cannot be produced."""
    pass


class WebSearchError(ProviderError):
    """Raised when the web search provider fails."""
    pass


class LLMError(ProviderError):
    """Raised when a chat completion fails."""
    pass


class IngestionError(RagError):
    """Raised when a document's chunks could not be (re)built."""

    def __init__(self, document_id: UUID, cause: Exception) -> None:
        super().__init__(f"ingestion failed for document {document_id}: {cause}")
        self.document_id = document_id
        self.cause = cause


class DocumentNotFoundError(RagError, LookupError):
    """Raised when a knowledge document does not exist."""
    pass
