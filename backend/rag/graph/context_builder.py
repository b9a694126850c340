"""Assemble prompt context and citations for the decided action."""

import logging
from collections.abc import Sequence
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field

from backend.rag.adapters.web_search import WebSearchAdapter
from backend.rag.config import Settings
from backend.rag.errors import ProviderError
from backend.rag.graph.prompts import format_history
from backend.rag.knowledge.retriever import Retriever
from backend.rag.knowledge.store import KnowledgeStore
from backend.rag.models.answer import ScoredChunk, WebResult
from backend.rag.models.chat import ChatTurn
from backend.rag.models.citations import KnowledgeCitation, WebCitation
from backend.rag.models.common import KnowledgeScope
from backend.rag.models.decision import ActionDecision

logger = logging.getLogger(__name__)


class BuiltContext(BaseModel):
    """Context text and citations handed to the synthesizer."""

    knowledge_text: str = ""
    web_text: str = ""
    history_text: str = ""
    knowledge_citations: list[KnowledgeCitation] = Field(default_factory=list)
    web_citations: list[WebCitation] = Field(default_factory=list)
    web_search_used: bool = False


def normalize_url(url: str) -> str:
    """Canonical form used to spot duplicate web results.

    URLs the standard parser rejects (bad port, broken IPv6 host) fall back
    to their stripped, lower-cased text.
    """
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return url.strip().lower()
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    if port:
        host = f"{host}:{port}"
    path = parts.path.rstrip("/")
    return urlunsplit((parts.scheme.lower() or "https", host, path, parts.query, ""))


def format_chunk(index: int, chunk: ScoredChunk) -> str:
    return (
        f"{index}. [{chunk.document_title}] (similarity: {chunk.similarity * 100:.1f}%)\n"
        f"{chunk.text}"
    )


def format_web_result(index: int, result: WebResult) -> str:
    source = f" ({result.source})" if result.source else ""
    return f"{index}. {result.title}{source}\n{result.snippet}\nLink: {result.url}"


class ContextBuilder:
    """Builds the context for one query from the decided action."""

    def __init__(
        self,
        retriever: Retriever,
        store: KnowledgeStore,
        web_search: WebSearchAdapter,
        settings: Settings,
    ) -> None:
        self.retriever = retriever
        self.store = store
        self.web_search = web_search
        self.settings = settings

    def build(
        self,
        scope: KnowledgeScope,
        query: str,
        decision: ActionDecision,
        history: Sequence[ChatTurn],
        prefetched: Sequence[ScoredChunk] | None = None,
    ) -> BuiltContext:
        """Context for ``decision``.

        Args:
            scope: Scope of the query.
            query: The user's question.
            decision: Decided action.
            history: Recent turns, oldest first.
            prefetched: Chunks from the initial retrieval, reused for
                ``KNOWLEDGE_ONLY`` when available.
        """
        history_text = format_history(history)

        if decision.action == "KNOWLEDGE_ONLY":
            chunks = (
                list(prefetched)
                if prefetched is not None
                else self.retriever.retrieve(scope, query)
            )
            return self._knowledge_context(
                chunks[: self.settings.context_max_chunks], history_text
            )

        if decision.action == "KNOWLEDGE_SUMMARY":
            chunks = self.retriever.retrieve(
                scope,
                query,
                k=self.settings.summary_top_k,
                min_similarity=self.settings.summary_min_similarity,
            )
            if chunks:
                return self._knowledge_context(chunks, history_text)
            return self._recent_documents_context(scope, history_text)

        if decision.action == "WEB_SEARCH":
            return self._web_context(decision.search_query, history_text)

        # CONVERSATION_SUMMARY reads history only; CLARIFY needs no context.
        return BuiltContext(history_text=history_text)

    def _knowledge_context(
        self, chunks: Sequence[ScoredChunk], history_text: str
    ) -> BuiltContext:
        budget = self.settings.context_max_chars
        kept = list(chunks)
        # Chunks arrive best-first, so trimming the tail drops the least similar.
        while len(kept) > 1 and self._knowledge_length(kept) > budget:
            kept.pop()
        if kept and self._knowledge_length(kept) > budget:
            overflow = self._knowledge_length(kept) - budget
            top = kept[0]
            kept[0] = top.model_copy(update={"text": top.text[: max(0, len(top.text) - overflow)]})

        snippet_chars = self.settings.citation_snippet_chars
        citations = [
            KnowledgeCitation(
                chunk_id=chunk.chunk_id,
                document_id=chunk.document_id,
                title=chunk.document_title,
                snippet=chunk.text[:snippet_chars],
                similarity=chunk.similarity,
            )
            for chunk in kept
        ]
        return BuiltContext(
            knowledge_text=self._join_chunks(kept),
            history_text=history_text,
            knowledge_citations=citations,
        )

    @staticmethod
    def _join_chunks(chunks: Sequence[ScoredChunk]) -> str:
        return "\n\n".join(format_chunk(i, chunk) for i, chunk in enumerate(chunks, start=1))

    def _knowledge_length(self, chunks: Sequence[ScoredChunk]) -> int:
        return len(self._join_chunks(chunks))

    def _recent_documents_context(
        self, scope: KnowledgeScope, history_text: str
    ) -> BuiltContext:
        """Excerpts of the latest documents when summary retrieval finds nothing."""
        documents = self.store.recent_documents(
            scope.searchable(self.settings.include_global_knowledge),
            limit=self.settings.context_max_chunks,
        )
        snippet_chars = self.settings.citation_snippet_chars
        blocks = [
            f"{i}. [{doc.title}]\n{doc.content[:snippet_chars]}"
            for i, doc in enumerate(documents, start=1)
            if doc.content.strip()
        ]
        text = "\n\n".join(blocks)[: self.settings.context_max_chars]
        logger.info("summary_recent_fallback", extra={"documents": len(blocks)})
        return BuiltContext(knowledge_text=text, history_text=history_text)

    def _web_context(self, search_query: str, history_text: str) -> BuiltContext:
        try:
            results = self.web_search.search(search_query, self.settings.web_search_results)
        except ProviderError as exc:
            logger.warning(
                "web_search_failed",
                extra={"error_kind": exc.kind, "search_query": search_query},
            )
            return BuiltContext(history_text=history_text, web_search_used=True)

        seen: set[str] = set()
        unique: list[WebResult] = []
        for result in results:
            key = normalize_url(result.url)
            if key in seen:
                continue
            seen.add(key)
            unique.append(result)

        citations = [
            WebCitation(
                title=result.title,
                url=result.url,
                source=result.source,
                snippet=result.snippet,
                relevance_score=result.relevance_score,
            )
            for result in unique
        ]
        web_text = "\n\n".join(
            format_web_result(i, result) for i, result in enumerate(unique, start=1)
        )
        return BuiltContext(
            web_text=web_text,
            history_text=history_text,
            web_citations=citations,
            web_search_used=True,
        )
