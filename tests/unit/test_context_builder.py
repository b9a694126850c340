"""Tests for per-action context assembly."""

from uuid import uuid4

import pytest

from backend.rag.graph.context_builder import ContextBuilder, normalize_url
from backend.rag.knowledge.retriever import Retriever
from backend.rag.knowledge.store import KnowledgeStore
from backend.rag.models import (
    ConversationSummary,
    KnowledgeOnly,
    KnowledgeSummary,
    ScoredChunk,
    WebResult,
    WebSearch,
)

from tests.unit.rag_test_helpers import FakeEmbedder, FakeWebSearch, make_turns, new_canvas

REFUND_TEXT = "Refund policy: customers may request a refund within 14 days."


def _scored(text: str, similarity: float, seq: int = 1, title: str = "Refund Policy") -> ScoredChunk:
    return ScoredChunk(
        chunk_id=uuid4(),
        document_id=uuid4(),
        document_title=title,
        seq=seq,
        text=text,
        similarity=similarity,
    )


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def store(session_factory, embedder, settings) -> KnowledgeStore:
    return KnowledgeStore(session_factory, embedder, settings.chunk_size, settings.chunk_overlap)


@pytest.fixture
def web() -> FakeWebSearch:
    return FakeWebSearch(
        [
            WebResult(title="Rates", url="https://www.example.com/rates/", snippet="1 USD = 0.9 EUR", source="example.com", relevance_score=1.0),
            WebResult(title="Rates again", url="https://example.com/rates", snippet="duplicate", source="example.com", relevance_score=0.9),
            WebResult(title="Other", url="https://news.test/fx", snippet="markets", source="news.test", relevance_score=0.8),
        ]
    )


def _builder(session_factory, embedder, store, web, settings) -> ContextBuilder:
    retriever = Retriever(
        session_factory,
        embedder,
        default_k=settings.retrieval_top_k,
        default_min_similarity=settings.retrieval_min_similarity,
    )
    return ContextBuilder(retriever, store, web, settings)


@pytest.fixture
def builder(session_factory, embedder, store, web, settings) -> ContextBuilder:
    return _builder(session_factory, embedder, store, web, settings)


# === Knowledge ===


def test_knowledge_only_reuses_prefetched_chunks(builder, embedder) -> None:
    chunks = [_scored(REFUND_TEXT, 0.92), _scored("Exchanges need a receipt.", 0.81, seq=2)]

    context = builder.build(new_canvas(), "refund?", KnowledgeOnly(), [], prefetched=chunks)

    assert embedder.calls == []
    assert context.knowledge_text.startswith(
        "1. [Refund Policy] (similarity: 92.0%)\n" + REFUND_TEXT
    )
    assert "2. [Refund Policy] (similarity: 81.0%)" in context.knowledge_text
    assert [c.chunk_id for c in context.knowledge_citations] == [c.chunk_id for c in chunks]
    assert context.web_citations == []
    assert not context.web_search_used


def test_knowledge_only_retrieves_without_prefetch(builder, store) -> None:
    scope = new_canvas()
    document_id = store.ingest(scope, {"kind": "text", "title": "Refund Policy", "content": REFUND_TEXT})
    store.ingest(scope, {"kind": "text", "title": "Shipping", "content": "Shipping takes 3 days."})

    context = builder.build(scope, "What is the refund policy?", KnowledgeOnly(), [])

    assert [c.document_id for c in context.knowledge_citations] == [document_id]
    assert "14 days" in context.knowledge_text


def test_knowledge_only_caps_chunk_count(builder, settings) -> None:
    chunks = [_scored(f"chunk {i}", 0.9 - i * 0.01, seq=i) for i in range(20)]

    context = builder.build(new_canvas(), "q", KnowledgeOnly(), [], prefetched=chunks)

    assert len(context.knowledge_citations) == settings.context_max_chunks


def test_char_budget_drops_least_similar_first(session_factory, embedder, store, web, settings) -> None:
    tight = settings.model_copy(update={"context_max_chars": 120})
    builder = _builder(session_factory, embedder, store, web, tight)
    chunks = [_scored("a" * 60, 0.95), _scored("b" * 60, 0.90, seq=2)]

    context = builder.build(new_canvas(), "q", KnowledgeOnly(), [], prefetched=chunks)

    assert len(context.knowledge_text) <= 120
    assert [c.chunk_id for c in context.knowledge_citations] == [chunks[0].chunk_id]


def test_char_budget_truncates_single_oversized_chunk(session_factory, embedder, store, web, settings) -> None:
    tight = settings.model_copy(update={"context_max_chars": 100})
    builder = _builder(session_factory, embedder, store, web, tight)

    context = builder.build(
        new_canvas(), "q", KnowledgeOnly(), [], prefetched=[_scored("x" * 500, 0.9)]
    )

    assert len(context.knowledge_text) == 100
    assert len(context.knowledge_citations) == 1


def test_citation_snippets_are_bounded(builder, settings) -> None:
    context = builder.build(
        new_canvas(), "q", KnowledgeOnly(), [], prefetched=[_scored("y" * 1000, 0.9)]
    )
    assert len(context.knowledge_citations[0].snippet) == settings.citation_snippet_chars


def test_knowledge_summary_uses_wide_retrieval(builder, store) -> None:
    scope = new_canvas()
    store.ingest(scope, {"kind": "text", "title": "Refund Policy", "content": REFUND_TEXT})
    store.ingest(scope, {"kind": "text", "title": "Shipping", "content": "Shipping takes 3 days."})

    context = builder.build(scope, "Summarize my refund material", KnowledgeSummary(), [])

    # Summary floor is 0.0, so unrelated chunks still make it in.
    assert {c.title for c in context.knowledge_citations} == {"Refund Policy", "Shipping"}


def test_knowledge_summary_falls_back_to_recent_documents(
    session_factory, embedder, store, web, settings
) -> None:
    strict = settings.model_copy(update={"summary_min_similarity": 0.99})
    builder = _builder(session_factory, embedder, store, web, strict)
    scope = new_canvas()
    store.ingest(scope, {"kind": "text", "title": "Shipping", "content": "Shipping takes 3 days."})

    context = builder.build(scope, "Summarize everything", KnowledgeSummary(), [])

    assert "1. [Shipping]\nShipping takes 3 days." in context.knowledge_text
    assert context.knowledge_citations == []


def test_knowledge_summary_with_empty_store(builder) -> None:
    context = builder.build(new_canvas(), "Summarize everything", KnowledgeSummary(), [])
    assert context.knowledge_text == ""


# === Web ===


def test_web_search_dedupes_and_cites(builder, web) -> None:
    context = builder.build(new_canvas(), "usd to eur", WebSearch(search_query="usd eur rate"), [])

    assert web.queries[0][0] == "usd eur rate"
    assert [c.title for c in context.web_citations] == ["Rates", "Other"]
    assert context.web_citations[0].source == "example.com"
    assert "Link: https://news.test/fx" in context.web_text
    assert context.knowledge_text == ""
    assert context.knowledge_citations == []
    assert context.web_search_used


def test_web_search_failure_yields_empty_context(session_factory, embedder, store, settings) -> None:
    builder = _builder(session_factory, embedder, store, FakeWebSearch(fail=True), settings)

    context = builder.build(new_canvas(), "usd to eur", WebSearch(search_query="usd eur"), [])

    assert context.web_text == ""
    assert context.web_citations == []
    assert context.web_search_used


# === History ===


def test_conversation_summary_uses_history_only(builder, embedder) -> None:
    turns = make_turns(("user", "Plan the launch"), ("assistant", "Sure, step one..."))

    context = builder.build(new_canvas(), "Summarize our chat", ConversationSummary(), turns)

    assert context.history_text == "User: Plan the launch\nAssistant: Sure, step one..."
    assert context.knowledge_text == ""
    assert context.knowledge_citations == []
    assert embedder.calls == []


@pytest.mark.parametrize(
    ("url", "normalized"),
    [
        ("https://www.Example.com/a/", "https://example.com/a"),
        ("https://example.com/a#frag", "https://example.com/a"),
        ("HTTP://example.com:8080/a?b=1", "http://example.com:8080/a?b=1"),
        ("https://Example.com:99999/X", "https://example.com:99999/x"),
        ("http://[bad/x", "http://[bad/x"),
    ],
)
def test_normalize_url(url: str, normalized: str) -> None:
    assert normalize_url(url) == normalized
