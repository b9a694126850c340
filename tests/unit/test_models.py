"""Tests for RAG data models."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from backend.rag.models import (
    CanvasNode,
    Clarify,
    DocumentKind,
    KnowledgeScope,
    PdfSource,
    ScopeKind,
    TextSource,
    WebSearch,
)
from backend.rag.models.decision import decision_adapter
from backend.rag.models.ingest import ingest_adapter


def test_canvas_scope_requires_owner() -> None:
    with pytest.raises(ValidationError):
        KnowledgeScope(kind=ScopeKind.canvas)


def test_global_scope_rejects_owner() -> None:
    with pytest.raises(ValidationError):
        KnowledgeScope(kind=ScopeKind.global_, owner_id=uuid4())


def test_scope_is_hashable_and_frozen() -> None:
    canvas_id = uuid4()
    a, b = KnowledgeScope.canvas(canvas_id), KnowledgeScope.canvas(canvas_id)

    assert a == b
    assert len({a, b}) == 1
    with pytest.raises(ValidationError):
        a.owner_id = uuid4()


def test_searchable_scopes() -> None:
    canvas = KnowledgeScope.canvas(uuid4())
    pool = KnowledgeScope.global_pool()

    assert canvas.searchable(include_global=True) == [canvas, pool]
    assert canvas.searchable(include_global=False) == [canvas]
    assert pool.searchable(include_global=True) == [pool]


def test_singleton_key() -> None:
    canvas_id = uuid4()
    scope = KnowledgeScope.canvas(canvas_id)
    assert scope.singleton_key(DocumentKind.internal_todos) == f"canvas:{canvas_id}:internal-todos"
    assert (
        KnowledgeScope.global_pool().singleton_key(DocumentKind.internal_memos)
        == "global:-:internal-memos"
    )


def test_internal_kinds() -> None:
    assert DocumentKind("internal-nodes").is_internal
    assert not DocumentKind.pdf.is_internal


@pytest.mark.parametrize(
    ("node", "is_todo"),
    [
        (CanvasNode(id="n1", type="note"), False),
        (CanvasNode(id="n2", type="todo"), True),
        (CanvasNode(id="todo-3", type="card"), True),
    ],
)
def test_node_is_todo(node: CanvasNode, is_todo: bool) -> None:
    assert node.is_todo is is_todo


def test_decision_union_discriminates() -> None:
    decision = decision_adapter.validate_python(
        {"action": "CLARIFY", "clarification_question": "Which one?"}
    )
    assert decision == Clarify(clarification_question="Which one?")


@pytest.mark.parametrize(
    "payload",
    [
        {"action": "WEB_SEARCH"},
        {"action": "WEB_SEARCH", "search_query": ""},
        {"action": "KNOWLEDGE_ONLY", "search_query": "stray"},
        {"action": "GUESS"},
    ],
)
def test_decision_union_rejects_invalid(payload) -> None:
    with pytest.raises(ValidationError):
        decision_adapter.validate_python(payload)


def test_decisions_are_immutable() -> None:
    decision = WebSearch(search_query="rates")
    with pytest.raises(ValidationError):
        decision.search_query = "other"


def test_ingest_adapter_picks_source_type() -> None:
    source = ingest_adapter.validate_python(
        {"kind": "pdf", "title": "Manual", "content": "text", "filename": "m.pdf"}
    )
    assert isinstance(source, PdfSource)
    assert source.document_kind is DocumentKind.pdf
    assert source.source_url is None


def test_text_source_metadata_is_copied() -> None:
    source = TextSource(title="Note", content="body", metadata={"tag": "a"})
    meta = source.document_metadata()
    meta["tag"] = "b"
    assert source.metadata == {"tag": "a"}
