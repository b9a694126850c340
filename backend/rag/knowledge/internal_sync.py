"""Mirror structured workspace data into internal knowledge documents.

Each canvas has exactly one synthetic document per category (nodes, memos,
to-dos). Every mutation of that data re-renders the category and replaces
the document's chunks, so retrieval always sees the current state.
"""

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from backend.rag.errors import RagError
from backend.rag.knowledge.store import KnowledgeStore
from backend.rag.models.common import DocumentKind, KnowledgeScope
from backend.rag.models.workspace import CanvasNode, Memo, Todo

logger = logging.getLogger(__name__)

NODES_HEADER = "Canvas nodes summary\n\nNodes currently placed on the canvas:"
MEMOS_HEADER = "Canvas memos\n\nText memos written on the canvas:"
TODOS_HEADER = "Canvas to-do checklist\n\nTasks tracked for this canvas:"
EMPTY_SECTION = "- (none)"

NODES_TITLE = "Nodes Data"
MEMOS_TITLE = "Memos Data"
TODOS_TITLE = "Todos Data"

SyncKey = tuple[KnowledgeScope, DocumentKind]


def _node_line(node: CanvasNode) -> str:
    kind = f"[{node.type}] " if node.type else ""
    title = node.title or "Untitled"
    subtitle = f" - {node.subtitle}" if node.subtitle else ""
    return f"- {kind}{title}{subtitle}"


def render_nodes(nodes: Sequence[CanvasNode]) -> tuple[str, dict[str, Any]]:
    """Render non-to-do nodes; to-dos have their own document."""
    kept = [node for node in nodes if not node.is_todo]
    content = "\n".join([NODES_HEADER, *(_node_line(node) for node in kept)])
    return content, {"nodeCount": len(kept)}


def render_memos(memos: Sequence[Memo]) -> tuple[str, dict[str, Any]]:
    """Render memos numbered in creation order."""
    ordered = sorted(memos, key=lambda memo: memo.created_at)
    items = [f"{n}. {memo.content.strip()}" for n, memo in enumerate(ordered, start=1)]
    content = "\n".join([MEMOS_HEADER, *items])
    return content, {"memoCount": len(ordered)}


def render_todos(todos: Sequence[Todo]) -> tuple[str, dict[str, Any]]:
    """Render to-dos as incomplete and complete sections, in list order."""
    ordered = sorted(todos, key=lambda todo: todo.position)
    incomplete = [f"- {todo.text}" for todo in ordered if not todo.completed]
    complete = [f"- {todo.text}" for todo in ordered if todo.completed]
    lines = [
        TODOS_HEADER,
        "Todos (incomplete):",
        *(incomplete or [EMPTY_SECTION]),
        "\nTodos (complete):",
        *(complete or [EMPTY_SECTION]),
    ]
    metadata = {
        "total": len(ordered),
        "completed": len(complete),
        "incomplete": len(incomplete),
    }
    return "\n".join(lines), metadata


class InternalStateSynchronizer:
    """Keeps the internal documents of each canvas in step with its data.

    ``sync_*`` run inline and raise on failure. ``schedule_*`` run in the
    background, never raise into the caller, and log failures instead.
    Runs for the same ``(scope, kind)`` are serialized.
    """

    def __init__(self, store: KnowledgeStore, max_workers: int = 2) -> None:
        self.store = store
        # Entries live only while a sync for the key is running or queued.
        self._locks: dict[SyncKey, threading.RLock] = {}
        self._users: dict[SyncKey, int] = {}
        self._generations: dict[SyncKey, int] = {}
        self._locks_guard = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="rag-sync"
        )

    def _retain(self, key: SyncKey) -> threading.RLock:
        with self._locks_guard:
            self._users[key] = self._users.get(key, 0) + 1
            return self._locks.setdefault(key, threading.RLock())

    def _release(self, key: SyncKey) -> None:
        with self._locks_guard:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
                self._generations.pop(key, None)

    @contextmanager
    def _lock_for(self, scope: KnowledgeScope, kind: DocumentKind) -> Iterator[None]:
        """Hold the lock of one category of one scope."""
        key = (scope, kind)
        lock = self._retain(key)
        try:
            with lock:
                yield
        finally:
            self._release(key)

    def tracked_keys(self) -> int:
        """Number of categories with a sync running or queued."""
        with self._locks_guard:
            return len(self._locks)

    def _write(
        self,
        scope: KnowledgeScope,
        kind: DocumentKind,
        title: str,
        rendered: tuple[str, dict[str, Any]],
    ) -> UUID:
        content, metadata = rendered
        with self._lock_for(scope, kind):
            document_id = self.store.upsert_document(
                scope, kind, title, content, metadata=metadata
            )
            self.store.replace_chunks(document_id, self.store.split(content))
        logger.info(
            "internal_sync_done",
            extra={"scope": scope.kind.value, "owner_id": str(scope.owner_id), "kind": kind.value},
        )
        return document_id

    def sync_nodes(self, scope: KnowledgeScope, nodes: Sequence[CanvasNode]) -> UUID:
        return self._write(scope, DocumentKind.internal_nodes, NODES_TITLE, render_nodes(nodes))

    def sync_memos(self, scope: KnowledgeScope, memos: Sequence[Memo]) -> UUID:
        return self._write(scope, DocumentKind.internal_memos, MEMOS_TITLE, render_memos(memos))

    def sync_todos(self, scope: KnowledgeScope, todos: Sequence[Todo]) -> UUID:
        return self._write(scope, DocumentKind.internal_todos, TODOS_TITLE, render_todos(todos))

    def _submit(
        self,
        kind: DocumentKind,
        fn: Callable[[KnowledgeScope, Sequence[Any]], UUID],
        scope: KnowledgeScope,
        items: Sequence[Any],
    ) -> Future[UUID | None]:
        snapshot = list(items)
        key = (scope, kind)
        # The queued run holds a reference until it finishes.
        self._retain(key)
        with self._locks_guard:
            generation = self._generations.get(key, 0) + 1
            self._generations[key] = generation

        def _run() -> UUID | None:
            try:
                with self._lock_for(scope, kind):
                    # A newer snapshot of the same category is queued; it wins.
                    if self._generations[key] != generation:
                        return None
                    try:
                        return fn(scope, snapshot)
                    except (RagError, SQLAlchemyError):
                        logger.exception(
                            "internal_sync_failed",
                            extra={"kind": kind.value, "owner_id": str(scope.owner_id)},
                        )
                        return None
            finally:
                self._release(key)

        try:
            return self._executor.submit(_run)
        except RuntimeError:
            self._release(key)
            raise

    def schedule_nodes(
        self, scope: KnowledgeScope, nodes: Sequence[CanvasNode]
    ) -> Future[UUID | None]:
        return self._submit(DocumentKind.internal_nodes, self.sync_nodes, scope, nodes)

    def schedule_memos(self, scope: KnowledgeScope, memos: Sequence[Memo]) -> Future[UUID | None]:
        return self._submit(DocumentKind.internal_memos, self.sync_memos, scope, memos)

    def schedule_todos(self, scope: KnowledgeScope, todos: Sequence[Todo]) -> Future[UUID | None]:
        return self._submit(DocumentKind.internal_todos, self.sync_todos, scope, todos)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
