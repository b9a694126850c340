"""LangGraph runner for answering a question against a knowledge scope."""

import logging
from typing import Any

from langgraph.graph import StateGraph

from backend.rag.config import Settings
from backend.rag.errors import ProviderError, RagValidationError
from backend.rag.graph.context_builder import BuiltContext, ContextBuilder
from backend.rag.graph.decision import DecisionEngine
from backend.rag.graph.prompts import format_history
from backend.rag.graph.state import RagState
from backend.rag.graph.synthesizer import AnswerSynthesizer
from backend.rag.knowledge.retriever import Retriever
from backend.rag.models.answer import RagAnswer
from backend.rag.models.chat import ChatHistoryReader
from backend.rag.models.common import KnowledgeScope

logger = logging.getLogger(__name__)


class RagPipeline:
    """Decision, context and synthesis for one query at a time.

    Graph flow:
        load_history → initial_retrieval → decide_action
            → ask_clarification                          (CLARIFY)
            → build_context → synthesize_answer          (everything else)

    Independent queries may run concurrently on one pipeline; nodes share
    no mutable state.
    """

    def __init__(
        self,
        history: ChatHistoryReader,
        retriever: Retriever,
        decision_engine: DecisionEngine,
        context_builder: ContextBuilder,
        synthesizer: AnswerSynthesizer,
        settings: Settings,
    ) -> None:
        self.history = history
        self.retriever = retriever
        self.decision_engine = decision_engine
        self.context_builder = context_builder
        self.synthesizer = synthesizer
        self.settings = settings
        self._graph = self._build_graph()

    def _build_graph(self) -> Any:
        """Build the LangGraph pipeline graph.

        Returns:
            Compiled LangGraph graph
        """
        graph = StateGraph(RagState)

        graph.add_node("load_history", self._load_history)
        graph.add_node("initial_retrieval", self._initial_retrieval)
        graph.add_node("decide_action", self._decide_action)
        graph.add_node("ask_clarification", self._ask_clarification)
        graph.add_node("build_context", self._build_context)
        graph.add_node("synthesize_answer", self._synthesize_answer)

        graph.set_entry_point("load_history")
        graph.add_edge("load_history", "initial_retrieval")
        graph.add_edge("initial_retrieval", "decide_action")
        graph.add_conditional_edges(
            "decide_action",
            _route_after_decision,
            {"ask_clarification": "ask_clarification", "build_context": "build_context"},
        )
        graph.add_edge("build_context", "synthesize_answer")
        graph.set_finish_point("ask_clarification")
        graph.set_finish_point("synthesize_answer")

        return graph.compile()

    def _load_history(self, state: RagState) -> dict[str, Any]:
        turns = self.history.recent_turns(state.scope, self.settings.history_turns)
        return {"history": list(turns)[-self.settings.history_turns :]}

    def _initial_retrieval(self, state: RagState) -> dict[str, Any]:
        try:
            chunks = self.retriever.retrieve(
                state.scope, state.query, k=self.settings.retrieval_top_k
            )
        except ProviderError as exc:
            # The decision engine still runs, just without a snippet.
            logger.warning(
                "initial_retrieval_failed",
                extra={"error_kind": exc.kind, "provider": exc.provider},
            )
            return {"initial_chunks": None}
        return {"initial_chunks": chunks}

    def _decide_action(self, state: RagState) -> dict[str, Any]:
        snippet = (state.initial_chunks or [])[: self.settings.decision_snippet_k]
        return {"decision": self.decision_engine.decide(state.query, snippet)}

    def _ask_clarification(self, state: RagState) -> dict[str, Any]:
        context = BuiltContext(history_text=format_history(state.history))
        return {
            "context": context,
            "answer": self.synthesizer.synthesize(state.query, state.decision, context),
        }

    def _build_context(self, state: RagState) -> dict[str, Any]:
        context = self.context_builder.build(
            state.scope,
            state.query,
            state.decision,
            state.history,
            prefetched=state.initial_chunks,
        )
        return {"context": context}

    def _synthesize_answer(self, state: RagState) -> dict[str, Any]:
        return {
            "answer": self.synthesizer.synthesize(state.query, state.decision, state.context)
        }

    def answer(self, scope: KnowledgeScope, query: str) -> RagAnswer:
        """Answer ``query`` from the knowledge in ``scope``.

        Raises:
            RagValidationError: For an empty query or invalid scope, before
                any external call.
            ProviderError: If a knowledge retrieval or the synthesis call
                fails after retries.
        """
        if not isinstance(scope, KnowledgeScope):
            raise RagValidationError(f"invalid scope: {scope!r}")
        if not query or not query.strip():
            raise RagValidationError("query must not be empty")

        result = self._graph.invoke({"scope": scope, "query": query.strip()})
        state = result if isinstance(result, RagState) else RagState.model_validate(result)
        logger.info(
            "query_answered",
            extra={
                "owner_id": str(scope.owner_id),
                "action": state.answer.usage.action,
                "chunks_matched": state.answer.usage.chunks_matched,
            },
        )
        return state.answer


def _route_after_decision(state: RagState) -> str:
    if state.decision is not None and state.decision.action == "CLARIFY":
        return "ask_clarification"
    return "build_context"
