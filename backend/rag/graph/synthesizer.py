"""Render the grounded prompt and call the model once."""

import logging
import time

from backend.rag.adapters.llm import ChatModel
from backend.rag.graph.context_builder import BuiltContext
from backend.rag.graph.prompts import (
    build_answer_prompt,
    build_conversation_summary_prompt,
    build_knowledge_summary_prompt,
    resolve_header,
)
from backend.rag.knowledge.prompt_store import RagPromptStore
from backend.rag.metrics.registry import MetricsClient
from backend.rag.models.answer import RagAnswer, RagUsage
from backend.rag.models.decision import ActionDecision

logger = logging.getLogger(__name__)


class AnswerSynthesizer:
    """Turns a built context into the final answer."""

    def __init__(
        self,
        model: ChatModel,
        prompt_store: RagPromptStore | None = None,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.model = model
        self.prompt_store = prompt_store
        self.metrics = metrics

    def _header(self) -> str:
        instruction = self.prompt_store.get_active_instruction() if self.prompt_store else ""
        return resolve_header(instruction)

    def render_prompt(self, query: str, decision: ActionDecision, context: BuiltContext) -> str:
        header = self._header()
        if decision.action == "CONVERSATION_SUMMARY":
            return build_conversation_summary_prompt(header, context.history_text, query)
        if decision.action == "KNOWLEDGE_SUMMARY":
            return build_knowledge_summary_prompt(header, context.knowledge_text, query)
        return build_answer_prompt(
            header,
            context.knowledge_text,
            context.web_text,
            context.history_text,
            query,
        )

    def synthesize(
        self, query: str, decision: ActionDecision, context: BuiltContext
    ) -> RagAnswer:
        """Answer ``query`` from ``context`` with a single model call.

        ``CLARIFY`` is answered with the clarification question itself and
        makes no model call.

        Raises:
            LLMError: If the completion fails.
        """
        usage = RagUsage(
            action=decision.action,
            chunks_matched=len(context.knowledge_citations),
            web_search_used=context.web_search_used,
        )
        if decision.action == "CLARIFY":
            return RagAnswer(
                answer=decision.clarification_question,
                decision=decision,
                usage=usage,
            )

        started = time.time()
        prompt = self.render_prompt(query, decision, context)
        answer = self.model.complete(prompt)
        latency_ms = int((time.time() - started) * 1000)
        if self.metrics is not None:
            self.metrics.observe_synthesis_latency(latency_ms)
        logger.info(
            "answer_synthesized",
            extra={"action": decision.action, "latency_ms": latency_ms},
        )

        return RagAnswer(
            answer=answer,
            decision=decision,
            knowledge_citations=context.knowledge_citations,
            web_citations=context.web_citations,
            usage=usage,
        )
