"""Classify a query into one of the answer strategies."""

import json
import logging
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from backend.rag.adapters.llm import ChatModel
from backend.rag.errors import ProviderError
from backend.rag.graph.prompts import (
    DECISION_SYSTEM_PROMPT,
    build_decision_prompt,
    format_snippet,
)
from backend.rag.metrics.registry import MetricsClient
from backend.rag.models.answer import ScoredChunk
from backend.rag.models.decision import ActionDecision, WebSearch, decision_adapter

logger = logging.getLogger(__name__)


def _strip_fences(content: str) -> str:
    # Extract JSON from markdown code blocks if present
    if "```json" in content:
        return content.split("```json")[1].split("```")[0].strip()
    if "```" in content:
        return content.split("```")[1].split("```")[0].strip()
    return content.strip()


def _first(data: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_decision(raw: str, query: str) -> ActionDecision | None:
    """Parse model output into a decision, or None if it is unusable.

    Only the payload field belonging to the chosen action is kept, so a
    ``CLARIFY`` never carries a search query. ``WEB_SEARCH`` without a
    query searches for the user's question verbatim.
    """
    try:
        data = json.loads(_strip_fences(raw))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    action = str(data.get("action") or "").strip().upper()
    payload: dict[str, Any] = {"action": action, "reason": _first(data, "reason")}
    if action == "WEB_SEARCH":
        payload["search_query"] = _first(data, "searchQuery", "search_query") or query
    elif action == "CLARIFY":
        payload["clarification_question"] = _first(
            data, "clarificationQuestion", "clarification_question"
        )

    try:
        return decision_adapter.validate_python(payload)
    except ValidationError:
        return None


class DecisionEngine:
    """Picks an answer strategy from the query and an initial knowledge snippet.

    Always returns a decision: unusable model output or a provider failure
    falls back to a web search for the raw query.
    """

    def __init__(self, model: ChatModel, metrics: MetricsClient | None = None) -> None:
        self.model = model
        self.metrics = metrics

    def decide(self, query: str, snippet: Sequence[ScoredChunk]) -> ActionDecision:
        prompt = build_decision_prompt(query, format_snippet(snippet))
        try:
            raw = self.model.complete(
                prompt, system=DECISION_SYSTEM_PROMPT, json_mode=True, temperature=0.0
            )
        except ProviderError as exc:
            logger.warning(
                "decision_provider_failed",
                extra={"error_kind": exc.kind, "provider": exc.provider},
            )
            return self._fallback(query, f"decision model unavailable ({exc.kind})")

        decision = parse_decision(raw, query)
        if decision is None:
            logger.warning("decision_unparseable", extra={"raw": raw[:200]})
            return self._fallback(query, "decision output was not a valid action")

        if self.metrics is not None:
            self.metrics.inc_decision(decision.action)
        logger.info(
            "decision_made",
            extra={"action": decision.action, "reason": decision.reason},
        )
        return decision

    def _fallback(self, query: str, reason: str) -> ActionDecision:
        if self.metrics is not None:
            self.metrics.inc_decision("WEB_SEARCH", fallback=True)
        return WebSearch(search_query=query, reason=reason)
