"""In-process metrics registry for the RAG core."""

import threading
from collections import defaultdict
from typing import Literal


class MetricsClient:
    """
    Simple in-process metrics client.

    Stores metrics in memory for testing and internal monitoring.
    Can be replaced with Prometheus/OpenTelemetry in the future.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        # Provider latency observations: provider -> list of (status, latency_ms)
        self.provider_latencies: dict[str, list[tuple[str, int]]] = defaultdict(list)

        # Retry counts: provider -> count
        self.provider_retries: dict[str, int] = defaultdict(int)

        # Error counts: provider -> reason -> count
        self.provider_errors: dict[str, dict[str, int]] = defaultdict(
            lambda: defaultdict(int)
        )

        # Breaker open events: provider -> count
        self.breaker_opens: dict[str, int] = defaultdict(int)

        # Breaker states: provider -> current state
        self.breaker_states: dict[str, Literal["open", "closed", "half_open"]] = {}

        # Decisions: action -> count
        self.decision_counts: dict[str, int] = defaultdict(int)
        self.decision_fallbacks: int = 0

        # Retrieval outcomes
        self.retrieval_hits: int = 0
        self.retrieval_misses: int = 0
        self.retrieved_chunks: list[int] = []

        # Ingestion outcomes: document kind -> count
        self.ingestion_ok: dict[str, int] = defaultdict(int)
        self.ingestion_failed: dict[str, int] = defaultdict(int)

        # Synthesis latency observations in milliseconds
        self.synthesis_latencies: list[int] = []

    def observe_provider_latency(
        self, provider: str, status: str, latency_ms: int
    ) -> None:
        """Record a provider latency observation."""
        with self._lock:
            self.provider_latencies[provider].append((status, latency_ms))

    def inc_provider_retries(self, provider: str, count: int = 1) -> None:
        """Increment retry counter for a provider."""
        with self._lock:
            self.provider_retries[provider] += count

    def inc_provider_errors(self, provider: str, reason: str) -> None:
        """Increment error counter for a provider and reason."""
        with self._lock:
            self.provider_errors[provider][reason] += 1

    def inc_breaker_open(self, provider: str) -> None:
        """Increment breaker open event counter."""
        with self._lock:
            self.breaker_opens[provider] += 1

    def set_breaker_state(
        self, provider: str, state: Literal["open", "closed", "half_open"]
    ) -> None:
        """Set current breaker state for a provider."""
        self.breaker_states[provider] = state

    def inc_decision(self, action: str, fallback: bool = False) -> None:
        """Count a decision; ``fallback`` marks unparseable model output."""
        with self._lock:
            self.decision_counts[action] += 1
            if fallback:
                self.decision_fallbacks += 1

    def observe_retrieval(self, matched: int) -> None:
        """Record how many chunks a retrieval returned."""
        with self._lock:
            self.retrieved_chunks.append(matched)
            if matched:
                self.retrieval_hits += 1
            else:
                self.retrieval_misses += 1

    def inc_ingestion(self, kind: str, ok: bool) -> None:
        """Count an ingestion outcome for a document kind."""
        with self._lock:
            if ok:
                self.ingestion_ok[kind] += 1
            else:
                self.ingestion_failed[kind] += 1

    def observe_synthesis_latency(self, latency_ms: int) -> None:
        """Record synthesis latency."""
        with self._lock:
            self.synthesis_latencies.append(latency_ms)

    def get_provider_latency_stats(self, provider: str) -> dict[str, float]:
        """Get latency statistics for a provider."""
        latencies = [lat for _, lat in self.provider_latencies.get(provider, [])]
        if not latencies:
            return {"count": 0, "min": 0, "max": 0, "avg": 0}

        return {
            "count": len(latencies),
            "min": min(latencies),
            "max": max(latencies),
            "avg": sum(latencies) / len(latencies),
        }

    def get_provider_error_count(self, provider: str, reason: str | None = None) -> int:
        """Get error count for a provider, optionally filtered by reason."""
        if reason:
            return self.provider_errors.get(provider, {}).get(reason, 0)
        return sum(self.provider_errors.get(provider, {}).values())

    def get_retrieval_stats(self) -> dict[str, float]:
        """Get retrieval hit statistics."""
        total = self.retrieval_hits + self.retrieval_misses
        return {
            "queries": total,
            "hits": self.retrieval_hits,
            "misses": self.retrieval_misses,
            "hit_rate": self.retrieval_hits / total if total else 0.0,
            "avg_chunks": (
                sum(self.retrieved_chunks) / len(self.retrieved_chunks)
                if self.retrieved_chunks
                else 0.0
            ),
        }
