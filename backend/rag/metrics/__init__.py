"""Metrics for provider calls, decisions, retrieval and ingestion."""

from backend.rag.metrics.core import record_provider_call
from backend.rag.metrics.registry import MetricsClient

__all__ = ["MetricsClient", "record_provider_call"]
