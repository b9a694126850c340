"""Metrics façade for provider call tracking."""

import logging

logger = logging.getLogger(__name__)


def record_provider_call(
    provider: str,
    latency_ms: int,
    ok: bool,
    retries: int,
    error_kind: str | None,
    tokens_in: int | None = None,
    tokens_out: int | None = None,
) -> None:
    """Record metrics for a provider call.

    Logs one structured record per call; a metrics backend can pick these up
    from the log stream.

    Args:
        provider: Provider name (``embeddings``, ``chat``, ``web_search``).
        latency_ms: Latency in milliseconds, retries included.
        ok: Whether the call succeeded.
        retries: Number of retries performed.
        error_kind: Type of error if call failed, None if succeeded.
        tokens_in: Optional prompt token count.
        tokens_out: Optional completion token count.
    """
    logger.info(
        "provider_call_metric",
        extra={
            "provider": provider,
            "latency_ms": latency_ms,
            "ok": ok,
            "retries": retries,
            "error_kind": error_kind,
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
        },
    )
