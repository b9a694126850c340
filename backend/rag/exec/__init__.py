"""Provider execution with timeouts, retries and circuit breaking."""

from backend.rag.exec.executor import CircuitBreaker, ProviderExecutor, classify_exception
from backend.rag.exec.types import BreakerPolicy, CallPolicy, CircuitBreakerState

__all__ = [
    "ProviderExecutor",
    "CircuitBreaker",
    "classify_exception",
    "CallPolicy",
    "BreakerPolicy",
    "CircuitBreakerState",
]
