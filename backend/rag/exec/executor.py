"""Provider call executor with timeout, retry and circuit breaker."""

import logging
import random
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import UTC, datetime, timedelta
from typing import TypeVar

import httpx
import openai

from backend.rag.config import Settings
from backend.rag.errors import TRANSIENT_KINDS, ProviderError, ProviderErrorKind
from backend.rag.exec.types import (
    BreakerPolicy,
    BreakerStateName,
    CallPolicy,
    CircuitBreakerState,
)
from backend.rag.metrics.core import record_provider_call
from backend.rag.metrics.registry import MetricsClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """Failure counter for one provider.

    ``closed`` admits every call. Reaching ``failure_threshold`` transient
    failures inside ``window_seconds`` moves it to ``open``, which rejects
    calls until ``cooldown_seconds`` have passed. It then turns
    ``half_open`` and admits a single trial call: success closes it, a
    transient failure re-opens it.
    """

    def __init__(
        self,
        policy: BreakerPolicy,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.policy = policy
        self.clock = clock
        self.failures: deque[datetime] = deque()
        self.state: BreakerStateName = "closed"
        self.opened_at: datetime | None = None
        self.trial_in_flight = False
        self.lock = threading.Lock()

    def _trip(self, now: datetime) -> None:
        self.state = "open"
        self.opened_at = now
        self.trial_in_flight = False

    def allow_request(self) -> bool:
        """Whether a call may go out now; claims the trial slot when half-open."""
        with self.lock:
            if self.state == "open":
                cooldown = timedelta(seconds=self.policy.cooldown_seconds)
                if self.opened_at is not None and self.clock() - self.opened_at < cooldown:
                    return False
                self.state = "half_open"
            if self.state == "half_open":
                if self.trial_in_flight:
                    return False
                self.trial_in_flight = True
            return True

    def record_failure(self) -> bool:
        """Count a transient failure. Returns True if it opened the breaker."""
        with self.lock:
            now = self.clock()
            self.failures.append(now)
            cutoff = now - timedelta(seconds=self.policy.window_seconds)
            while self.failures and self.failures[0] < cutoff:
                self.failures.popleft()

            if self.state == "half_open" or (
                self.state == "closed" and len(self.failures) >= self.policy.failure_threshold
            ):
                self._trip(now)
                return True
            return False

    def record_success(self) -> None:
        with self.lock:
            if self.state == "half_open":
                self.state = "closed"
                self.failures.clear()
                self.opened_at = None
            self.trial_in_flight = False

    def release_trial(self) -> None:
        """Give the trial slot back after an outcome that says nothing about health."""
        with self.lock:
            self.trial_in_flight = False

    def snapshot(self) -> CircuitBreakerState:
        with self.lock:
            return CircuitBreakerState(
                failures=len(self.failures),
                opened_at=self.opened_at,
                state=self.state,
            )


def _kind_for_status(status_code: int) -> ProviderErrorKind:
    if status_code == 429:
        return "rate_limited"
    if status_code >= 500:
        return "unavailable"
    return "rejected"


def classify_exception(exc: BaseException) -> ProviderErrorKind:
    """Map a provider SDK/transport exception to an error kind.

    Timeouts, rate limits, connection failures and 5xx responses are
    transient; everything else is permanent.
    """
    if isinstance(exc, ProviderError):
        return exc.kind
    if isinstance(exc, (FuturesTimeoutError, openai.APITimeoutError, httpx.TimeoutException)):
        return "timeout"
    if isinstance(exc, openai.RateLimitError):
        return "rate_limited"
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        return "unavailable"
    if isinstance(exc, openai.APIStatusError):
        return _kind_for_status(exc.status_code)
    if isinstance(exc, httpx.HTTPStatusError):
        return _kind_for_status(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return "unavailable"
    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return "malformed"
    return "rejected"


class ProviderExecutor:
    """Runs external provider calls with timeout, retry and circuit breaking.

    One executor is built at start-up and shared by every adapter. Each
    provider name gets its own breaker.
    """

    def __init__(
        self,
        settings: Settings,
        metrics: MetricsClient | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_workers: int = 16,
    ) -> None:
        """Initialize provider executor.

        Args:
            settings: RAG settings (timeouts, retry and breaker tuning).
            metrics: Optional in-process metrics registry.
            rng: Optional random number generator for jitter (for testing).
            sleep: Sleep function used between retries (for testing).
            max_workers: Threads available for in-flight provider calls.
        """
        self.settings = settings
        self.metrics = metrics
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.default_policy = CallPolicy.from_settings(settings)
        breaker_policy = BreakerPolicy.from_settings(settings)
        self.breakers: dict[str, CircuitBreaker] = defaultdict(
            lambda: CircuitBreaker(breaker_policy)
        )
        self.executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="rag-provider"
        )

    def _backoff_seconds(self, attempt: int) -> float:
        jitter_ms = self.rng.randint(
            self.settings.retry_jitter_min_ms,
            self.settings.retry_jitter_max_ms,
        )
        return (self.settings.retry_backoff_base_ms * 2**attempt + jitter_ms) / 1000.0

    def _record(
        self,
        provider: str,
        started: float,
        ok: bool,
        retries: int,
        error_kind: str | None,
    ) -> None:
        latency_ms = int((time.time() - started) * 1000)
        record_provider_call(
            provider=provider,
            latency_ms=latency_ms,
            ok=ok,
            retries=retries,
            error_kind=error_kind,
        )
        if self.metrics is not None:
            self.metrics.observe_provider_latency(
                provider, "success" if ok else "error", latency_ms
            )
            if retries:
                self.metrics.inc_provider_retries(provider, retries)
            if error_kind:
                self.metrics.inc_provider_errors(provider, error_kind)

    def call(
        self,
        provider: str,
        fn: Callable[[], T],
        policy: CallPolicy | None = None,
        error_cls: type[ProviderError] = ProviderError,
    ) -> T:
        """Call ``fn`` under the provider's policies.

        Args:
            provider: Provider name; selects the circuit breaker.
            fn: Zero-argument callable performing one provider request.
            policy: Attempts and per-attempt timeout; settings by default.
            error_cls: ProviderError subclass raised on failure.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            ProviderError: (as ``error_cls``) after the last failed attempt,
                immediately for permanent errors, or without calling ``fn``
                when the breaker is open.
        """
        policy = policy or self.default_policy
        started = time.time()
        breaker = self.breakers[provider]

        if not breaker.allow_request():
            self._record(provider, started, ok=False, retries=0, error_kind="breaker_open")
            raise error_cls(provider, "breaker_open", "circuit breaker is open")

        last_exc: BaseException | None = None
        kind: ProviderErrorKind = "unavailable"
        retries = 0

        for attempt in range(policy.max_attempts):
            if attempt > 0:
                delay = self._backoff_seconds(attempt - 1)
                logger.warning(
                    "provider_retry",
                    extra={
                        "provider": provider,
                        "attempt": attempt + 1,
                        "error_kind": kind,
                        "delay_s": delay,
                    },
                )
                self.sleep(delay)
                retries = attempt

            future = self.executor.submit(fn)
            try:
                result = future.result(timeout=policy.timeout_s)
            except FuturesTimeoutError as exc:
                future.cancel()
                last_exc, kind = exc, "timeout"
            except Exception as exc:
                last_exc, kind = exc, classify_exception(exc)
            else:
                breaker.record_success()
                self._record(provider, started, ok=True, retries=retries, error_kind=None)
                return result

            if kind not in TRANSIENT_KINDS:
                break

        if kind not in TRANSIENT_KINDS:
            breaker.release_trial()
        elif breaker.record_failure():
            logger.warning("provider_breaker_open", extra={"provider": provider})
            if self.metrics is not None:
                self.metrics.inc_breaker_open(provider)
        if self.metrics is not None:
            self.metrics.set_breaker_state(provider, breaker.snapshot().state)

        self._record(provider, started, ok=False, retries=retries, error_kind=kind)
        raise error_cls(provider, kind, str(last_exc) or type(last_exc).__name__) from last_exc

    def shutdown(self, wait: bool = True) -> None:
        self.executor.shutdown(wait=wait)
