"""Unit tests for ProviderExecutor and CircuitBreaker."""

import random
import threading
from datetime import UTC, datetime, timedelta

import httpx
import openai
import pytest

from backend.rag.config import Settings
from backend.rag.errors import EmbeddingError, ProviderError
from backend.rag.exec import BreakerPolicy, CallPolicy, CircuitBreaker, ProviderExecutor
from backend.rag.exec.executor import classify_exception
from backend.rag.metrics import MetricsClient

_REQUEST = httpx.Request("GET", "https://example.test/")


class Flaky:
    """Callable that raises the scripted errors, then returns ``value``."""

    def __init__(self, *errors: Exception, value: str = "ok") -> None:
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def _status_error(status: int) -> httpx.HTTPStatusError:
    response = httpx.Response(status, request=_REQUEST)
    return httpx.HTTPStatusError("status", request=_REQUEST, response=response)


# === Retry Tests ===


def test_transient_error_retried_then_succeeds(
    executor: ProviderExecutor, metrics: MetricsClient
) -> None:
    fn = Flaky(httpx.ConnectError("refused"))

    assert executor.call("web_search", fn) == "ok"
    assert fn.calls == 2
    assert metrics.provider_retries["web_search"] == 1
    assert metrics.provider_latencies["web_search"][0][0] == "success"


def test_permanent_error_not_retried(
    executor: ProviderExecutor, metrics: MetricsClient
) -> None:
    fn = Flaky(_status_error(400))

    with pytest.raises(ProviderError) as exc_info:
        executor.call("web_search", fn)

    assert fn.calls == 1
    assert exc_info.value.kind == "rejected"
    assert not exc_info.value.transient
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)
    assert metrics.get_provider_error_count("web_search", "rejected") == 1


def test_attempts_exhausted_raises_requested_error_class(executor: ProviderExecutor) -> None:
    fn = Flaky(*[_status_error(503)] * 5)

    with pytest.raises(EmbeddingError) as exc_info:
        executor.call("embeddings", fn, error_cls=EmbeddingError)

    assert fn.calls == 3
    assert exc_info.value.kind == "unavailable"
    assert exc_info.value.provider == "embeddings"


def test_call_policy_overrides_attempts(executor: ProviderExecutor) -> None:
    fn = Flaky(*[_status_error(429)] * 5)

    with pytest.raises(ProviderError) as exc_info:
        executor.call("chat", fn, policy=CallPolicy(max_attempts=1, timeout_s=1.0))

    assert fn.calls == 1
    assert exc_info.value.kind == "rate_limited"


def test_backoff_grows_exponentially(settings: Settings) -> None:
    delays: list[float] = []
    tuned = settings.model_copy(
        update={"retry_backoff_base_ms": 100, "retry_jitter_min_ms": 0, "retry_jitter_max_ms": 0}
    )
    executor = ProviderExecutor(tuned, rng=random.Random(0), sleep=delays.append)
    try:
        with pytest.raises(ProviderError):
            executor.call("chat", Flaky(*[httpx.ReadError("reset")] * 3))
    finally:
        executor.shutdown(wait=False)

    assert delays == [0.1, 0.2]


def test_attempt_timeout(executor: ProviderExecutor, metrics: MetricsClient) -> None:
    release = threading.Event()

    def hang() -> str:
        release.wait(5)
        return "late"

    try:
        with pytest.raises(ProviderError) as exc_info:
            executor.call("chat", hang, policy=CallPolicy(max_attempts=1, timeout_s=0.05))
    finally:
        release.set()

    assert exc_info.value.kind == "timeout"
    assert metrics.get_provider_error_count("chat", "timeout") == 1


# === Circuit Breaker Tests ===


def test_breaker_opens_after_threshold(
    executor: ProviderExecutor, metrics: MetricsClient
) -> None:
    for _ in range(3):
        with pytest.raises(ProviderError):
            executor.call("web_search", Flaky(*[httpx.ConnectError("down")] * 3))

    fn = Flaky()
    with pytest.raises(ProviderError) as exc_info:
        executor.call("web_search", fn)

    assert exc_info.value.kind == "breaker_open"
    assert fn.calls == 0
    assert metrics.breaker_opens["web_search"] == 1
    assert metrics.breaker_states["web_search"] == "open"


def test_breaker_is_per_provider(executor: ProviderExecutor) -> None:
    for _ in range(3):
        with pytest.raises(ProviderError):
            executor.call("web_search", Flaky(*[httpx.ConnectError("down")] * 3))

    assert executor.call("embeddings", Flaky(value="vectors")) == "vectors"


def test_permanent_errors_do_not_trip_breaker(executor: ProviderExecutor) -> None:
    for _ in range(5):
        with pytest.raises(ProviderError):
            executor.call("chat", Flaky(ValueError("bad payload")))

    assert executor.breakers["chat"].snapshot().state == "closed"


def test_breaker_half_open_trial_closes_on_success() -> None:
    breaker = CircuitBreaker(
        BreakerPolicy(failure_threshold=2, window_seconds=60, cooldown_seconds=0)
    )
    assert breaker.record_failure() is False
    assert breaker.record_failure() is True
    assert breaker.snapshot().state == "open"

    # Zero cooldown: the next check lets a trial call through
    assert breaker.allow_request() is True
    assert breaker.snapshot().state == "half_open"

    breaker.record_success()
    snapshot = breaker.snapshot()
    assert snapshot.state == "closed"
    assert snapshot.failures == 0


def test_breaker_failed_trial_reopens() -> None:
    breaker = CircuitBreaker(
        BreakerPolicy(failure_threshold=1, window_seconds=60, cooldown_seconds=0)
    )
    breaker.record_failure()
    breaker.allow_request()

    assert breaker.record_failure() is True
    assert breaker.snapshot().state == "open"


def test_breaker_stays_open_during_cooldown() -> None:
    breaker = CircuitBreaker(
        BreakerPolicy(failure_threshold=1, window_seconds=60, cooldown_seconds=300)
    )
    breaker.record_failure()
    assert breaker.allow_request() is False


def test_breaker_admits_one_trial_call_at_a_time() -> None:
    breaker = CircuitBreaker(
        BreakerPolicy(failure_threshold=1, window_seconds=60, cooldown_seconds=0)
    )
    breaker.record_failure()
    admitted: list[bool] = []
    barrier = threading.Barrier(8)

    def check() -> None:
        barrier.wait()
        admitted.append(breaker.allow_request())

    threads = [threading.Thread(target=check) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert admitted.count(True) == 1
    assert breaker.snapshot().state == "half_open"


def test_breaker_cooldown_follows_clock() -> None:
    now = [datetime(2024, 1, 1, tzinfo=UTC)]
    breaker = CircuitBreaker(
        BreakerPolicy(failure_threshold=1, window_seconds=60, cooldown_seconds=30),
        clock=lambda: now[0],
    )
    breaker.record_failure()

    now[0] += timedelta(seconds=29)
    assert breaker.allow_request() is False
    now[0] += timedelta(seconds=1)
    assert breaker.allow_request() is True
    assert breaker.allow_request() is False


def test_permanent_error_on_trial_call_frees_the_slot(settings: Settings) -> None:
    fast = settings.model_copy(update={"breaker_failure_threshold": 1, "breaker_cooldown_s": 0})
    executor = ProviderExecutor(fast, sleep=lambda _: None)
    try:
        with pytest.raises(ProviderError):
            executor.call("chat", Flaky(_status_error(503), _status_error(503), _status_error(503)))
        assert executor.breakers["chat"].snapshot().state == "open"

        with pytest.raises(ProviderError) as exc_info:
            executor.call("chat", Flaky(ValueError("bad payload")))
        assert exc_info.value.kind == "malformed"

        assert executor.call("chat", Flaky()) == "ok"
        assert executor.breakers["chat"].snapshot().state == "closed"
    finally:
        executor.shutdown()


# === Classification ===


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (openai.APITimeoutError(request=_REQUEST), "timeout"),
        (httpx.ReadTimeout("slow"), "timeout"),
        (
            openai.RateLimitError(
                "slow down", response=httpx.Response(429, request=_REQUEST), body=None
            ),
            "rate_limited",
        ),
        (openai.APIConnectionError(request=_REQUEST), "unavailable"),
        (
            openai.InternalServerError(
                "boom", response=httpx.Response(500, request=_REQUEST), body=None
            ),
            "unavailable",
        ),
        (
            openai.AuthenticationError(
                "nope", response=httpx.Response(401, request=_REQUEST), body=None
            ),
            "rejected",
        ),
        (_status_error(429), "rate_limited"),
        (_status_error(502), "unavailable"),
        (_status_error(404), "rejected"),
        (httpx.ConnectError("refused"), "unavailable"),
        (KeyError("organic_results"), "malformed"),
        (ProviderError("chat", "breaker_open", "open"), "breaker_open"),
        (RuntimeError("unexpected"), "rejected"),
    ],
)
def test_classify_exception(exc: Exception, kind: str) -> None:
    assert classify_exception(exc) == kind
