"""Tests for the batch embedding client."""

import random
import threading
from types import SimpleNamespace

import httpx
import openai
import pytest
from hypothesis import given, settings as hypothesis_settings
from hypothesis import strategies as st

from backend.rag.adapters.embeddings import EmbeddingClient
from backend.rag.config import Settings
from backend.rag.errors import EmbeddingError
from backend.rag.exec.executor import ProviderExecutor

DIMS = 4
_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _vector_for(text: str) -> list[float]:
    return [float(len(text)), float(sum(map(ord, text)) % 97), 1.0, 0.0]


class StubEmbeddingsAPI:
    """Mimics ``client.embeddings`` and returns data in shuffled order."""

    def __init__(self, failures: list[Exception] | None = None, seed: int = 7) -> None:
        self.failures = list(failures or [])
        self.requests: list[list[str]] = []
        self.rng = random.Random(seed)
        self.lock = threading.Lock()

    def create(self, model: str, input: list[str], dimensions: int):
        with self.lock:
            self.requests.append(list(input))
            if self.failures:
                raise self.failures.pop(0)
            data = [
                SimpleNamespace(index=i, embedding=_vector_for(text))
                for i, text in enumerate(input)
            ]
            self.rng.shuffle(data)
        return SimpleNamespace(data=data)


def _client(api: StubEmbeddingsAPI, executor: ProviderExecutor, batch_size: int = 3) -> EmbeddingClient:
    return EmbeddingClient(
        SimpleNamespace(embeddings=api),
        executor,
        dimensions=DIMS,
        batch_size=batch_size,
        max_concurrency=2,
    )


def _executor() -> ProviderExecutor:
    settings = Settings(
        retry_backoff_base_ms=0, retry_jitter_min_ms=0, retry_jitter_max_ms=0
    )
    return ProviderExecutor(settings, rng=random.Random(1), sleep=lambda _: None)


@given(texts=st.lists(st.text(min_size=1, max_size=20), min_size=0, max_size=25))
@hypothesis_settings(max_examples=50, deadline=None)
def test_output_matches_input_length_and_order(texts: list[str]) -> None:
    """Vectors line up with inputs across shuffled, multi-request batches."""
    executor = _executor()
    try:
        vectors = _client(StubEmbeddingsAPI(), executor).embed_batch(texts)
    finally:
        executor.shutdown(wait=False)

    assert len(vectors) == len(texts)
    assert vectors == [_vector_for(text) for text in texts]


def test_empty_input_makes_no_request(executor: ProviderExecutor) -> None:
    api = StubEmbeddingsAPI()
    assert _client(api, executor).embed_batch([]) == []
    assert api.requests == []


def test_splits_into_provider_batches(executor: ProviderExecutor) -> None:
    api = StubEmbeddingsAPI()
    _client(api, executor, batch_size=3).embed_batch([f"t{i}" for i in range(7)])
    assert sorted(len(batch) for batch in api.requests) == [1, 3, 3]


def test_transient_error_is_retried(executor: ProviderExecutor) -> None:
    api = StubEmbeddingsAPI(failures=[openai.APITimeoutError(request=_REQUEST)])
    vectors = _client(api, executor).embed_batch(["a", "b"])
    assert len(vectors) == 2
    assert len(api.requests) == 2


def test_rate_limit_is_retried(executor: ProviderExecutor) -> None:
    rate_limited = openai.RateLimitError(
        "slow down", response=httpx.Response(429, request=_REQUEST), body=None
    )
    api = StubEmbeddingsAPI(failures=[rate_limited])
    assert len(_client(api, executor).embed_batch(["a"])) == 1


def test_permanent_error_fails_whole_batch(executor: ProviderExecutor) -> None:
    bad_request = openai.BadRequestError(
        "bad input", response=httpx.Response(400, request=_REQUEST), body=None
    )
    api = StubEmbeddingsAPI(failures=[bad_request])
    with pytest.raises(EmbeddingError) as exc_info:
        _client(api, executor, batch_size=10).embed_batch(["a", "b"])
    assert exc_info.value.kind == "rejected"
    assert len(api.requests) == 1


def test_one_failed_request_fails_all(executor: ProviderExecutor) -> None:
    """A failing sub-request discards results of the ones that succeeded."""

    class PartlyDownAPI(StubEmbeddingsAPI):
        def create(self, model, input, dimensions):
            if "c" in input:
                raise openai.InternalServerError(
                    "down", response=httpx.Response(503, request=_REQUEST), body=None
                )
            return super().create(model, input, dimensions)

    api = PartlyDownAPI()
    with pytest.raises(EmbeddingError) as exc_info:
        _client(api, executor, batch_size=2).embed_batch(["a", "b", "c", "d"])
    assert exc_info.value.kind == "unavailable"
    assert exc_info.value.transient


def test_count_mismatch_is_malformed(executor: ProviderExecutor) -> None:
    class ShortAPI(StubEmbeddingsAPI):
        def create(self, model, input, dimensions):
            return SimpleNamespace(data=[SimpleNamespace(index=0, embedding=[0.0] * DIMS)])

    with pytest.raises(EmbeddingError) as exc_info:
        _client(ShortAPI(), executor).embed_batch(["a", "b"])
    assert exc_info.value.kind == "malformed"


def test_wrong_dimensions_are_malformed(executor: ProviderExecutor) -> None:
    class WideAPI(StubEmbeddingsAPI):
        def create(self, model, input, dimensions):
            return SimpleNamespace(
                data=[SimpleNamespace(index=i, embedding=[0.0] * 8) for i in range(len(input))]
            )

    with pytest.raises(EmbeddingError):
        _client(WideAPI(), executor).embed_batch(["a"])
