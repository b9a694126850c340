"""Pytest configuration and fixtures for testing."""

import random

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from backend.rag.config import Settings
from backend.rag.db import models  # noqa: F401  (registers tables on Base)
from backend.rag.db.base import Base, get_session_factory
from backend.rag.exec.executor import ProviderExecutor
from backend.rag.metrics.registry import MetricsClient


@pytest.fixture(scope="function")
def test_db_engine():
    """Create a test database engine with in-memory SQLite."""
    # StaticPool keeps one shared connection so background sync threads see
    # the same in-memory database. pgvector SQL ranking is not available
    # here; the retriever ranks in Python.
    engine = create_engine(
        "sqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return get_session_factory(test_db_engine)


@pytest.fixture
def settings() -> Settings:
    """Settings tuned for fast, deterministic tests."""
    return Settings(
        postgres_url="sqlite://",
        openai_api_key="dummy-openai-api-key-for-tests",
        provider_max_attempts=3,
        provider_timeout_s=2.0,
        retry_backoff_base_ms=0,
        retry_jitter_min_ms=0,
        retry_jitter_max_ms=0,
        breaker_failure_threshold=3,
        breaker_timeout_s=60,
        breaker_cooldown_s=30,
        chunk_size=200,
        chunk_overlap=30,
    )


@pytest.fixture
def metrics() -> MetricsClient:
    """Create a fresh metrics client."""
    return MetricsClient()


@pytest.fixture
def executor(settings: Settings, metrics: MetricsClient):
    """Provider executor that never sleeps between retries."""
    executor = ProviderExecutor(
        settings, metrics=metrics, rng=random.Random(42), sleep=lambda _: None
    )
    yield executor
    executor.shutdown(wait=False)
