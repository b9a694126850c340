"""Process start-up: logging and construction of the RAG services."""

import logging
from dataclasses import dataclass

import httpx
from openai import OpenAI
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from backend.rag.adapters.embeddings import EmbeddingClient
from backend.rag.adapters.llm import OpenAIChatModel
from backend.rag.adapters.web_search import (
    DisabledWebSearch,
    SerpApiSearchAdapter,
    WebSearchAdapter,
)
from backend.rag.config import Settings, get_openai_api_key
from backend.rag.db.base import get_engine, get_session_factory
from backend.rag.exec.executor import ProviderExecutor
from backend.rag.graph.context_builder import ContextBuilder
from backend.rag.graph.decision import DecisionEngine
from backend.rag.graph.runner import RagPipeline
from backend.rag.graph.synthesizer import AnswerSynthesizer
from backend.rag.knowledge.internal_sync import InternalStateSynchronizer
from backend.rag.knowledge.prompt_store import RagPromptStore
from backend.rag.knowledge.retriever import Retriever
from backend.rag.knowledge.store import KnowledgeStore
from backend.rag.metrics.registry import MetricsClient
from backend.rag.models.chat import ChatHistoryReader
from backend.rag.startup_pgvector import enable_pgvector

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(settings: Settings) -> None:
    """Install the root handler at ``settings.log_level``."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


@dataclass
class RagServices:
    """Every long-lived RAG object, built once per process."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    metrics: MetricsClient
    executor: ProviderExecutor
    http: httpx.Client
    embeddings: EmbeddingClient
    store: KnowledgeStore
    synchronizer: InternalStateSynchronizer
    prompts: RagPromptStore
    retriever: Retriever
    web_search: WebSearchAdapter
    pipeline: RagPipeline

    def close(self) -> None:
        self.synchronizer.shutdown(wait=True)
        self.executor.shutdown(wait=True)
        self.http.close()
        self.engine.dispose()


def create_services(
    settings: Settings,
    history: ChatHistoryReader,
    openai_client: OpenAI | None = None,
) -> RagServices:
    """Wire the RAG core.

    Args:
        settings: RAG settings.
        history: Read-only chat transcript collaborator.
        openai_client: Prebuilt client; one is created from settings if None.

    Raises:
        MissingOpenAIKeyError: If no client is given and no key is set.
    """
    engine = get_engine(settings)
    session_factory = get_session_factory(engine)
    use_pgvector = enable_pgvector(engine)

    if openai_client is None:
        openai_client = OpenAI(api_key=get_openai_api_key(settings))

    metrics = MetricsClient()
    executor = ProviderExecutor(settings, metrics=metrics)
    http = httpx.Client(timeout=settings.provider_timeout_s)

    embeddings = EmbeddingClient.from_settings(openai_client, executor, settings)
    chat_model = OpenAIChatModel.from_settings(openai_client, executor, settings)

    if settings.serpapi_key:
        web_search: WebSearchAdapter = SerpApiSearchAdapter.from_settings(http, executor, settings)
    else:
        logger.warning("web_search_disabled")
        web_search = DisabledWebSearch()

    store = KnowledgeStore(
        session_factory,
        embeddings,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        metrics=metrics,
    )
    synchronizer = InternalStateSynchronizer(store, max_workers=settings.sync_max_workers)
    prompts = RagPromptStore(session_factory)
    retriever = Retriever(
        session_factory,
        embeddings,
        default_k=settings.retrieval_top_k,
        default_min_similarity=settings.retrieval_min_similarity,
        include_global=settings.include_global_knowledge,
        use_pgvector=use_pgvector,
        metrics=metrics,
    )
    pipeline = RagPipeline(
        history=history,
        retriever=retriever,
        decision_engine=DecisionEngine(chat_model, metrics=metrics),
        context_builder=ContextBuilder(retriever, store, web_search, settings),
        synthesizer=AnswerSynthesizer(chat_model, prompt_store=prompts, metrics=metrics),
        settings=settings,
    )

    logger.info(
        "rag_services_ready",
        extra={"pgvector": use_pgvector, "web_search": bool(settings.serpapi_key)},
    )
    return RagServices(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        metrics=metrics,
        executor=executor,
        http=http,
        embeddings=embeddings,
        store=store,
        synchronizer=synchronizer,
        prompts=prompts,
        retriever=retriever,
        web_search=web_search,
        pipeline=pipeline,
    )
