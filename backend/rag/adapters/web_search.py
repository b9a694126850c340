"""Web search adapters."""

import logging
from typing import Any, Protocol
from urllib.parse import urlsplit

import httpx

from backend.rag.config import Settings
from backend.rag.errors import RagValidationError, WebSearchError
from backend.rag.exec.executor import ProviderExecutor
from backend.rag.models.answer import WebResult

logger = logging.getLogger(__name__)

PROVIDER = "web_search"


def domain_of(url: str) -> str | None:
    """Host of ``url`` without a leading ``www.``."""
    host = urlsplit(url).hostname
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def _to_result(item: dict[str, Any], rank: int) -> WebResult:
    """Shape one organic result; raises ``ValueError`` on an unusable link."""
    link = str(item["link"])
    return WebResult(
        title=item.get("title") or link,
        url=link,
        snippet=item.get("snippet") or "",
        source=item.get("source") or domain_of(link),
        relevance_score=max(0.0, 1.0 - rank * 0.1),
    )


class WebSearchAdapter(Protocol):
    """Secondary knowledge source consulted only on request."""

    def search(self, query: str, num_results: int) -> list[WebResult]:
        ...


class SerpApiSearchAdapter:
    """Google organic results through SerpAPI."""

    def __init__(
        self,
        http: httpx.Client,
        executor: ProviderExecutor,
        api_key: str,
        endpoint: str = "https://serpapi.com/search.json",
    ) -> None:
        self.http = http
        self.executor = executor
        self.api_key = api_key
        self.endpoint = endpoint

    @classmethod
    def from_settings(
        cls, http: httpx.Client, executor: ProviderExecutor, settings: Settings
    ) -> "SerpApiSearchAdapter":
        return cls(http, executor, settings.serpapi_key, settings.serpapi_endpoint)

    def _request(self, query: str, num_results: int) -> dict[str, Any]:
        response = self.http.get(
            self.endpoint,
            params={
                "engine": "google",
                "q": query,
                "num": num_results,
                "api_key": self.api_key,
            },
        )
        response.raise_for_status()
        return response.json()

    def search(self, query: str, num_results: int) -> list[WebResult]:
        """Search the web.

        Args:
            query: Search query.
            num_results: Max results returned.

        Returns:
            Results ranked by the provider; ``relevance_score`` decreases
            by 0.1 per rank.

        Raises:
            RagValidationError: If the query is empty.
            WebSearchError: If the provider fails after retries.
        """
        if not query or not query.strip():
            raise RagValidationError("search query must not be empty")

        payload = self.executor.call(
            PROVIDER,
            lambda: self._request(query, num_results),
            error_cls=WebSearchError,
        )
        organic = payload.get("organic_results") if isinstance(payload, dict) else None
        if organic is None:
            organic = []
        if not isinstance(organic, list):
            raise WebSearchError(PROVIDER, "malformed", "organic_results is not a list")

        results: list[WebResult] = []
        for rank, item in enumerate(organic[:num_results]):
            if not isinstance(item, dict) or not item.get("link"):
                continue
            try:
                results.append(_to_result(item, rank))
            except ValueError as exc:
                logger.warning(
                    "web_result_skipped", extra={"link": str(item.get("link")), "error": str(exc)}
                )
        logger.info("web_search_done", extra={"query": query, "results": len(results)})
        return results


class DisabledWebSearch:
    """Stand-in used when no search provider key is configured."""

    def search(self, query: str, num_results: int) -> list[WebResult]:
        raise WebSearchError(PROVIDER, "rejected", "web search is not configured")
