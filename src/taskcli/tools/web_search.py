"""Web search over the DuckDuckGo instant-answer API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.duckduckgo.com/"
DEFAULT_NUM_RESULTS = 5


class SearchError(Exception):
    """The search backend could not be reached or answered badly."""


@dataclass(frozen=True, slots=True)
class SearchResult:
    title: str
    url: str
    description: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "url": self.url, "description": self.description}


def _topic_result(topic: dict[str, Any]) -> SearchResult | None:
    url = topic.get("FirstURL")
    text = topic.get("Text", "")
    if not url or not text:
        return None
    title, _, rest = text.partition(" - ")
    return SearchResult(title=title, url=url, description=rest or text)


def parse_results(data: dict[str, Any]) -> list[SearchResult]:
    """Flatten an instant-answer payload into ordered results."""
    results: list[SearchResult] = []
    if data.get("AbstractURL") and data.get("AbstractText"):
        results.append(SearchResult(
            title=data.get("Heading") or data["AbstractURL"],
            url=data["AbstractURL"],
            description=data["AbstractText"],
        ))
    topics: list[dict[str, Any]] = list(data.get("Results") or [])
    for topic in data.get("RelatedTopics") or []:
        # Category groups nest their entries under "Topics"
        topics.extend(topic.get("Topics") or [topic])
    for topic in topics:
        result = _topic_result(topic)
        if result is not None and all(r.url != result.url for r in results):
            results.append(result)
    return results


class WebSearcher:
    """Thin async client; one instance per session."""

    def __init__(
        self,
        *,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={"user-agent": "taskcli"},
        )

    async def search(self, query: str, num_results: int = DEFAULT_NUM_RESULTS) -> list[SearchResult]:
        params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}
        try:
            response = await self._client.get(self._api_url, params=params)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise SearchError(f"Search failed with HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise SearchError(f"Search request error: {e}") from e
        except ValueError as e:
            raise SearchError("Search returned invalid JSON") from e
        results = parse_results(data)
        logger.debug("search %r: %d results", query, len(results))
        return results[:num_results]

    async def close(self) -> None:
        await self._client.aclose()
