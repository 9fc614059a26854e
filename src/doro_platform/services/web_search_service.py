"""Web search service wrapping the Google Custom Search JSON API.

Used by the intelligence stage for property fact verification and market
intelligence. Results are scored for relevance against the query and held
in a small in-memory LRU cache, since the same project is often verified
several times within a conversation.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

GOOGLE_CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

# Domains whose property data is treated as more reliable
TRUSTED_DOMAINS = (
    "propertyguru.com.sg",
    "99.co",
    "edgeprop.sg",
    "straitstimes.com",
    "businesstimes.com.sg",
    "channelnewsasia.com",
    "todayonline.com",
)

# Queries containing any of these are restricted to Singapore results
PROPERTY_KEYWORDS = (
    "property", "condo", "condominium", "apartment", "house", "landed",
    "developer", "launch", "price psf", "district", "new launch", "resale",
    "rental", "investment", "hdb", "ura",
)

_MAX_RESULTS = 10
_MAX_CACHE_SIZE = 500


@dataclass(frozen=True)
class SearchResult:
    title: str
    snippet: str
    url: str
    display_link: str = ""
    relevance_score: float = 0.5


def score_relevance(result: SearchResult, query: str) -> float:
    """Score a result against the query terms.

    Base 0.5, +0.1 per query term in the title, +0.05 per term in the
    snippet, +0.2 for a trusted domain. Capped at 1.0.
    """
    terms = [t for t in re.findall(r"[a-z0-9]+", query.lower()) if len(t) > 2]
    title = result.title.lower()
    snippet = result.snippet.lower()

    score = 0.5
    for term in terms:
        if term in title:
            score += 0.1
        if term in snippet:
            score += 0.05

    if any(domain in result.url.lower() for domain in TRUSTED_DOMAINS):
        score += 0.2

    return min(score, 1.0)


class WebSearchService:
    """Async keyword search backed by Google Custom Search."""

    def __init__(self, api_key: str, engine_id: str, timeout: float = 10.0) -> None:
        self._api_key = api_key
        self._engine_id = engine_id
        self._timeout = timeout
        self._cache: OrderedDict[tuple[str, int], list[SearchResult]] = OrderedDict()

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._engine_id)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(self, query: str, num_results: int = 3) -> list[SearchResult]:
        """Return up to *num_results* results, most relevant first.

        Returns an empty list when the service is not configured or the
        request fails.
        """
        if not self.configured:
            logger.warning("Google Custom Search not configured; skipping query %r", query)
            return []

        num = max(1, min(num_results, _MAX_RESULTS))
        cache_key = (query.strip().lower(), num)
        if cache_key in self._cache:
            self._cache.move_to_end(cache_key)
            return list(self._cache[cache_key])

        data = await self._fetch(self._build_params(query, num))
        if data is None:
            return []

        results = self._parse_items(data, query)
        if results:
            self._cache[cache_key] = results
            if len(self._cache) > _MAX_CACHE_SIZE:
                self._cache.popitem(last=False)
        else:
            logger.info("No search results for %r", query)
        return list(results)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_params(self, query: str, num: int) -> dict:
        params = {
            "key": self._api_key,
            "cx": self._engine_id,
            "q": query,
            "num": num,
            "safe": "active",
            "lr": "lang_en",
            "gl": "sg",
            "dateRestrict": "y3",
        }
        if any(keyword in query.lower() for keyword in PROPERTY_KEYWORDS):
            params["cr"] = "countrySG"
        return params

    async def _fetch(self, params: dict) -> dict | None:
        """Execute the HTTP request to Google and return the JSON body."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(GOOGLE_CUSTOM_SEARCH_URL, params=params)
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("Google Custom Search HTTP error: %s", exc)
        except httpx.RequestError as exc:
            logger.warning("Google Custom Search request failed: %s", exc)
        except ValueError as exc:
            logger.warning("Google Custom Search returned invalid JSON: %s", exc)
        return None

    def _parse_items(self, data: dict, query: str) -> list[SearchResult]:
        results = []
        for item in data.get("items") or []:
            raw = SearchResult(
                title=item.get("title", ""),
                snippet=item.get("snippet", ""),
                url=item.get("link", ""),
                display_link=item.get("displayLink", ""),
            )
            results.append(
                SearchResult(
                    title=raw.title,
                    snippet=raw.snippet,
                    url=raw.url,
                    display_link=raw.display_link,
                    relevance_score=score_relevance(raw, query),
                )
            )
        # sorted() is stable, so equal scores keep Google's ranking
        return sorted(results, key=lambda r: r.relevance_score, reverse=True)


# ----------------------------------------------------------------------
# Module-level convenience
# ----------------------------------------------------------------------


def build_web_search_service() -> WebSearchService:
    """Construct the service from configured credentials."""
    from doro_platform.app.config import get_settings

    settings = get_settings()
    return WebSearchService(
        api_key=settings.google_search_api_key,
        engine_id=settings.google_search_engine_id,
        timeout=settings.search_timeout_seconds,
    )
