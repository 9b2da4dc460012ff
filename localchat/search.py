"""Web search augmentation through DuckDuckGo (ddgs)."""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class SearchError(Exception):
    pass


@dataclass
class SearchResult:
    title: str
    snippet: str
    url: str = ""


@dataclass
class SearchResponse:
    query: str
    results: list[SearchResult] = field(default_factory=list)
    formatted_results: str = ""

    @property
    def source_domains(self) -> list[tuple[str, str]]:
        """Unique (domain, url) pairs in result order, without a leading www."""
        seen: set[str] = set()
        domains: list[tuple[str, str]] = []
        for r in self.results:
            host = urlparse(r.url).hostname
            if not host:
                continue
            domain = re.sub(r"^www\.", "", host)
            if domain not in seen:
                seen.add(domain)
                domains.append((domain, r.url))
        return domains


def format_results(results: list[SearchResult], query: str) -> str:
    if not results:
        return f'No search results found for "{query}".'
    lines = [f'Search results for "{query}":', ""]
    for i, r in enumerate(results, 1):
        lines.append(f"{i}. {r.title}")
        lines.append(f"   {r.snippet}")
        if r.url:
            lines.append(f"   {r.url}")
        lines.append("")
    return "\n".join(lines)


class SearchService:
    def __init__(self, max_results: int = 7, region: str = "wt-wt"):
        self.max_results = max_results
        self.region = region

    async def search(self, query: str) -> SearchResponse:
        query = query.strip()
        if not query:
            raise SearchError("Invalid search query")
        try:
            raw = await asyncio.to_thread(self._text_search, query)
        except Exception as e:
            raise SearchError(f"Search failed: {e}") from e

        results: list[SearchResult] = []
        seen_titles: set[str] = set()
        for r in raw:
            title = (r.get("title") or "").strip()
            snippet = (r.get("body") or "").strip()
            if not title or not snippet:
                continue
            key = title.lower()[:60]
            if key in seen_titles:
                continue
            seen_titles.add(key)
            results.append(SearchResult(title=title, snippet=snippet, url=(r.get("href") or "").strip()))

        results = results[: self.max_results]
        logger.info("DuckDuckGo search '%s': %d results", query, len(results))
        return SearchResponse(query=query, results=results, formatted_results=format_results(results, query))

    def _text_search(self, query: str) -> list[dict]:
        from ddgs import DDGS

        with DDGS() as ddgs:
            return list(ddgs.text(query, region=self.region, max_results=self.max_results))


async def search_text(service: Optional[SearchService], query: str) -> Optional[str]:
    """Formatted results for the prompt, or None when search is off or fails."""
    if service is None:
        return None
    try:
        response = await service.search(query)
    except SearchError as e:
        logger.warning("Web search skipped: %s", e)
        return None
    return response.formatted_results
