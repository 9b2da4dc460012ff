"""
Tests for DuckDuckGo search formatting and failure handling.
Run with: pytest tests/test_search.py
"""

import pytest

from localchat.search import SearchError, SearchResponse, SearchResult, SearchService, format_results, search_text

RAW = [
    {"title": "Rust Programming Language", "body": "A language empowering everyone.", "href": "https://www.rust-lang.org/"},
    {"title": "Rust Programming Language", "body": "Duplicate title.", "href": "https://rust-lang.org/learn"},
    {"title": "", "body": "No title", "href": "https://example.com"},
    {"title": "Rust (video game)", "body": "Survival game.", "href": "https://en.wikipedia.org/wiki/Rust_(video_game)"},
]


@pytest.mark.asyncio
async def test_search_dedupes_and_formats(monkeypatch):
    service = SearchService(max_results=5)
    monkeypatch.setattr(service, "_text_search", lambda query: RAW)

    response = await service.search("  rust  ")
    assert response.query == "rust"
    assert [r.title for r in response.results] == ["Rust Programming Language", "Rust (video game)"]
    assert response.formatted_results.startswith('Search results for "rust":\n\n1. Rust Programming Language')
    assert response.source_domains == [
        ("rust-lang.org", "https://www.rust-lang.org/"),
        ("en.wikipedia.org", "https://en.wikipedia.org/wiki/Rust_(video_game)"),
    ]


@pytest.mark.asyncio
async def test_empty_query_is_rejected():
    with pytest.raises(SearchError):
        await SearchService().search("   ")


@pytest.mark.asyncio
async def test_provider_failure_becomes_search_error(monkeypatch):
    service = SearchService()

    def boom(query):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(service, "_text_search", boom)
    with pytest.raises(SearchError, match="rate limited"):
        await service.search("rust")
    assert await search_text(service, "rust") is None


@pytest.mark.asyncio
async def test_search_text_without_service():
    assert await search_text(None, "rust") is None


def test_format_no_results():
    assert format_results([], "zzz") == 'No search results found for "zzz".'


def test_source_domains_skip_missing_urls():
    response = SearchResponse(query="q", results=[SearchResult(title="t", snippet="s")])
    assert response.source_domains == []
