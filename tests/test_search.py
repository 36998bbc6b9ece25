"""Tests for the result cache and search service.

测试结果缓存（命中 / 过期 / 覆盖 / 清空）与搜索服务。
"""

import pytest

from saphira.cache import ResultCache
from saphira.collectors.base import BaseCollector
from saphira.models import ContentItem, SearchResult
from saphira.search import SearchService


# ── Helpers ──────────────────────────────────────────────────────────────


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _FakeWebCollector(BaseCollector):
    """Counts calls instead of touching the network."""

    name = "duckduckgo"
    display_name = "DuckDuckGo"

    def __init__(self) -> None:
        self.max_results = 5
        self.allowed_sources: list[str] = []
        self.collect_calls: list[list[str]] = []
        self.scrape_calls: list[tuple[str, int | None]] = []

    def collect(self, keywords: list[str]) -> list[ContentItem]:
        self.collect_calls.append(keywords)
        return [
            ContentItem(title=f"{' '.join(keywords)} #{i}", source_url=f"https://r.org/{i}")
            for i in range(self.max_results)
        ]

    def search(self, query: str, max_results: int | None = None) -> list[SearchResult]:
        return [SearchResult(title=query, url="https://r.org/")]

    def scrape_top_results(self, query: str, limit: int | None = None) -> list[ContentItem]:
        self.scrape_calls.append((query, limit))
        return [ContentItem(title=f"scraped {query}", body="page text")]


def _service(clock: _FakeClock, ttl: float = 300.0) -> tuple[SearchService, _FakeWebCollector]:
    collector = _FakeWebCollector()
    service = SearchService(
        collectors={"duckduckgo": collector},
        cache=ResultCache(ttl=ttl, clock=clock),
        default_max_results=3,
    )
    return service, collector


# ── ResultCache ──────────────────────────────────────────────────────────


class TestResultCache:
    """单槽缓存"""

    def test_hit_within_ttl(self):
        clock = _FakeClock()
        cache = ResultCache(ttl=60, clock=clock)
        cache.set("ddg", "x", [1, 2])
        clock.now += 59
        assert cache.get("ddg", "x") == [1, 2]

    def test_miss_after_ttl(self):
        clock = _FakeClock()
        cache = ResultCache(ttl=60, clock=clock)
        cache.set("ddg", "x", [1])
        clock.now += 60
        assert cache.get("ddg", "x") is None

    def test_query_must_match_exactly(self):
        cache = ResultCache(ttl=60, clock=_FakeClock())
        cache.set("ddg", "Rust", [1])
        assert cache.get("ddg", "rust") is None
        assert cache.get("ddg", "Rust ") is None

    def test_single_slot_per_engine(self):
        cache = ResultCache(ttl=60, clock=_FakeClock())
        cache.set("ddg", "a", [1])
        cache.set("ddg", "b", [2])
        assert cache.get("ddg", "a") is None
        assert cache.get("ddg", "b") == [2]

    def test_engines_independent(self):
        cache = ResultCache(ttl=60, clock=_FakeClock())
        cache.set("ddg", "a", [1])
        cache.set("scraped", "a", [2])
        assert cache.get("ddg", "a") == [1]
        assert cache.get("scraped", "a") == [2]

    def test_clear_one_and_all(self):
        cache = ResultCache(ttl=60, clock=_FakeClock())
        cache.set("ddg", "a", [1])
        cache.set("scraped", "a", [2])
        cache.clear("ddg")
        assert cache.get("ddg", "a") is None
        assert cache.get("scraped", "a") == [2]
        cache.clear()
        assert cache.get("scraped", "a") is None


# ── SearchService ────────────────────────────────────────────────────────


class TestSearchService:
    """搜索服务缓存行为"""

    def test_second_search_served_from_cache(self):
        clock = _FakeClock()
        service, collector = _service(clock)

        first = service.search("duckduckgo", "rust async")
        second = service.search("duckduckgo", "rust async")

        assert first.from_cache is False
        assert second.from_cache is True
        assert collector.collect_calls == [["rust", "async"]]
        assert [r.title for r in second.results] == [r.title for r in first.results]

    def test_refetch_after_ttl(self):
        clock = _FakeClock()
        service, collector = _service(clock, ttl=300)
        service.search("duckduckgo", "rust")
        clock.now += 301
        response = service.search("duckduckgo", "rust")
        assert response.from_cache is False
        assert len(collector.collect_calls) == 2

    def test_use_cache_false_bypasses(self):
        service, collector = _service(_FakeClock())
        service.search("duckduckgo", "rust")
        assert service.search("duckduckgo", "rust", use_cache=False).from_cache is False
        assert len(collector.collect_calls) == 2

    def test_max_results(self):
        service, _ = _service(_FakeClock())
        assert len(service.search("duckduckgo", "rust").results) == 3
        assert len(service.search("duckduckgo", "go", max_results=7).results) == 7

    def test_unknown_engine(self):
        service, _ = _service(_FakeClock())
        with pytest.raises(ValueError, match="not supported"):
            service.search("bing", "rust")

    def test_scrape_uses_own_slot(self):
        service, collector = _service(_FakeClock())
        service.search("duckduckgo", "rust")
        first = service.scrape("rust", max_results=4)
        second = service.scrape("rust")
        assert first.from_cache is False
        assert second.from_cache is True
        assert collector.scrape_calls == [("rust", 4)]
        # search slot untouched by scraping
        assert service.search("duckduckgo", "rust").from_cache is True

    def test_result_detail(self):
        service, _ = _service(_FakeClock())
        response = service.search("duckduckgo", "rust")
        assert service.get_result_detail("duckduckgo", 1).title == response.results[1].title
        with pytest.raises(IndexError):
            service.get_result_detail("duckduckgo", 99)

    def test_clear_cache(self):
        service, collector = _service(_FakeClock())
        service.search("duckduckgo", "rust")
        service.clear_cache("duckduckgo")
        assert service.search("duckduckgo", "rust").from_cache is False
        assert len(collector.collect_calls) == 2

    def test_settings_passthrough(self):
        service, collector = _service(_FakeClock())
        service.set_allowed_sources("duckduckgo", ["example.org"])
        service.set_max_results("duckduckgo", 9)
        assert collector.allowed_sources == ["example.org"]
        assert collector.max_results == 9
