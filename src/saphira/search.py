"""Ad-hoc search and scrape service with a short-lived result cache.

搜索服务：按引擎缓存最近一次查询结果（TTL 默认 300 秒）。
"""

import logging

from .cache import ResultCache
from .collectors import DuckDuckGoCollector
from .collectors.base import BaseCollector
from .models import ContentItem, SearchResponse

logger = logging.getLogger(__name__)

SCRAPED_SLOT = "scraped"


class SearchService:
    """Search/scrape front for web-search collectors.

    Args:
        collectors: engine name -> collector; defaults to DuckDuckGo only.
        cache: Result cache; built from cache_ttl when omitted.
        cache_ttl: Cache TTL in seconds.
        default_max_results: Results per search when the caller sets none.
    """

    def __init__(
        self,
        collectors: dict[str, BaseCollector] | None = None,
        cache: ResultCache | None = None,
        cache_ttl: float = 300.0,
        default_max_results: int = 10,
    ) -> None:
        self.default_max_results = default_max_results
        self.collectors: dict[str, BaseCollector] = collectors or {
            "duckduckgo": DuckDuckGoCollector(max_results=default_max_results),
        }
        self.cache = cache or ResultCache(ttl=cache_ttl)

    def _collector(self, engine: str) -> BaseCollector:
        collector = self.collectors.get(engine)
        if collector is None:
            raise ValueError(f'Search engine "{engine}" not supported')
        return collector

    def set_allowed_sources(self, engine: str, domains: list[str]) -> None:
        collector = self._collector(engine)
        if not hasattr(collector, "allowed_sources"):
            logger.warning("Collector %s does not support allowed sources", engine)
            return
        collector.allowed_sources = list(domains)
        logger.info("Set allowed sources for %s: %s", engine, ", ".join(domains) or "(all)")

    def set_max_results(self, engine: str, max_results: int) -> None:
        self._collector(engine).max_results = max_results
        logger.info("Set max results for %s to %d", engine, max_results)

    def search(
        self,
        engine: str,
        query: str,
        use_cache: bool = True,
        max_results: int | None = None,
    ) -> SearchResponse:
        """Search one engine, serving the cached slot when it matches.

        Raises:
            ValueError: unknown engine.
        """
        collector = self._collector(engine)
        if use_cache:
            cached = self.cache.get(engine, query)
            if cached is not None:
                logger.info("Using cached search results for query: %s", query)
                return SearchResponse(engine=engine, query=query, results=cached, from_cache=True)

        collector.max_results = max_results or self.default_max_results
        terms = [t for t in query.split() if t.strip()]
        results = collector.collect(terms)
        self.cache.set(engine, query, results)
        return SearchResponse(engine=engine, query=query, results=results)

    def scrape(
        self,
        query: str,
        use_cache: bool = True,
        max_results: int = 10,
        engine: str = "duckduckgo",
    ) -> SearchResponse:
        """Search and fetch full page text of the top results.

        Raises:
            ValueError: unknown engine or one without scraping support.
            AdapterError: the search itself failed.
        """
        collector = self._collector(engine)
        if not hasattr(collector, "scrape_top_results"):
            raise ValueError(f'Search engine "{engine}" does not support scraping')

        if use_cache:
            cached = self.cache.get(SCRAPED_SLOT, query)
            if cached is not None:
                logger.info("Using cached scraped results for query: %s", query)
                return SearchResponse(engine=engine, query=query, results=cached, from_cache=True)

        logger.info("Scraping top %d results for query: %s", max_results, query)
        results = collector.scrape_top_results(query, max_results)
        self.cache.set(SCRAPED_SLOT, query, results)
        return SearchResponse(engine=engine, query=query, results=results)

    def get_result_detail(self, engine: str, index: int) -> ContentItem:
        """One result from the engine's cached slot.

        Raises:
            IndexError: nothing cached at that position.
        """
        slot = self.cache.peek(engine)
        if slot is None or not 0 <= index < len(slot.results):
            raise IndexError(f"Result not found at index {index}")
        return slot.results[index]

    def clear_cache(self, engine: str | None = None) -> None:
        self.cache.clear(engine)
        logger.info("Cache cleared for %s", engine or "all engines")
