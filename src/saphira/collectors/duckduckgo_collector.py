"""DuckDuckGo web search collector.

通过 DuckDuckGo HTML 端点搜索，再抓取每个结果页面的正文。
No API key needed. The HTML endpoint may throttle automated clients,
in which case collect() returns an empty list and the orchestrator falls
back to search-only results.
"""

import logging
from urllib.parse import urlparse

import httpx

from ..errors import AdapterError
from ..extractor import DEFAULT_HEADERS, fetch_many, fetch_page
from ..models import ContentItem, ExtractedPage, SearchResult
from .base import BaseCollector
from .search_parser import parse_search_results

logger = logging.getLogger(__name__)

DDG_HTML_URL = "https://html.duckduckgo.com/html/"


def _domain(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _domain_allowed(url: str, allowed_sources: list[str]) -> bool:
    if not allowed_sources:
        return True
    host = _domain(url)
    for allowed in allowed_sources:
        allowed = allowed.lower().removeprefix("www.")
        if host == allowed or host.endswith(f".{allowed}"):
            return True
    return False


class DuckDuckGoCollector(BaseCollector):
    """Web search collector (search + page extraction).

    网页搜索：先搜索，再并发抓取结果页正文。
    """

    name = "duckduckgo"
    display_name = "DuckDuckGo"

    def __init__(
        self,
        max_results: int = 5,
        timeout: float = 15.0,
        allowed_sources: list[str] | None = None,
        extract_workers: int = 4,
    ) -> None:
        self.max_results = max_results
        self.timeout = timeout
        self.allowed_sources = list(allowed_sources or [])
        self.extract_workers = extract_workers

    # ── Search only / 仅搜索 ──

    def search(self, query: str, max_results: int | None = None) -> list[SearchResult]:
        """Return (title, url, snippet) triples without fetching pages.

        Raises:
            AdapterError: when the search endpoint fails.
        """
        logger.info("DuckDuckGo search: %s", query)
        try:
            with httpx.Client(
                timeout=self.timeout, headers=DEFAULT_HEADERS, follow_redirects=True
            ) as client:
                resp = client.get(DDG_HTML_URL, params={"q": query})
        except httpx.HTTPError as e:
            raise AdapterError(f"DuckDuckGo search request failed: {e}", cause=e) from e

        if resp.status_code != 200:
            raise AdapterError(
                f"DuckDuckGo search returned status code {resp.status_code}"
            )

        results = [
            r for r in parse_search_results(resp.text)
            if _domain_allowed(r.url, self.allowed_sources)
        ]
        logger.info("DuckDuckGo: %d results for %r", len(results), query)
        return results[: max_results or self.max_results]

    # ── Search + extraction / 搜索并抓取 ──

    def _fetch(self, url: str) -> ExtractedPage:
        return fetch_page(url, timeout=min(self.timeout, 10.0))

    def _to_item(
        self,
        result: SearchResult,
        page: ExtractedPage | Exception,
        terms: list[str],
    ) -> ContentItem:
        domain = _domain(result.url)
        if isinstance(page, Exception):
            # 抓取失败也保留结果，附带 fetch_error 标签
            return ContentItem(
                title=result.title,
                source_url=result.url,
                source_name=domain,
                summary=result.snippet,
                body=f"Unable to retrieve content: {page}",
                tags=[*terms, "duckduckgo", "fetch_error"],
                category="web",
                metadata={"search_snippet": result.snippet},
            )
        return ContentItem(
            title=result.title,
            source_url=result.url,
            source_name=domain,
            summary=result.snippet or page.summary,
            body=page.body,
            tags=[*terms, "duckduckgo"],
            category="web",
            metadata={"search_snippet": result.snippet, "page_title": page.title},
        )

    def scrape_top_results(self, query: str, limit: int | None = None) -> list[ContentItem]:
        """Search and fetch the top results' page text.

        Raises:
            AdapterError: when the search itself fails.
        """
        results = self.search(query, limit)
        terms = query.split()
        pages = fetch_many(
            (r.url for r in results), self._fetch, max_workers=self.extract_workers
        )
        return [self._to_item(r, page, terms) for r, page in zip(results, pages)]

    def collect(self, keywords: list[str]) -> list[ContentItem]:
        query = " ".join(k.strip() for k in keywords if k.strip())
        if not query:
            return []
        try:
            return self.scrape_top_results(query)
        except Exception:
            # 搜索失败返回空列表，由上层降级处理
            logger.exception("DuckDuckGo collection failed for %r", query)
            return []
