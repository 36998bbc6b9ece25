"""Wikipedia collector.

MediaWiki API：先全文搜索，再逐条获取导语摘要（纯文本）。
Free, no key required.
"""

import hashlib
import logging
from urllib.parse import quote

import httpx

from ..models import ContentItem
from .base import BaseCollector

logger = logging.getLogger(__name__)


class WikipediaCollector(BaseCollector):
    """Wikipedia collector (encyclopedia reference source)."""

    name = "wikipedia"
    display_name = "Wikipedia"

    def __init__(
        self,
        language: str = "en",
        max_results: int = 3,
        timeout: float = 30.0,
    ) -> None:
        self.language = language
        self.max_results = max_results
        self.timeout = timeout

    @property
    def api_url(self) -> str:
        return f"https://{self.language}.wikipedia.org/w/api.php"

    def _page_url(self, title: str) -> str:
        return f"https://{self.language}.wikipedia.org/wiki/{quote(title.replace(' ', '_'))}"

    def _search(self, client: httpx.Client, keyword: str) -> list[dict]:
        resp = client.get(
            self.api_url,
            params={
                "action": "query",
                "list": "search",
                "srsearch": keyword,
                "format": "json",
                "srlimit": self.max_results,
            },
        )
        resp.raise_for_status()
        return resp.json().get("query", {}).get("search", [])

    def _extract(self, client: httpx.Client, title: str) -> str | None:
        """Plain-text intro of a page, or None when the page is missing."""
        resp = client.get(
            self.api_url,
            params={
                "action": "query",
                "prop": "extracts",
                "exintro": 1,
                "explaintext": 1,
                "titles": title,
                "format": "json",
            },
        )
        resp.raise_for_status()
        pages = resp.json().get("query", {}).get("pages", {})
        for page_id, page in pages.items():
            if page_id == "-1":
                return None
            return page.get("extract", "") or ""
        return None

    def collect(self, keywords: list[str]) -> list[ContentItem]:
        items: list[ContentItem] = []
        failures: list[Exception] = []

        with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
            for keyword in keywords:
                logger.info("Wikipedia search: %s", keyword)
                try:
                    hits = self._search(client, keyword)
                except Exception as e:
                    logger.exception("Wikipedia search failed for %r", keyword)
                    failures.append(e)
                    continue

                for hit in hits:
                    title = hit.get("title", "")
                    if not title:
                        continue
                    try:
                        extract = self._extract(client, title)
                    except Exception:
                        logger.exception("Failed to fetch Wikipedia extract: %s", title)
                        continue
                    if extract is None:
                        logger.debug("Wikipedia page not found: %s", title)
                        continue

                    items.append(ContentItem(
                        id=hashlib.md5(title.encode("utf-8")).hexdigest(),
                        title=title,
                        author="Wikipedia Contributors",
                        source_url=self._page_url(title),
                        source_name=self.display_name,
                        summary=extract[:200] + ("..." if len(extract) > 200 else ""),
                        body=extract,
                        tags=[keyword, "encyclopedia", "reference"],
                        category="reference",
                        metadata={
                            "page_id": hit.get("pageid"),
                            "word_count": hit.get("wordcount"),
                            "language": self.language,
                        },
                    ))

        self._raise_if_all_failed(items, failures, len(keywords))
        logger.info("Wikipedia: collected %d articles", len(items))
        return items
