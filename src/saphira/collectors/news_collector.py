"""NewsAPI collector.

Searches https://newsapi.org/v2/everything per keyword.
需要 API Key（免费版 100 req/day），缺失时直接抛出 MissingCredentialError。
Free-tier article content is truncated ("[+1234 chars]"); such articles are
enriched by fetching the article page.
"""

import logging
from datetime import datetime

import httpx

from ..errors import AdapterError, MissingCredentialError
from ..extractor import fetch_page
from ..models import ContentItem
from .base import BaseCollector

logger = logging.getLogger(__name__)

NEWSAPI_URL = "https://newsapi.org/v2/everything"


def _is_truncated(content: str) -> bool:
    return "[+" in content or len(content) < 200


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class NewsApiCollector(BaseCollector):
    """NewsAPI collector (news articles)."""

    name = "newsapi"
    display_name = "NewsAPI"

    def __init__(
        self,
        api_key: str = "",
        max_results: int = 5,
        language: str = "en",
        timeout: float = 30.0,
        enrich_content: bool = True,
    ) -> None:
        if not api_key:
            raise MissingCredentialError(
                "NewsAPI requires an API key. Set NEWS_API_KEY or add newsApiKey "
                "to the API key file."
            )
        self.api_key = api_key
        self.max_results = max_results
        self.language = language
        self.timeout = timeout
        self.enrich_content = enrich_content

    def _search(self, client: httpx.Client, keyword: str) -> list[dict]:
        resp = client.get(
            NEWSAPI_URL,
            params={
                "q": keyword,
                "language": self.language,
                "sortBy": "relevancy",
                "pageSize": self.max_results,
            },
        )
        if resp.status_code == 401:
            raise AdapterError("NewsAPI rejected the API key (401 Unauthorized)")
        if resp.status_code == 429:
            raise AdapterError("NewsAPI rate limit exceeded (429)")
        resp.raise_for_status()

        data = resp.json()
        if data.get("status") != "ok":
            raise AdapterError(f"NewsAPI error: {data.get('message', 'unknown error')}")
        return data.get("articles", []) or []

    def _enrich(self, url: str, content: str) -> str:
        try:
            page = fetch_page(url, timeout=10.0)
        except Exception as e:
            logger.debug("Could not fetch full article %s: %s", url, e)
            return content
        return page.body if len(page.body) > len(content) else content

    def collect(self, keywords: list[str]) -> list[ContentItem]:
        items: list[ContentItem] = []
        failures: list[Exception] = []
        headers = {"X-Api-Key": self.api_key}

        with httpx.Client(timeout=self.timeout, headers=headers, follow_redirects=True) as client:
            for keyword in keywords:
                logger.info("NewsAPI search: %s", keyword)
                try:
                    articles = self._search(client, keyword)
                except Exception as e:
                    logger.exception("NewsAPI request failed for %r", keyword)
                    failures.append(e)
                    continue

                for article in articles:
                    url = (article.get("url") or "").strip()
                    if not url:
                        continue
                    if not url.startswith("http"):
                        url = f"https://{url}"

                    content = article.get("content") or article.get("description") or ""
                    if self.enrich_content and _is_truncated(content):
                        content = self._enrich(url, content)

                    try:
                        items.append(ContentItem(
                            title=article.get("title") or "",
                            author=article.get("author") or "Unknown",
                            source_url=url,
                            source_name=(article.get("source") or {}).get("name") or "News Source",
                            summary=article.get("description") or "",
                            body=content,
                            tags=[keyword, "news"],
                            published_at=_parse_date(article.get("publishedAt") or ""),
                            category="news",
                        ))
                    except ValueError:
                        logger.debug("Skipping article with invalid URL: %s", url)

        self._raise_if_all_failed(items, failures, len(keywords))
        logger.info("NewsAPI: collected %d articles", len(items))
        return items
