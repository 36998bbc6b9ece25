"""arXiv paper collector.

Searches arXiv per keyword (all fields, sorted by relevance).
arXiv API 免费无限制（建议 3s 间隔）。
"""

import logging
from datetime import timezone

import arxiv

from ..models import ContentItem
from .base import BaseCollector

logger = logging.getLogger(__name__)

ARXIV_ABS_URL = "https://arxiv.org/abs"


def format_authors(names: list[str]) -> str:
    """Format author list as "A", "A and B" or "A et al."."""
    if not names:
        return "Unknown"
    if len(names) == 1:
        return names[0]
    if len(names) == 2:
        return f"{names[0]} and {names[1]}"
    return f"{names[0]} et al."


class ArxivCollector(BaseCollector):
    """arXiv collector (academic papers).

    学术论文源：每个关键词单独查询 all:<keyword>。
    """

    name = "arxiv"
    display_name = "arXiv"

    def __init__(
        self,
        max_results: int = 5,
        client: arxiv.Client | None = None,
    ) -> None:
        self.max_results = max_results
        self.client = client or arxiv.Client(
            page_size=max_results,
            delay_seconds=3.0,  # respect rate limit
        )

    def _to_item(self, result: arxiv.Result, keyword: str) -> ContentItem:
        short_id = result.get_short_id()
        abstract = " ".join(result.summary.split())
        return ContentItem(
            id=f"arxiv:{short_id}",
            title=" ".join(result.title.split()),
            author=format_authors([a.name for a in result.authors]),
            source_url=f"{ARXIV_ABS_URL}/{short_id}",
            source_name=self.display_name,
            summary=abstract,
            body=abstract,
            tags=[keyword, "academic", "paper"],
            published_at=result.published.replace(tzinfo=timezone.utc)
            if result.published and result.published.tzinfo is None
            else result.published,
            category="academic",
            metadata={
                "arxiv_id": short_id,
                "categories": list(result.categories or []),
                "pdf_url": result.pdf_url or "",
            },
        )

    def collect(self, keywords: list[str]) -> list[ContentItem]:
        items: list[ContentItem] = []
        failures: list[Exception] = []

        for keyword in keywords:
            search = arxiv.Search(
                query=f"all:{keyword}",
                max_results=self.max_results,
                sort_by=arxiv.SortCriterion.Relevance,
                sort_order=arxiv.SortOrder.Descending,
            )
            logger.info("arXiv query: all:%s (max_results=%d)", keyword, self.max_results)
            try:
                for result in self.client.results(search):
                    try:
                        items.append(self._to_item(result, keyword))
                    except Exception:
                        logger.exception("Skipping malformed arXiv result for %r", keyword)
            except Exception as e:
                logger.exception("Failed to fetch arXiv papers for %r", keyword)
                failures.append(e)

        self._raise_if_all_failed(items, failures, len(keywords))
        logger.info("arXiv: collected %d papers", len(items))
        return items
