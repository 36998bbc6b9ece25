"""DuckDuckGo HTML results page parser.

解析 DuckDuckGo HTML 搜索结果页，提取 (title, url, snippet)。
Redirect-wrapped links (/l/?uddg=...) are unwrapped; anything that is not
an absolute http(s) URL is dropped silently.
"""

import logging
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from ..models import SearchResult, is_http_url

logger = logging.getLogger(__name__)

DDG_BASE = "https://duckduckgo.com"

RESULT_SELECTOR = ".result, .results_links"
TITLE_SELECTOR = ".result__title a, .links_main a"
SNIPPET_SELECTORS = (".result__snippet", ".result__body")


def resolve_result_url(href: str) -> str | None:
    """Turn a result href into an absolute URL, unwrapping DDG redirects.

    Returns None for empty, relative-unresolvable or non-http(s) links.
    """
    href = (href or "").strip()
    if not href:
        return None
    if href.startswith("//"):
        href = f"https:{href}"
    elif href.startswith("/"):
        href = f"{DDG_BASE}{href}"

    parsed = urlparse(href)
    if parsed.netloc.endswith("duckduckgo.com") and parsed.path.startswith("/l/"):
        uddg_values = parse_qs(parsed.query).get("uddg")
        if not uddg_values:
            return None
        # parse_qs already percent-decodes the value once
        href = uddg_values[0]

    return href if is_http_url(href) else None


def parse_search_results(html: str, max_results: int | None = None) -> list[SearchResult]:
    """Parse a results page into SearchResult triples.

    Malformed result blocks are skipped; a page that cannot be parsed at all
    yields an empty list.
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
        elements = soup.select(RESULT_SELECTOR)
    except Exception:
        logger.exception("Failed to parse search results page")
        return []

    results: list[SearchResult] = []
    seen: set[str] = set()
    for element in elements:
        link = element.select_one(TITLE_SELECTOR)
        if link is None:
            continue
        url = resolve_result_url(link.get("href", ""))
        if url is None or url in seen:
            continue

        title = " ".join(link.get_text(" ").split())
        if not title:
            continue
        snippet = ""
        for selector in SNIPPET_SELECTORS:
            snippet_el = element.select_one(selector)
            if snippet_el is not None:
                snippet = " ".join(snippet_el.get_text(" ").split())
                break

        seen.add(url)
        results.append(SearchResult(title=title, url=url, snippet=snippet))
        if max_results is not None and len(results) >= max_results:
            break

    logger.debug("Parsed %d results from %d result blocks", len(results), len(elements))
    return results
