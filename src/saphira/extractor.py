"""Web page content extractor.

抓取网页并提取正文：去除 script/style/nav 等非正文标签，压缩空白，
摘要取前 200 个字符。
"""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

import httpx
from bs4 import BeautifulSoup

from .errors import AdapterError
from .models import ExtractedPage

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Tags that never carry article text / 非正文标签
STRIP_TAGS = ("script", "style", "nav", "header", "footer", "iframe", "aside", "noscript")

SUMMARY_LENGTH = 200


def extract_text(html: str) -> tuple[str, str]:
    """Return (title, body text) of an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""
    for tag in soup(STRIP_TAGS):
        tag.decompose()
    root = soup.body or soup
    text = " ".join(root.get_text(" ").split())
    return title, text


def fetch_page(
    url: str,
    client: httpx.Client | None = None,
    timeout: float = 10.0,
) -> ExtractedPage:
    """Fetch a URL and extract its readable text.

    Raises:
        AdapterError: on HTTP failure or a non-HTML response.
    """
    try:
        if client is None:
            with httpx.Client(
                timeout=timeout, headers=DEFAULT_HEADERS, follow_redirects=True
            ) as own_client:
                resp = own_client.get(url)
        else:
            resp = client.get(url, timeout=timeout)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise AdapterError(f"Failed to fetch {url}: {e}", cause=e) from e

    content_type = resp.headers.get("content-type", "")
    if "text/html" not in content_type and "application/xhtml" not in content_type:
        raise AdapterError(f"Not an HTML page ({content_type or 'unknown type'}): {url}")

    title, body = extract_text(resp.text)
    return ExtractedPage(url=url, title=title, body=body, summary=body[:SUMMARY_LENGTH])


def fetch_many(
    urls: Iterable[str],
    fetch: Callable[[str], ExtractedPage],
    max_workers: int = 4,
) -> list[ExtractedPage | Exception]:
    """Fetch several pages concurrently, keeping input order.

    批量并发抓取（有上限），单个失败不影响其它页面，失败位置返回异常对象。
    """
    urls = list(urls)
    if not urls:
        return []

    def _safe_fetch(url: str) -> ExtractedPage | Exception:
        try:
            return fetch(url)
        except Exception as e:
            logger.warning("Page fetch failed for %s: %s", url, e)
            return e

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(urls)))) as executor:
        return list(executor.map(_safe_fetch, urls))
