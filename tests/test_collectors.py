"""Tests for the source collectors and the page extractor.

测试各 collector：HTTP 通过 httpx.MockTransport 模拟，不访问网络。
"""

import base64
from datetime import datetime
from types import SimpleNamespace

import httpx
import pytest

from saphira.collectors import REGISTRY, WEB_SEARCH_SOURCE
from saphira.collectors.arxiv_collector import ArxivCollector, format_authors
from saphira.collectors.base import BaseCollector
from saphira.collectors.duckduckgo_collector import DuckDuckGoCollector, _domain_allowed
from saphira.collectors.github_collector import GithubCollector
from saphira.collectors.news_collector import NewsApiCollector
from saphira.collectors.wikipedia_collector import WikipediaCollector
from saphira.errors import AdapterError, MissingCredentialError
from saphira.extractor import extract_text, fetch_many, fetch_page
from saphira.models import ContentItem, ExtractedPage


# ── Helpers ──────────────────────────────────────────────────────────────


@pytest.fixture
def mock_http(monkeypatch):
    """Route every httpx.Client through a MockTransport handler."""
    real_client = httpx.Client

    def _install(handler):
        def _factory(*args, **kwargs):
            kwargs["transport"] = httpx.MockTransport(handler)
            return real_client(*args, **kwargs)

        monkeypatch.setattr(httpx, "Client", _factory)

    return _install


def _ddg_html(*links: tuple[str, str]) -> str:
    blocks = "".join(
        '<div class="result results_links web-result"><div class="links_main result__body">'
        f'<h2 class="result__title"><a class="result__a" href="{href}">{title}</a></h2>'
        f'<a class="result__snippet" href="{href}">About {title}</a>'
        "</div></div>"
        for href, title in links
    )
    return f"<html><body>{blocks}</body></html>"


class _Partial(BaseCollector):
    name = "partial"

    def collect(self, keywords: list[str]) -> list[ContentItem]:
        return []


# ── Registry / base ──────────────────────────────────────────────────────


class TestRegistry:
    def test_registered_sources(self):
        assert set(REGISTRY) == {"arxiv", "wikipedia", "newsapi", "github", "duckduckgo"}
        assert WEB_SEARCH_SOURCE in REGISTRY

    def test_display_names(self):
        assert REGISTRY["duckduckgo"].display_name == "DuckDuckGo"
        assert REGISTRY["arxiv"].display_name == "arXiv"


class TestRaiseIfAllFailed:
    """全部失败才抛错"""

    def test_all_failed(self):
        with pytest.raises(AdapterError) as exc:
            _Partial()._raise_if_all_failed([], [ValueError("a"), ValueError("b")], 2)
        assert isinstance(exc.value.cause, ValueError)

    def test_partial_failure_ok(self):
        _Partial()._raise_if_all_failed([], [ValueError("a")], 2)

    def test_items_collected_ok(self):
        _Partial()._raise_if_all_failed([ContentItem(title="x")], [ValueError("a")], 1)

    def test_no_failures_ok(self):
        _Partial()._raise_if_all_failed([], [], 1)


# ── Extractor ────────────────────────────────────────────────────────────


class TestExtractor:
    """正文提取"""

    def test_strips_non_content_tags(self):
        html = (
            "<html><head><title> Page </title><style>p{}</style></head><body>"
            "<nav>Menu</nav><script>var x;</script><p>Hello\n\n  world</p>"
            "<footer>Copyright</footer></body></html>"
        )
        assert extract_text(html) == ("Page", "Hello world")

    def test_fetch_page(self):
        def handler(request):
            return httpx.Response(
                200,
                headers={"content-type": "text/html; charset=utf-8"},
                text="<html><title>T</title><body><p>" + "word " * 100 + "</p></body></html>",
            )

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            page = fetch_page("https://example.org/", client=client)
        assert page.title == "T"
        assert len(page.summary) == 200
        assert page.body.startswith("word word")

    def test_non_html_rejected(self):
        def handler(request):
            return httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF")

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(AdapterError, match="Not an HTML page"):
                fetch_page("https://example.org/a.pdf", client=client)

    def test_http_error(self):
        def handler(request):
            return httpx.Response(404)

        with httpx.Client(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(AdapterError, match="Failed to fetch"):
                fetch_page("https://example.org/missing", client=client)

    def test_fetch_many_keeps_order_and_errors(self):
        def fetch(url: str) -> ExtractedPage:
            if "bad" in url:
                raise AdapterError("nope")
            return ExtractedPage(url=url, body=url)

        pages = fetch_many(["https://a/1", "https://a/bad", "https://a/3"], fetch, max_workers=3)
        assert [p.body if isinstance(p, ExtractedPage) else "err" for p in pages] == [
            "https://a/1", "err", "https://a/3",
        ]
        assert fetch_many([], fetch) == []


# ── DuckDuckGo ───────────────────────────────────────────────────────────


class TestDuckDuckGo:
    """网页搜索"""

    def test_domain_allowed(self):
        assert _domain_allowed("https://docs.python.org/3/", ["python.org"])
        assert _domain_allowed("https://www.python.org/", ["python.org"])
        assert not _domain_allowed("https://notpython.org/", ["python.org"])
        assert _domain_allowed("https://anything.net/", [])

    def test_search_filters_and_limits(self, mock_http):
        html = _ddg_html(
            ("https://a.org/1", "One"),
            ("https://b.org/2", "Two"),
            ("https://a.org/3", "Three"),
            ("https://a.org/4", "Four"),
        )
        mock_http(lambda request: httpx.Response(200, text=html))

        collector = DuckDuckGoCollector(max_results=2, allowed_sources=["a.org"])
        results = collector.search("rust")

        assert [r.title for r in results] == ["One", "Three"]
        assert results[0].snippet == "About One"

    def test_search_error_status(self, mock_http):
        mock_http(lambda request: httpx.Response(503))
        with pytest.raises(AdapterError, match="503"):
            DuckDuckGoCollector().search("rust")

    def test_scrape_marks_fetch_errors(self, mock_http, monkeypatch):
        html = _ddg_html(("https://a.org/ok", "Ok"), ("https://b.org/down", "Down"))
        mock_http(lambda request: httpx.Response(200, text=html))

        collector = DuckDuckGoCollector()

        def fake_fetch(url: str) -> ExtractedPage:
            if "down" in url:
                raise AdapterError("timed out")
            return ExtractedPage(url=url, title="Ok page", body="full text", summary="full")

        monkeypatch.setattr(collector, "_fetch", fake_fetch)
        items = collector.scrape_top_results("rust async")

        assert [i.title for i in items] == ["Ok", "Down"]
        assert items[0].body == "full text"
        assert items[0].source_name == "a.org"
        assert items[0].tags == ["rust", "async", "duckduckgo"]
        assert items[1].body.startswith("Unable to retrieve content")
        assert "fetch_error" in items[1].tags

    def test_collect_swallows_search_failure(self, mock_http):
        mock_http(lambda request: httpx.Response(500))
        assert DuckDuckGoCollector().collect(["rust"]) == []

    def test_collect_blank_keywords(self):
        assert DuckDuckGoCollector().collect(["  ", ""]) == []


# ── arXiv ────────────────────────────────────────────────────────────────


class TestFormatAuthors:
    def test_variants(self):
        assert format_authors([]) == "Unknown"
        assert format_authors(["Ada"]) == "Ada"
        assert format_authors(["Ada", "Alan"]) == "Ada and Alan"
        assert format_authors(["Ada", "Alan", "Grace"]) == "Ada et al."


class _FakeArxivClient:
    def __init__(self, results: list) -> None:
        self._results = results

    def results(self, search):
        return iter(self._results)


def _arxiv_result(short_id: str, title: str) -> SimpleNamespace:
    return SimpleNamespace(
        get_short_id=lambda: short_id,
        title=title,
        summary="An  abstract\nspanning lines.",
        authors=[SimpleNamespace(name="Ada"), SimpleNamespace(name="Alan")],
        published=datetime(2024, 1, 2),
        categories=["cs.LG"],
        pdf_url=f"https://arxiv.org/pdf/{short_id}",
    )


class TestArxiv:
    """论文来源"""

    def test_collect(self):
        client = _FakeArxivClient([_arxiv_result("2401.00001", "Sparse\n  attention")])
        items = ArxivCollector(client=client).collect(["attention"])

        assert len(items) == 1
        item = items[0]
        assert item.id == "arxiv:2401.00001"
        assert item.title == "Sparse attention"
        assert item.author == "Ada and Alan"
        assert item.source_url == "https://arxiv.org/abs/2401.00001"
        assert item.body == "An abstract spanning lines."
        assert item.published_at.tzinfo is not None

    def test_malformed_result_skipped(self):
        broken = SimpleNamespace(get_short_id=lambda: "2401.00002")
        client = _FakeArxivClient([broken, _arxiv_result("2401.00003", "Kept")])
        items = ArxivCollector(client=client).collect(["x"])
        assert [i.title for i in items] == ["Kept"]


# ── Wikipedia ────────────────────────────────────────────────────────────


class TestWikipedia:
    """百科来源"""

    def test_collect(self, mock_http):
        def handler(request):
            params = request.url.params
            if params.get("list") == "search":
                return httpx.Response(200, json={"query": {"search": [
                    {"title": "Rust (programming language)", "pageid": 1},
                    {"title": "Ghost page", "pageid": 2},
                ]}})
            if params.get("titles") == "Ghost page":
                return httpx.Response(200, json={"query": {"pages": {"-1": {"missing": ""}}}})
            return httpx.Response(200, json={"query": {"pages": {"1": {"extract": "Rust is fast."}}}})

        mock_http(handler)
        items = WikipediaCollector().collect(["rust"])

        assert len(items) == 1
        item = items[0]
        assert item.source_url == "https://en.wikipedia.org/wiki/Rust_%28programming_language%29"
        assert item.body == "Rust is fast."
        assert item.tags == ["rust", "encyclopedia", "reference"]
        assert item.author == "Wikipedia Contributors"

    def test_all_keywords_failed(self, mock_http):
        mock_http(lambda request: httpx.Response(500))
        with pytest.raises(AdapterError):
            WikipediaCollector().collect(["a", "b"])


# ── NewsAPI ──────────────────────────────────────────────────────────────


class TestNewsApi:
    """新闻来源"""

    def test_missing_key(self):
        with pytest.raises(MissingCredentialError):
            NewsApiCollector(api_key="")

    def test_collect(self, mock_http):
        content = "Full article text. " * 20

        def handler(request):
            assert request.headers["X-Api-Key"] == "k"
            return httpx.Response(200, json={"status": "ok", "articles": [
                {
                    "title": "Rust 2.0",
                    "url": "https://news.example.org/rust",
                    "source": {"name": "Example News"},
                    "description": "Big release",
                    "content": content,
                    "publishedAt": "2024-03-01T12:00:00Z",
                },
                {"title": "No url", "url": ""},
            ]})

        mock_http(handler)
        items = NewsApiCollector(api_key="k").collect(["rust"])

        assert len(items) == 1
        assert items[0].source_name == "Example News"
        assert items[0].body == content
        assert items[0].tags == ["rust", "news"]
        assert items[0].published_at.year == 2024

    def test_unauthorized(self, mock_http):
        mock_http(lambda request: httpx.Response(401))
        with pytest.raises(AdapterError, match="401"):
            NewsApiCollector(api_key="bad").collect(["rust"])


# ── GitHub ───────────────────────────────────────────────────────────────


class TestGithub:
    """代码仓库来源"""

    def test_collect(self, mock_http):
        readme = base64.b64encode(b"# Tokio\nAsync runtime").decode()

        def handler(request):
            assert request.headers["Authorization"] == "token t"
            if request.url.path == "/search/repositories":
                return httpx.Response(200, json={"items": [{
                    "id": 42,
                    "name": "tokio",
                    "full_name": "tokio-rs/tokio",
                    "html_url": "https://github.com/tokio-rs/tokio",
                    "description": "Async runtime",
                    "owner": {"login": "tokio-rs"},
                    "stargazers_count": 25000,
                    "language": "Rust",
                }]})
            return httpx.Response(200, json={"encoding": "base64", "content": readme})

        mock_http(handler)
        items = GithubCollector(token="t").collect(["async"])

        assert len(items) == 1
        item = items[0]
        assert item.title == "tokio - GitHub Repository"
        assert item.body == "# Tokio\nAsync runtime"
        assert item.author == "tokio-rs"
        assert item.metadata["stars"] == 25000
        assert item.tags == ["async", "github", "repository", "code"]

    def test_missing_readme(self, mock_http):
        def handler(request):
            if request.url.path == "/search/repositories":
                return httpx.Response(200, json={"items": [
                    {"id": 1, "name": "x", "full_name": "o/x", "description": "desc"},
                ]})
            return httpx.Response(404)

        mock_http(handler)
        items = GithubCollector().collect(["x"])
        assert items[0].body == "desc"

    def test_invalid_repository_skipped(self, mock_http):
        def handler(request):
            if request.url.path == "/search/repositories":
                return httpx.Response(200, json={"items": [
                    {"id": 1, "name": "bad", "full_name": "o/bad", "html_url": "ftp://o/bad"},
                    {"id": 2, "name": "good", "full_name": "o/good",
                     "html_url": "https://github.com/o/good"},
                ]})
            return httpx.Response(404)

        mock_http(handler)
        items = GithubCollector().collect(["x"])
        assert [i.title for i in items] == ["good - GitHub Repository"]

    def test_rate_limited(self, mock_http):
        mock_http(lambda request: httpx.Response(403, headers={"x-ratelimit-remaining": "0"}))
        with pytest.raises(AdapterError):
            GithubCollector().collect(["x"])
