"""Source collectors for Saphira.

Collector registry: maps source names to their classes.
新增 collector 只需：1) 写 collector 文件  2) 在此注册  3) 在 config.yaml 启用。
"""

from .arxiv_collector import ArxivCollector
from .base import BaseCollector
from .duckduckgo_collector import DuckDuckGoCollector
from .github_collector import GithubCollector
from .news_collector import NewsApiCollector
from .wikipedia_collector import WikipediaCollector

# Collector registry: name -> class
# collector 注册表：名称 -> 类
REGISTRY: dict[str, type[BaseCollector]] = {
    "arxiv": ArxivCollector,
    "wikipedia": WikipediaCollector,
    "newsapi": NewsApiCollector,
    "github": GithubCollector,
    "duckduckgo": DuckDuckGoCollector,
}

# Source whose empty result triggers the search-only fallback
WEB_SEARCH_SOURCE = "duckduckgo"

__all__ = [
    "BaseCollector",
    "REGISTRY",
    "WEB_SEARCH_SOURCE",
    "ArxivCollector",
    "DuckDuckGoCollector",
    "GithubCollector",
    "NewsApiCollector",
    "WikipediaCollector",
]
