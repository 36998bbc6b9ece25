"""Configuration loading from config.yaml + .env."""

import json
import logging
from pathlib import Path

import yaml
from pydantic import BaseModel
from pydantic_settings import BaseSettings

from .models import Interest, ProcessingLevel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Config sub-models (loaded from config.yaml)
# ---------------------------------------------------------------------------

class StorageConfig(BaseModel):
    data_dir: str = "user/data"  # partitions + merged index + history
    api_keys_file: str = "user/api-keys.json"


class CollectionConfig(BaseModel):
    max_results: int = 10  # per source
    processing_level: ProcessingLevel = "basic"
    web_search_timeout: float = 15.0
    fallback_timeout: float = 30.0  # tier-2 retry of the web-search source
    extract_workers: int = 4  # 页面抓取并发上限


class ArxivConfig(BaseModel):
    enabled: bool = True
    max_results: int = 5


class WikipediaConfig(BaseModel):
    enabled: bool = True
    language: str = "en"
    max_results: int = 3


class NewsApiConfig(BaseModel):
    enabled: bool = True
    max_results: int = 5
    language: str = "en"


class GithubConfig(BaseModel):
    enabled: bool = True
    max_results: int = 5


class DuckDuckGoConfig(BaseModel):
    enabled: bool = True
    max_results: int = 5
    allowed_sources: list[str] = []  # 域名白名单，空表示不过滤


class SourcesConfig(BaseModel):
    arxiv: ArxivConfig = ArxivConfig()
    wikipedia: WikipediaConfig = WikipediaConfig()
    newsapi: NewsApiConfig = NewsApiConfig()
    github: GithubConfig = GithubConfig()
    duckduckgo: DuckDuckGoConfig = DuckDuckGoConfig()


class SearchConfig(BaseModel):
    cache_ttl: float = 300.0  # seconds
    default_max_results: int = 10


class TaggerConfig(BaseModel):
    max_tags: int = 10


class AppConfig(BaseModel):
    """Application config loaded from config.yaml."""

    storage: StorageConfig = StorageConfig()
    collection: CollectionConfig = CollectionConfig()
    sources: SourcesConfig = SourcesConfig()
    search: SearchConfig = SearchConfig()
    tagger: TaggerConfig = TaggerConfig()
    interests: list[Interest] = []
    keywords: list[str] = []


# ---------------------------------------------------------------------------
# Secrets (loaded from .env / environment variables)
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Secret settings loaded from environment / .env file."""

    news_api_key: str = ""
    github_token: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Key names accepted by get_api_key -> (Settings attribute, key-file aliases)
# API key 名称映射：环境变量字段 + 密钥文件中的别名
_KEY_ALIASES: dict[str, tuple[str, tuple[str, ...]]] = {
    "newsapi": ("news_api_key", ("newsApiKey", "news_api_key", "newsapi")),
    "github": ("github_token", ("githubApiKey", "github_token", "github")),
}


class ApiKeyStore:
    """Resolve API keys: environment / .env first, then the JSON key file.

    查找顺序：环境变量 -> user/api-keys.json -> 空字符串。
    """

    def __init__(self, settings: Settings, keys_file: str | Path = "") -> None:
        self.settings = settings
        self.keys_file = Path(keys_file) if keys_file else None

    def _load_file(self) -> dict[str, str]:
        if self.keys_file is None or not self.keys_file.exists():
            return {}
        try:
            data = json.loads(self.keys_file.read_text(encoding="utf-8"))
        except Exception:
            logger.exception("Failed to read API key file %s", self.keys_file)
            return {}
        if not isinstance(data, dict):
            logger.warning("API key file %s is not a JSON object, ignoring", self.keys_file)
            return {}
        return data

    def get_api_key(self, name: str) -> str:
        """Return the key for a collector name, or "" when none is configured."""
        attr, aliases = _KEY_ALIASES.get(name, (name, (name,)))
        value = getattr(self.settings, attr, "") or ""
        if value:
            return value

        stored = self._load_file()
        for alias in aliases:
            if stored.get(alias):
                return str(stored[alias])
        return ""


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(config_path: str = "config.yaml") -> tuple[AppConfig, Settings]:
    """Load app config from YAML and secrets from .env."""
    path = Path(config_path)
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        app_config = AppConfig(**data)
    else:
        app_config = AppConfig()

    settings = Settings()
    return app_config, settings
