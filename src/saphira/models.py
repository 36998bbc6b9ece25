"""Data models for Saphira."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

ProcessingLevel = Literal["basic", "enhanced", "full"]
RunStatus = Literal["idle", "running", "completed", "stopped"]
CollectFrequency = Literal["hourly", "daily", "weekly"]

# Hours that must pass before an interest is collected again
# 兴趣再次采集前需要间隔的小时数
FREQUENCY_HOURS: dict[str, int] = {
    "hourly": 1,
    "daily": 24,
    "weekly": 168,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


def is_http_url(url: str) -> bool:
    """Return True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _unique_tags(tags: list[str]) -> list[str]:
    # 大小写敏感去重，保留原顺序
    seen: set[str] = set()
    unique: list[str] = []
    for tag in tags:
        if tag not in seen:
            seen.add(tag)
            unique.append(tag)
    return unique


# ── Content / 内容 ────────────────────────────────────────────────────────


class ContentItem(BaseModel):
    """A single raw item produced by a collector.

    采集器产出的原始条目，尚未持久化。
    """

    title: str = ""
    source_url: str = ""  # empty or absolute http(s) URL
    source_name: str = ""  # e.g. "arXiv", "en.wikipedia.org"
    summary: str = ""
    body: str = ""
    author: str | None = None
    tags: list[str] = []
    published_at: datetime | None = None
    category: str | None = None  # academic, reference, news, code, web
    metadata: dict[str, Any] = {}
    id: str | None = None  # content-addressed id supplied by some collectors

    @field_validator("source_url")
    @classmethod
    def _check_source_url(cls, value: str) -> str:
        value = value.strip()
        if value and not is_http_url(value):
            raise ValueError(f"source_url must be an absolute http(s) URL: {value!r}")
        return value

    @field_validator("tags")
    @classmethod
    def _dedup_tags(cls, value: list[str]) -> list[str]:
        return _unique_tags(value)


class KnowledgeRecord(BaseModel):
    """A persisted content item (one entry of a partition file).

    持久化的知识条目。id 一旦分配不再复用。
    """

    id: str = Field(default_factory=_new_id)
    title: str = ""
    author: str | None = None
    source_url: str = ""
    source_name: str = ""
    summary: str = ""
    body: str = ""
    tags: list[str] = []
    category: str | None = None
    metadata: dict[str, Any] = {}
    date: datetime = Field(default_factory=_utcnow)
    collection_id: str = ""
    collection_date: str | None = None  # partition key, set on save
    is_error: bool = False

    @field_validator("date")
    @classmethod
    def _aware_date(cls, value: datetime) -> datetime:
        return _as_aware(value)

    @field_validator("tags")
    @classmethod
    def _dedup_tags(cls, value: list[str]) -> list[str]:
        return _unique_tags(value)

    @classmethod
    def from_item(
        cls,
        item: ContentItem,
        source: str,
        keywords: list[str],
        collection_id: str = "",
    ) -> "KnowledgeRecord":
        """Map a raw collector item into a record, filling missing fields.

        缺失字段按来源和关键词补全。
        """
        if item.summary:
            summary = item.summary
        elif item.body:
            summary = item.body[:200] + "..."
        else:
            summary = "No summary available"

        return cls(
            id=item.id or _new_id(),
            title=item.title or f"Information from {source}",
            author=item.author,
            source_url=item.source_url,
            source_name=item.source_name or source,
            summary=summary,
            body=item.body or item.summary or "No content available",
            tags=item.tags or [*keywords, source],
            category=item.category,
            metadata=dict(item.metadata),
            date=item.published_at or _utcnow(),
            collection_id=collection_id,
        )


# ── Collection runs / 采集任务 ────────────────────────────────────────────


class CollectionRun(BaseModel):
    """Snapshot of an orchestrated collection run."""

    id: str = ""
    sources: list[str] = []
    keywords: list[str] = []
    max_results_per_source: int = 10
    processing_level: ProcessingLevel = "basic"
    started_at: datetime | None = None
    status: RunStatus = "idle"
    progress: int = 0  # 0-100
    current_source: str = ""
    items_collected: int = 0

    @property
    def running(self) -> bool:
        return self.status == "running"


class CollectionHistoryEntry(BaseModel):
    """One line of the persisted collection history, one per finished run."""

    id: str  # = CollectionRun.id
    date: datetime
    sources: list[str] = []
    keywords: list[str] = []
    item_count: int = 0
    processing_level: ProcessingLevel = "basic"
    status: RunStatus = "completed"
    filename: str = ""  # partition file name

    @field_validator("date")
    @classmethod
    def _aware_date(cls, value: datetime) -> datetime:
        return _as_aware(value)


# ── Interests / 兴趣 ──────────────────────────────────────────────────────


class Interest(BaseModel):
    """A weighted, frequency-gated keyword group.

    兴趣：带权重和采集频率的一组标签，驱动后台采集。
    """

    id: str = Field(default_factory=_new_id)
    name: str = ""
    tags: list[str] = []
    weight: int = 5  # clamped to 1-10
    collect_frequency: CollectFrequency = "daily"
    enabled: bool = True
    last_collected_at: datetime | None = None

    model_config = {"validate_assignment": True}

    @field_validator("weight")
    @classmethod
    def _clamp_weight(cls, value: int) -> int:
        return max(1, min(10, value))

    @field_validator("last_collected_at")
    @classmethod
    def _aware_last_collected(cls, value: datetime | None) -> datetime | None:
        return _as_aware(value) if value is not None else None

    def is_collection_due(self, now: datetime | None = None) -> bool:
        """Whether enough time has passed since the last collection."""
        if not self.enabled:
            return False
        if self.last_collected_at is None:
            return True
        now = _as_aware(now or _utcnow())
        threshold = timedelta(hours=FREQUENCY_HOURS[self.collect_frequency])
        return now - self.last_collected_at >= threshold

    def mark_collected(self, now: datetime | None = None) -> None:
        self.last_collected_at = now or _utcnow()

    def add_tag(self, tag: str) -> None:
        tag = tag.strip()
        if tag and tag not in self.tags:
            self.tags = [*self.tags, tag]

    def remove_tag(self, tag: str) -> None:
        self.tags = [t for t in self.tags if t != tag]

    def set_weight(self, weight: int) -> None:
        self.weight = weight

    def set_frequency(self, frequency: str) -> None:
        if frequency not in FREQUENCY_HOURS:
            raise ValueError(
                f"Invalid collection frequency {frequency!r}, "
                f"expected one of: {', '.join(FREQUENCY_HOURS)}"
            )
        self.collect_frequency = frequency


# ── Search / 搜索 ─────────────────────────────────────────────────────────


class SearchResult(BaseModel):
    """One (title, url, snippet) triple from a results page."""

    title: str
    url: str
    snippet: str = ""


class SearchResponse(BaseModel):
    """Results of a search or scrape request."""

    engine: str
    query: str
    results: list[ContentItem] = []
    timestamp: datetime = Field(default_factory=_utcnow)
    from_cache: bool = False


class ExtractedPage(BaseModel):
    """Readable text pulled out of a fetched HTML page."""

    url: str
    title: str = ""
    body: str = ""
    summary: str = ""  # first 200 characters of body
