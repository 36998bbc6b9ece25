"""Collection orchestrator.

Runs the configured sources one after another for a keyword set, turns each
source's outcome into KnowledgeRecords (results, or one error record) and
commits the run to the knowledge store.

状态机：idle -> running -> completed | stopped。同一时间只允许一个运行中的任务，
重复启动直接拒绝（不排队）。
"""

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol
from urllib.parse import quote_plus

from .collectors import REGISTRY, WEB_SEARCH_SOURCE, BaseCollector
from .errors import AdapterError, PersistenceError
from .models import (
    CollectionHistoryEntry,
    CollectionRun,
    ContentItem,
    KnowledgeRecord,
    ProcessingLevel,
    SearchResult,
)
from .store import KnowledgeStore
from .tagger import Tagger

logger = logging.getLogger(__name__)

DEFAULT_KEYWORD = "general"
FALLBACK_TOPIC = "artificial intelligence"  # tier-2 keyword when none were given
FALLBACK_LINKS = 5

CollectorFactory = Callable[..., BaseCollector]


class ContentProcessor(Protocol):
    def process(self, item: ContentItem, context_tags: list[str]) -> ContentItem: ...


def default_collector_factory(name: str, **overrides) -> BaseCollector:
    """Build a collector from the registry with constructor overrides."""
    cls = REGISTRY.get(name)
    if cls is None:
        raise AdapterError(f"Unknown source: {name}")
    return cls(**overrides)


def build_error_record(
    source: str,
    keywords: list[str],
    message: str,
    collection_id: str = "",
) -> KnowledgeRecord:
    """Synthesize the record that stands in for a failed source."""
    now = datetime.now(timezone.utc)
    keyword_list = ", ".join(keywords)
    body = "\n".join([
        message,
        "",
        f"Tried to collect data at: {now.isoformat()}",
        f"Keywords: {keyword_list}",
        "",
        "Troubleshooting:",
        "- Check your network connection",
        "- Verify the API credentials for this source, if it needs any",
        "- Try different keywords",
        "- Try again later, the source may be limiting requests",
    ])
    return KnowledgeRecord(
        title=f"Error retrieving data from {source}",
        summary=f"Could not retrieve information from {source} for keywords: {keyword_list}",
        body=body,
        tags=["error", source, *keywords],
        source_name=source,
        category="error",
        date=now,
        collection_id=collection_id,
        is_error=True,
        metadata={"error": message},
    )


def build_search_summary_record(
    label: str,
    query: str,
    results: list[SearchResult],
    terms: list[str],
    collection_id: str = "",
) -> KnowledgeRecord:
    """One aggregate record listing the top search links."""
    top = results[:FALLBACK_LINKS]
    links = "\n\n".join(
        f"{i}. [{r.title}]({r.url})\n   {r.snippet}" for i, r in enumerate(top, 1)
    )
    body = (
        f'# Search results for "{query}"\n\n{links}\n\n'
        f"These links were found using {label} search. "
        "Click on any link to view the actual page."
    )
    return KnowledgeRecord(
        title=f"{label} search results for: {query}",
        summary=f'Found {len(results)} results for "{query}". Here are the top {len(top)} matches:',
        body=body,
        source_url=top[0].url if top else f"https://duckduckgo.com/?q={quote_plus(query)}",
        source_name=label,
        tags=[*terms, WEB_SEARCH_SOURCE, "search-results"],
        category="web",
        collection_id=collection_id,
        metadata={"search_results": [r.model_dump() for r in top]},
    )


class CollectionService:
    """Interactive collection runs (one at a time).

    Args:
        store: Where finished runs are committed.
        collector_factory: factory(name, **overrides) -> collector.
        processors: Applied to items at the enhanced/full levels; Tagger by default.
        fallback_timeout: Timeout for the tier-2 retry of the web-search source.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        collector_factory: CollectorFactory = default_collector_factory,
        processors: list[ContentProcessor] | None = None,
        fallback_timeout: float = 30.0,
    ) -> None:
        self.store = store
        self.collector_factory = collector_factory
        self.processors: list[ContentProcessor] = (
            processors if processors is not None else [Tagger()]
        )
        self.fallback_timeout = fallback_timeout
        self._state = CollectionRun()
        self._lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._thread: threading.Thread | None = None

    # ── Run state / 运行状态 ──

    def get_run_state(self) -> CollectionRun:
        """A copy of the current (or last) run."""
        with self._lock:
            return self._state.model_copy(deep=True)

    def _update(self, **changes) -> None:
        with self._lock:
            self._state = self._state.model_copy(update=changes)

    def _begin(
        self,
        sources: list[str],
        keywords: list[str],
        max_results: int,
        processing_level: ProcessingLevel,
    ) -> CollectionRun | None:
        with self._lock:
            if self._state.running:
                return None
            self._state = CollectionRun(
                id=uuid.uuid4().hex,
                sources=list(sources),
                keywords=list(keywords),
                max_results_per_source=max_results,
                processing_level=processing_level,
                started_at=datetime.now(timezone.utc),
                status="running",
                current_source="Initializing",
            )
            self._stop_requested.clear()
            return self._state.model_copy(deep=True)

    def start_run(
        self,
        sources: list[str],
        keywords: list[str],
        max_results: int = 10,
        processing_level: ProcessingLevel = "basic",
        save: bool = True,
    ) -> bool:
        """Start a run in a background thread.

        Returns False, leaving the current run untouched, when one is already running.
        """
        run = self._begin(sources, keywords, max_results, processing_level)
        if run is None:
            logger.warning("Collection already in progress, ignoring start request")
            return False
        self._thread = threading.Thread(
            target=self._execute,
            args=(run, save),
            name=f"collection-{run.id[:8]}",
            daemon=True,
        )
        self._thread.start()
        return True

    def run_collection(
        self,
        sources: list[str],
        keywords: list[str],
        max_results: int = 10,
        processing_level: ProcessingLevel = "basic",
        save: bool = True,
    ) -> list[KnowledgeRecord]:
        """Run synchronously and return the run's records ([] when rejected)."""
        run = self._begin(sources, keywords, max_results, processing_level)
        if run is None:
            logger.warning("Collection already in progress, ignoring start request")
            return []
        return self._execute(run, save)

    def wait(self, timeout: float | None = None) -> None:
        """Block until the background run (if any) finishes."""
        if self._thread is not None:
            self._thread.join(timeout)

    def stop_run(self) -> bool:
        """Request a cooperative stop; observed before the next source starts."""
        with self._lock:
            if not self._state.running:
                return False
        self._stop_requested.set()
        logger.info("Stop requested for collection run")
        return True

    def get_history(self) -> list[CollectionHistoryEntry]:
        return self.store.load_history()

    # ── Execution / 执行 ──

    def _execute(self, run: CollectionRun, save: bool) -> list[KnowledgeRecord]:
        records: list[KnowledgeRecord] = []
        total = len(run.sources)
        logger.info(
            "Collection %s started: sources=%s keywords=%s level=%s",
            run.id[:8], ", ".join(run.sources), ", ".join(run.keywords), run.processing_level,
        )
        stopped = False
        try:
            for index, source in enumerate(run.sources):
                if self._stop_requested.is_set():
                    logger.info("Collection stopped before %s", source)
                    stopped = True
                    break
                self._update(progress=index * 100 // total, current_source=source)
                records.extend(self._collect_source(source, run))
                self._update(items_collected=len(records))
        finally:
            # a stop that arrives during the last source still completes the run
            status = "stopped" if stopped else "completed"
            if save:
                self._persist(run, records, status)
            self._update(
                status=status,
                progress=100,
                current_source="Stopped" if status == "stopped" else "Completed",
                items_collected=len(records),
            )
            logger.info("Collection %s %s: %d records", run.id[:8], status, len(records))
        return records

    def _persist(self, run: CollectionRun, records: list[KnowledgeRecord], status: str) -> None:
        try:
            filename = self.store.save_run(records, run.id)
            self.store.append_history(CollectionHistoryEntry(
                id=run.id,
                date=run.started_at or datetime.now(timezone.utc),
                sources=run.sources,
                keywords=run.keywords,
                item_count=len(records),
                processing_level=run.processing_level,
                status=status,
                filename=filename,
            ))
        except PersistenceError:
            # 写入失败不回滚，任务仍标记完成
            logger.exception("Failed to save collection results for run %s", run.id[:8])

    def _process(self, items: list[ContentItem], keywords: list[str], level: str) -> list[ContentItem]:
        if level == "basic" or not self.processors:
            return items
        processed: list[ContentItem] = []
        for item in items:
            for processor in self.processors:
                try:
                    item = processor.process(item, keywords)
                except Exception:
                    logger.exception("Processor %s failed on %r", type(processor).__name__, item.title)
            processed.append(item)
        return processed

    def _to_records(
        self,
        items: list[ContentItem],
        source: str,
        keywords: list[str],
        run: CollectionRun,
    ) -> list[KnowledgeRecord]:
        items = self._process(items, keywords, run.processing_level)
        return [KnowledgeRecord.from_item(item, source, keywords, run.id) for item in items]

    def _collect_source(self, source: str, run: CollectionRun) -> list[KnowledgeRecord]:
        """Records for one source; never raises."""
        keywords = [k.strip() for k in run.keywords if k.strip()] or [DEFAULT_KEYWORD]

        try:
            collector = self.collector_factory(source, max_results=run.max_results_per_source)
        except Exception as e:
            logger.exception("Could not create collector for %s", source)
            return [build_error_record(source, keywords, str(e), run.id)]

        try:
            items = collector.collect(keywords)
        except Exception as e:
            logger.exception("Error using %s adapter", source)
            return [build_error_record(
                source, keywords, f"Error using {source} adapter: {e}", run.id
            )]

        if items:
            logger.info("%s: %d items", source, len(items))
            return self._to_records(items, source, keywords, run)

        if source == WEB_SEARCH_SOURCE:
            return self._web_search_fallback(source, run)

        logger.warning("%s returned no results", source)
        return [build_error_record(
            source, keywords,
            f"No results found from {source} for the specified keywords.",
            run.id,
        )]

    def _web_search_fallback(self, source: str, run: CollectionRun) -> list[KnowledgeRecord]:
        """Tier 2: fresh collector with a longer timeout. Tier 3: search-only links."""
        terms = [k.strip() for k in run.keywords if k.strip()] or [FALLBACK_TOPIC]
        label = REGISTRY[source].display_name if source in REGISTRY else source
        retry: BaseCollector | None = None

        # ── Tier 2 ──
        try:
            retry = self.collector_factory(
                source, max_results=run.max_results_per_source, timeout=self.fallback_timeout,
            )
            items = retry.collect(terms)
            if items:
                logger.info("%s retry returned %d items", label, len(items))
                return self._to_records(items, source, terms, run)
            logger.warning("%s retry returned nothing, falling back to search-only", label)
        except Exception:
            logger.exception("%s retry failed, falling back to search-only", label)

        # ── Tier 3 ──
        query = " ".join(terms)
        try:
            searcher = retry or self.collector_factory(
                source, max_results=run.max_results_per_source, timeout=self.fallback_timeout,
            )
            results = searcher.search(query)
        except Exception as e:
            logger.exception("%s search-only fallback failed", label)
            return [build_error_record(
                source, terms, f"Error during {label} search: {e}", run.id
            )]

        if not results:
            return [build_error_record(
                source, terms,
                f"{label} search API returned no results. "
                f"{label} may be restricting automated queries.",
                run.id,
            )]
        return [build_search_summary_record(label, query, results, terms, run.id)]
