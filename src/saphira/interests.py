"""Interest-driven collector (background / manual mode).

按兴趣采集：启用的兴趣按权重从高到低处理，未到期的跳过；
每个兴趣的标签发给所有已注册的 collector，结果依次经过处理器（如 Tagger）。

Overlapping requests are queued (FIFO) instead of rejected: a caller that
arrives while a pass is in flight blocks until its own pass has run.
"""

import logging
import threading
import uuid
from collections import deque
from collections.abc import Callable
from concurrent.futures import Future
from datetime import datetime, timezone

from .collectors.base import BaseCollector
from .errors import PersistenceError
from .models import CollectionHistoryEntry, ContentItem, Interest, KnowledgeRecord
from .store import KnowledgeStore

logger = logging.getLogger(__name__)

SCHEDULE_INTERVAL = 3600.0  # seconds between due checks


class InterestCollector:
    """Collects content for weighted, frequency-gated interests."""

    def __init__(self, store: KnowledgeStore | None = None) -> None:
        self.store = store
        self.collectors: list[BaseCollector] = []
        self.processors: list = []
        self._lock = threading.Lock()
        self._collecting = False
        self._queue: deque[tuple[list[Interest], Future]] = deque()
        self._schedule_stop = threading.Event()
        self._schedule_thread: threading.Thread | None = None

    def register_adapter(self, collector: BaseCollector) -> "InterestCollector":
        if collector is None or not callable(getattr(collector, "collect", None)):
            raise TypeError("Invalid collector: must implement collect(keywords)")
        self.collectors.append(collector)
        logger.info("Registered collector: %s", collector.name)
        return self

    def register_processor(self, processor) -> "InterestCollector":
        if processor is None or not callable(getattr(processor, "process", None)):
            raise TypeError("Invalid processor: must implement process(item, context_tags)")
        self.processors.append(processor)
        logger.info("Registered processor: %s", type(processor).__name__)
        return self

    def set_allowed_sources(self, domains: list[str]) -> None:
        for collector in self.collectors:
            if hasattr(collector, "allowed_sources"):
                collector.allowed_sources = list(domains)

    # ── Collection / 采集 ──

    def collect_by_interests(self, interests: list[Interest]) -> list[KnowledgeRecord]:
        """Run one pass over the interests, queuing behind any pass in flight."""
        with self._lock:
            if self._collecting:
                waiter: Future | None = Future()
                self._queue.append((list(interests), waiter))
                logger.warning("Collection already in progress, queuing request")
            else:
                self._collecting = True
                waiter = None

        if waiter is not None:
            return waiter.result()

        try:
            return self._run_pass(interests)
        finally:
            self._drain_queue()

    def manual_collection(self, interests: list[Interest]) -> list[KnowledgeRecord]:
        logger.info("Manual collection triggered")
        return self.collect_by_interests(interests)

    def _drain_queue(self) -> None:
        # 逐个处理排队的请求，队列为空时释放"采集中"标志
        while True:
            with self._lock:
                if not self._queue:
                    self._collecting = False
                    return
                interests, waiter = self._queue.popleft()
            try:
                waiter.set_result(self._run_pass(interests))
            except Exception as e:
                waiter.set_exception(e)

    def _apply_processors(self, item: ContentItem, tags: list[str]) -> ContentItem:
        for processor in self.processors:
            try:
                item = processor.process(item, tags)
            except Exception:
                logger.exception("Processor %s failed on %r", type(processor).__name__, item.title)
        return item

    def _run_pass(self, interests: list[Interest]) -> list[KnowledgeRecord]:
        pass_id = uuid.uuid4().hex
        records: list[KnowledgeRecord] = []

        active = sorted((i for i in interests if i.enabled), key=lambda i: i.weight, reverse=True)
        logger.info("Starting collection for %d interests (%d enabled)", len(interests), len(active))

        for interest in active:
            if not interest.is_collection_due():
                logger.debug("Skipping interest %s, not due yet", interest.id)
                continue

            tags = list(interest.tags)
            logger.info("Collecting for interest: %s", ", ".join(tags))
            for collector in self.collectors:
                source = collector.display_name or collector.name
                try:
                    items = collector.collect(tags)
                except Exception:
                    logger.exception("Error collecting from %s", source)
                    continue

                for item in items:
                    item = self._apply_processors(item, tags)
                    item = item.model_copy(update={"source_name": source})
                    records.append(KnowledgeRecord.from_item(item, source, tags, pass_id))

            # 无论是否有结果都更新采集时间，避免每轮重试
            interest.mark_collected()

        if self.store is not None and records:
            self._save(pass_id, records)

        logger.info("Collection completed, created %d records", len(records))
        return records

    def _save(self, pass_id: str, records: list[KnowledgeRecord]) -> None:
        try:
            filename = self.store.save_run(records, pass_id)
            self.store.append_history(CollectionHistoryEntry(
                id=pass_id,
                date=datetime.now(timezone.utc),
                sources=[c.name for c in self.collectors],
                keywords=sorted({t for r in records for t in r.tags}),
                item_count=len(records),
                processing_level="enhanced" if self.processors else "basic",
                filename=filename,
            ))
        except PersistenceError:
            logger.exception("Failed to save interest collection %s", pass_id[:8])

    # ── Scheduling / 定时采集 ──

    def start_scheduled_collection(
        self,
        get_interests: Callable[[], list[Interest]],
        interval: float = SCHEDULE_INTERVAL,
    ) -> None:
        """Check for due interests every `interval` seconds in a daemon thread."""
        if self._schedule_thread is not None and self._schedule_thread.is_alive():
            logger.warning("Scheduled collection already running")
            return
        self._schedule_stop.clear()

        def _loop() -> None:
            while not self._schedule_stop.wait(interval):
                try:
                    due = [i for i in get_interests() if i.is_collection_due()]
                    if due:
                        logger.info("Found %d interests due for collection", len(due))
                        self.collect_by_interests(due)
                except Exception:
                    logger.exception("Error in scheduled collection")

        self._schedule_thread = threading.Thread(
            target=_loop, name="interest-schedule", daemon=True
        )
        self._schedule_thread.start()
        logger.info("Scheduled collection started (every %.0fs)", interval)

    @property
    def scheduled_running(self) -> bool:
        return self._schedule_thread is not None and self._schedule_thread.is_alive()

    def stop_scheduled_collection(self) -> None:
        self._schedule_stop.set()
        if self._schedule_thread is not None:
            self._schedule_thread.join()
            self._schedule_thread = None
