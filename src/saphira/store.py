"""Knowledge store: partitioned JSON persistence.

每次采集写入一个分区文件 knowledge-books-<YYYY-MM-DD_HH-MM-SS>.json，
同时维护合并索引 knowledge-books.json（按 id 去重、按日期倒序）。

Merge rule: partitions are read in file-name order and the first record seen
for an id wins. The merged file is only read on its own when no partition
exists (legacy single-file layout).
"""

import json
import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .errors import ParseError, PersistenceError
from .models import CollectionHistoryEntry, ContentItem, KnowledgeRecord

logger = logging.getLogger(__name__)

PARTITION_PREFIX = "knowledge-books-"
MERGED_FILENAME = "knowledge-books.json"
HISTORY_FILENAME = "collection-history.json"
PARTITION_KEY_FORMAT = "%Y-%m-%d_%H-%M-%S"


def dedup_first_wins(records: Iterable[KnowledgeRecord]) -> list[KnowledgeRecord]:
    """Drop records whose id was already seen, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[KnowledgeRecord] = []
    for record in records:
        if record.id in seen:
            continue
        seen.add(record.id)
        unique.append(record)
    return unique


def sort_by_date(records: list[KnowledgeRecord]) -> list[KnowledgeRecord]:
    # stable: equal dates keep merge order
    return sorted(records, key=lambda r: r.date, reverse=True)


class KnowledgeStore:
    """Directory-backed store of KnowledgeRecords.

    Args:
        data_dir: Root directory for partitions, merged index and history.
        clock: Returns local "now"; used for partition keys.
    """

    def __init__(
        self,
        data_dir: str | Path,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.data_dir = Path(data_dir)
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def merged_path(self) -> Path:
        return self.data_dir / MERGED_FILENAME

    @property
    def history_path(self) -> Path:
        return self.data_dir / HISTORY_FILENAME

    def partition_path(self, key: str) -> Path:
        return self.data_dir / f"{PARTITION_PREFIX}{key}.json"

    def partition_files(self) -> list[Path]:
        """Partition files in directory-listing (file name) order."""
        if not self.data_dir.is_dir():
            return []
        return sorted(self.data_dir.glob(f"{PARTITION_PREFIX}*.json"))

    def _new_partition_key(self) -> str:
        base = self._clock().strftime(PARTITION_KEY_FORMAT)
        key = base
        n = 2
        # 同一秒内多次保存时追加序号
        while self.partition_path(key).exists():
            key = f"{base}_{n:03d}"
            n += 1
        return key

    # ── JSON I/O / 读写 ──

    def _read_records(self, path: Path) -> list[KnowledgeRecord]:
        """Read one JSON array of records.

        Raises:
            ParseError: unreadable file or not a JSON array.
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ParseError(f"Cannot read {path.name}: {e}") from e
        if not isinstance(data, list):
            raise ParseError(f"{path.name} does not contain a JSON array")

        records: list[KnowledgeRecord] = []
        for entry in data:
            try:
                records.append(KnowledgeRecord.model_validate(entry))
            except ValidationError:
                logger.warning("Skipping malformed record in %s", path.name)
        return records

    def _write_json(self, path: Path, data: list[dict]) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(
                json.dumps(data, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    def _write_records(self, path: Path, records: list[KnowledgeRecord]) -> None:
        self._write_json(path, [r.model_dump(mode="json") for r in records])

    def _read_merged_file(self) -> list[KnowledgeRecord]:
        if not self.merged_path.exists():
            return []
        try:
            return self._read_records(self.merged_path)
        except ParseError:
            logger.exception("Merged index is unreadable, ignoring it")
            return []

    def _merge_partitions(self) -> list[KnowledgeRecord] | None:
        """Concatenate all partitions, first occurrence of an id wins.

        Returns None when there are no partition files at all.
        """
        files = self.partition_files()
        if not files:
            return None
        merged: list[KnowledgeRecord] = []
        for path in files:
            try:
                merged.extend(self._read_records(path))
            except ParseError:
                logger.exception("Skipping corrupt partition %s", path.name)
        return dedup_first_wins(merged)

    # ── Public API ──

    def load_all(self) -> list[KnowledgeRecord]:
        """All records, deduplicated and sorted by date (newest first)."""
        with self._lock:
            records = self._merge_partitions()
            if records is None:
                records = dedup_first_wins(self._read_merged_file())
            return sort_by_date(records)

    def get_record(self, record_id: str) -> KnowledgeRecord | None:
        return next((r for r in self.load_all() if r.id == record_id), None)

    def save_run(self, records: list[KnowledgeRecord], collection_id: str) -> str:
        """Persist one run: a new partition plus the rewritten merged index.

        新记录写入新分区文件，同时合并进主索引（按 id 去重，先到先得）。
        An empty run writes no partition and returns "".

        Raises:
            PersistenceError: when a file cannot be written.
        """
        with self._lock:
            existing = self._merge_partitions() or []
            # legacy entries that never made it into a partition
            existing = dedup_first_wins([*existing, *self._read_merged_file()])

            filename = ""
            new_records: list[KnowledgeRecord] = []
            if records:
                key = self._new_partition_key()
                new_records = [
                    r.model_copy(update={"collection_id": collection_id, "collection_date": key})
                    for r in records
                ]
                partition = self.partition_path(key)
                self._write_records(partition, new_records)
                filename = partition.name

            merged = sort_by_date(dedup_first_wins([*existing, *new_records]))
            self._write_records(self.merged_path, merged)
            logger.info(
                "Saved %d records (%s), merged index now %d records",
                len(new_records), filename or "no partition", len(merged),
            )
            return filename

    def save_items(
        self,
        items: list[ContentItem],
        source: str,
        keywords: list[str],
    ) -> list[KnowledgeRecord]:
        """Persist ad-hoc items (e.g. search results) as their own run."""
        collection_id = uuid.uuid4().hex
        records = [KnowledgeRecord.from_item(i, source, keywords, collection_id) for i in items]
        filename = self.save_run(records, collection_id)
        if filename:
            self.append_history(CollectionHistoryEntry(
                id=collection_id,
                date=datetime.now(timezone.utc),
                sources=[source],
                keywords=keywords,
                item_count=len(records),
                filename=filename,
            ))
        return records

    def delete_record(self, record_id: str) -> bool:
        """Remove one record from the merged index and its partition file."""
        with self._lock:
            removed = False
            collection_date: str | None = None

            merged = self._read_merged_file()
            remaining = [r for r in merged if r.id != record_id]
            if len(remaining) != len(merged):
                collection_date = next(r for r in merged if r.id == record_id).collection_date
                self._write_records(self.merged_path, remaining)
                removed = True

            if collection_date and self.partition_path(collection_date).exists():
                paths = [self.partition_path(collection_date)]
            else:
                paths = self.partition_files()

            for path in paths:
                try:
                    records = self._read_records(path)
                except ParseError:
                    logger.exception("Skipping corrupt partition %s", path.name)
                    continue
                kept = [r for r in records if r.id != record_id]
                if len(kept) != len(records):
                    self._write_records(path, kept)
                    removed = True

            if removed:
                logger.info("Deleted record %s", record_id)
            return removed

    def delete_run(self, collection_id: str) -> int:
        """Delete a run's partition file(s) and purge its records.

        Returns the number of merged-index records removed.
        """
        with self._lock:
            history = self.load_history()
            filenames = {h.filename for h in history if h.id == collection_id and h.filename}
            paths = [self.data_dir / name for name in filenames if (self.data_dir / name).exists()]
            if not paths:
                # 历史中没有文件名时扫描分区
                for path in self.partition_files():
                    try:
                        records = self._read_records(path)
                    except ParseError:
                        continue
                    if any(r.collection_id == collection_id for r in records):
                        paths.append(path)

            for path in paths:
                try:
                    path.unlink()
                except OSError as e:
                    raise PersistenceError(f"Failed to delete {path}: {e}") from e
                logger.info("Deleted partition %s", path.name)

            merged = self._read_merged_file()
            remaining = [r for r in merged if r.collection_id != collection_id]
            purged = len(merged) - len(remaining)
            if purged:
                self._write_records(self.merged_path, remaining)

            kept_history = [h for h in history if h.id != collection_id]
            if len(kept_history) != len(history):
                self._write_history(kept_history)

            logger.info("Deleted run %s: %d files, %d records", collection_id, len(paths), purged)
            return purged

    def delete_all(self) -> int:
        """Truncate the merged index, remove every partition and the history."""
        with self._lock:
            count = len(self.load_all())
            self._write_json(self.merged_path, [])
            for path in self.partition_files():
                try:
                    path.unlink()
                except OSError as e:
                    raise PersistenceError(f"Failed to delete {path}: {e}") from e
            if self.history_path.exists():
                self._write_history([])
            logger.info("Deleted all records (%d)", count)
            return count

    # ── History / 采集历史 ──

    def load_history(self) -> list[CollectionHistoryEntry]:
        """Collection history, newest first. Unreadable history reads as empty."""
        if not self.history_path.exists():
            return []
        try:
            data = json.loads(self.history_path.read_text(encoding="utf-8"))
            entries = [CollectionHistoryEntry.model_validate(e) for e in data]
        except Exception:
            logger.exception("Failed to load collection history, starting fresh")
            return []
        return sorted(entries, key=lambda e: e.date, reverse=True)

    def _write_history(self, entries: list[CollectionHistoryEntry]) -> None:
        self._write_json(self.history_path, [e.model_dump(mode="json") for e in entries])

    def append_history(self, entry: CollectionHistoryEntry) -> None:
        with self._lock:
            entries = [e for e in self.load_history() if e.id != entry.id]
            self._write_history([entry, *entries])
