"""Database: primary record mapping, its secondary indexes and their backing files.

Tracked fields, atomic fields, sort functions and the record family are
store-wide, so they live on the class:

    class TicketDB(Database):
        record_class = Ticket
        tracked_fields = ("status", "tags")
        atomic_fields = frozenset({"status"})

    db = TicketDB(objects_dir="objects", tracker_file="tracker.db").load()
    db.insert("A", Ticket(status="open"))
    db.lookup_value("status", "open")   # -> ["A"]
    db.delete(field="status", value="closed")

Single writer only: nothing here locks files or coordinates processes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from trackdb import persist
from trackdb.errors import NotFound
from trackdb.index import Tracker
from trackdb.indexer import build_index, reindex
from trackdb.models import Record

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from trackdb.errors import CorruptRecord
    from trackdb.index import Comparator

logger = logging.getLogger("trackdb.store")


def _as_path(value: Path | str | None) -> Path | None:
    return Path(value) if value else None


class Database:
    """Record store with automatically maintained secondary indexes."""

    record_class: ClassVar[type[Record]] = Record
    tracked_fields: ClassVar[tuple[str, ...]] = ()
    atomic_fields: ClassVar[frozenset[str]] = frozenset()
    sort_fns: ClassVar[dict[str, Comparator]] = {}

    def __init__(
        self,
        *,
        objects_dir: Path | str | None = None,
        objects_file: Path | str | None = None,
        tracker_file: Path | str | None = None,
        object_file_regexp: str = persist.DEFAULT_FILE_REGEXP,
        write_through: bool = True,
    ) -> None:
        self.objects_dir = _as_path(objects_dir)
        self.objects_file = _as_path(objects_file)
        self.tracker_file = _as_path(tracker_file)
        self.object_file_regexp = object_file_regexp
        self.write_through = write_through

        self.records: dict[Any, Record] = {}
        self.tracker = Tracker(
            self.tracked_fields,
            atomic_fields=self.atomic_fields,
            sort_fns=self.sort_fns,
        )
        self.load_errors: list[CorruptRecord] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} records={len(self.records)} tracked={list(self.tracked_fields)}>"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def lookup(self, key: Any) -> Record | None:
        return self.records.get(key)

    get = lookup

    def __contains__(self, key: object) -> bool:
        return key in self.records

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.records)

    def keys(self) -> list[Any]:
        return list(self.records)

    def items(self) -> list[tuple[Any, Record]]:
        return list(self.records.items())

    def field_values(self, record: Record, field: str) -> list[Any]:
        return self.tracker.field_values(record, field)

    def lookup_value(self, field: str, value: Any) -> list[Any]:
        """Keys of records whose ``field`` holds ``value`` ([] for untracked fields)."""
        return self.tracker.lookup_value(field, value)

    def search(self, field: str, value: Any) -> list[Record]:
        """Records (rather than keys) for an index lookup, in key order."""
        return [self.records[key] for key in self.lookup_value(field, value) if key in self.records]

    def tracked_values(self, field: str) -> list[Any]:
        return self.tracker.values(field)

    def check(self) -> list[str]:
        """List every index/record disagreement; empty when consistent."""
        return self.tracker.verify(self.records)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, key: Any, record: Record) -> None:
        """Insert or replace the record under ``key`` and update the indexes."""
        self._put(key, record)
        if self.write_through and self.objects_file:
            self.write_objects_file()

    def insert_many(self, items: Iterable[tuple[Any, Record]]) -> int:
        """Insert several records; the bulk record file is written once at the end."""
        n = 0
        for key, record in items:
            self._put(key, record)
            n += 1
        if n and self.write_through and self.objects_file:
            self.write_objects_file()
        return n

    def _put(self, key: Any, record: Record) -> None:
        if not isinstance(record, self.record_class):
            msg = f"expected a {self.record_class.__name__}, got {type(record).__name__}"
            raise TypeError(msg)
        if self.write_through and self.objects_dir:
            persist.record_path(self.objects_dir, key)
        old = self.records.get(key)
        self.tracker.index_update(key, old, record)
        self.records[key] = record
        if self.write_through and self.objects_dir:
            persist.write_record(self.objects_dir, key, record)

    def delete(
        self,
        keys: Iterable[Any] | None = None,
        *,
        field: str | None = None,
        value: Any = None,
        assert_exists: bool = False,
    ) -> list[Any]:
        """Delete records by explicit keys or by a ``field``/``value`` index query.

        Returns the keys actually deleted. With ``assert_exists`` an absent key
        raises NotFound; keys already deleted in this batch stay deleted.
        """
        if keys is None:
            if field is None:
                msg = "delete() needs keys or a field/value query"
                raise ValueError(msg)
            keys = self.lookup_value(field, value)
        elif field is not None:
            msg = "delete() takes keys or a field/value query, not both"
            raise ValueError(msg)
        elif isinstance(keys, str):
            keys = [keys]

        processed: list[Any] = []
        try:
            for key in list(keys):
                record = self.records.get(key)
                if record is None:
                    if assert_exists:
                        raise NotFound(key)
                    continue
                self.tracker.index_remove(key, record)
                del self.records[key]
                if self.write_through and self.objects_dir:
                    persist.remove_record(self.objects_dir, key)
                processed.append(key)
        finally:
            if processed and self.write_through and self.objects_file:
                self.write_objects_file()
        return processed

    def reindex(self, *, progress: Callable[[int, int], None] | None = None) -> int:
        """Rebuild every index from the records, then persist; returns the record count."""
        return reindex(self, progress=progress)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, *, restore_from_files: bool = False, strict: bool = True) -> Database:
        """Populate records and indexes from the configured artifacts.

        The bulk record file wins over per-record files unless
        ``restore_from_files`` is set. A present index file is trusted as is
        (call reindex() if it may be stale); without one the index is rebuilt
        in memory. With ``strict=False`` corrupt per-record files are skipped
        and collected in ``load_errors``.
        """
        self.load_errors = []
        tracker_loaded = False
        if self.tracker_file and self.tracker_file.exists():
            self.tracker.restore(persist.read_tracker(self.tracker_file), source=self.tracker_file)
            tracker_loaded = True

        if self.objects_file and self.objects_file.exists() and not restore_from_files:
            records = persist.read_objects(self.objects_file, self.record_class)
            source: Path | None = self.objects_file
        elif self.objects_dir:
            records = dict(persist.scan_records(
                self.objects_dir,
                pattern=self.object_file_regexp,
                family=self.record_class,
                errors=None if strict else self.load_errors,
            ))
            source = self.objects_dir
        else:
            records = {}
            source = None
        self.records = records

        if not tracker_loaded:
            self.tracker.adopt(build_index(self.tracker, self.records))
        logger.info(
            "loaded %d records from %s (index %s)",
            len(self.records), source, "from file" if tracker_loaded else "rebuilt",
        )
        if self.load_errors:
            logger.warning("skipped %d corrupt record files", len(self.load_errors))
        return self

    def save(self) -> None:
        """Write every configured artifact from the in-memory state."""
        if self.objects_dir:
            for key, record in self.records.items():
                persist.write_record(self.objects_dir, key, record)
        if self.objects_file:
            self.write_objects_file()
        if self.tracker_file:
            self.write_tracker_file()

    def write_objects_file(self) -> None:
        if self.objects_file:
            persist.write_objects(self.objects_file, self.records)

    def write_tracker_file(self) -> None:
        if self.tracker_file:
            persist.write_tracker(self.tracker_file, self.tracker.to_mapping())
