"""Rebuild secondary indexes from scratch.

The rebuilt mapping is built off to the side and swapped in with a single
assignment, so readers see either the old index or the new one.

Entry points:
    build_index(tracker, records)   # fresh Tracker, nothing persisted
    reindex(db)                     # rebuild, swap in, write bulk files
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from trackdb.index import Tracker
    from trackdb.models import Record
    from trackdb.store import Database

logger = logging.getLogger("trackdb.indexer")

PROGRESS_EVERY = 1000


def build_index(
    tracker: Tracker,
    records: Mapping[Any, Record],
    *,
    progress: Callable[[int, int], None] | None = None,
) -> Tracker:
    """Index every record into an empty tracker configured like ``tracker``."""
    fresh = tracker.fresh()
    total = len(records)
    for n, (key, record) in enumerate(records.items(), 1):
        fresh.index_insert(key, record)
        if total > PROGRESS_EVERY and n % PROGRESS_EVERY == 0:
            logger.info("reindex: %d/%d records (%d%%)", n, total, n * 100 // total)
            if progress is not None:
                progress(n, total)
    return fresh


def reindex(db: Database, *, progress: Callable[[int, int], None] | None = None) -> int:
    """Full rebuild of ``db``'s indexes, then write its bulk files if configured."""
    fresh = build_index(db.tracker, db.records, progress=progress)
    db.tracker.adopt(fresh)
    logger.info("reindex: %d records, %d indexed values", len(db.records), len(db.tracker))
    db.write_tracker_file()
    db.write_objects_file()
    return len(db.records)
