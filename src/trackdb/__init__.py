"""Record store with automatically maintained secondary indexes.

Records are dataclass kinds keyed by a primary key. Tracked fields are
indexed value -> keys and kept in step with every insert and delete.

Layout (every artifact optional):
    objects/
        <key>           # one record per file (record form)
    objects.db          # whole primary mapping (hash-table form)
    tracker.db          # whole index mapping (hash-table of hash-tables)

The bulk record file wins over per-record files on load. The index file is
loaded as is when present; reindex() rebuilds it from the records.
"""

from trackdb.config import DBConfig, init_config, load_config
from trackdb.errors import CorruptRecord, NotFound, TrackDBError
from trackdb.index import Tracker
from trackdb.models import UNBOUND, Record
from trackdb.store import Database

__all__ = [
    "UNBOUND",
    "CorruptRecord",
    "DBConfig",
    "Database",
    "NotFound",
    "Record",
    "TrackDBError",
    "Tracker",
    "init_config",
    "load_config",
]
