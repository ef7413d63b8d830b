"""Secondary indexes: tracked field -> value -> set of primary keys.

Tracker is the in-memory index manager used by Database:
    tracker = Tracker(["status", "tags"], atomic_fields=["status"])
    tracker.index_insert("A", record)
    tracker.lookup_value("status", "open")   # -> ["A"]

Empty key-sets are pruned on removal, so a value disappears from
``values(field)`` once no record holds it.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Any

from trackdb.codec import sort_key
from trackdb.errors import CorruptRecord
from trackdb.models import UNBOUND, Record

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    Comparator = Callable[[Any, Any], int]

_MULTI_TYPES = (list, tuple, set, frozenset)


def index_value(value: Any) -> Any:
    """Hashable stand-in for a field value, used as the index key.

    Lists become tuples, sets become sorted tuples, mappings become sorted
    tuples of (key, value) pairs and records become (kind, pairs) tuples,
    all recursively. Tuples survive the codec, so the index file round-trips.
    """
    if isinstance(value, (list, tuple)):
        return tuple(index_value(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return tuple(sorted((index_value(v) for v in value), key=sort_key))
    if isinstance(value, dict):
        pairs = ((index_value(k), index_value(v)) for k, v in value.items())
        return tuple(sorted(pairs, key=sort_key))
    if isinstance(value, Record):
        return (value.kind, tuple((name, index_value(value.get(name))) for name in value.field_names()))
    return value


class Tracker:
    """Per-field value -> key-set mappings plus the rules for reading field values."""

    def __init__(
        self,
        tracked_fields: Iterable[str],
        *,
        atomic_fields: Iterable[str] = (),
        sort_fns: Mapping[str, Comparator] | None = None,
    ) -> None:
        self.tracked_fields: tuple[str, ...] = tuple(tracked_fields)
        self.atomic_fields = frozenset(atomic_fields)
        self.sort_fns: dict[str, Comparator] = dict(sort_fns or {})
        self.mapping: dict[str, dict[Any, set[Any]]] = {f: {} for f in self.tracked_fields}

    def fresh(self) -> Tracker:
        """An empty tracker with the same configuration."""
        return Tracker(self.tracked_fields, atomic_fields=self.atomic_fields, sort_fns=self.sort_fns)

    def adopt(self, other: Tracker) -> None:
        """Swap in another tracker's mapping in one assignment."""
        self.mapping = other.mapping

    # ------------------------------------------------------------------
    # Field normalization
    # ------------------------------------------------------------------

    def field_values(self, record: Record, field: str) -> list[Any]:
        """Values of ``field`` on ``record`` as a list.

        Atomic fields give a one-element list. Multi-valued fields give their
        elements; a None or scalar there counts as no values or one value.
        Absent and unbound fields give []. Values come back in index form
        (see index_value).
        """
        value = record.get(field)
        if value is UNBOUND:
            return []
        if field in self.atomic_fields:
            return [index_value(value)]
        if value is None:
            return []
        if isinstance(value, _MULTI_TYPES):
            return [index_value(v) for v in value]
        return [index_value(value)]

    # ------------------------------------------------------------------
    # Incremental maintenance
    # ------------------------------------------------------------------

    def index_insert(self, key: Any, record: Record) -> None:
        self.index_update(key, None, record)

    def index_remove(self, key: Any, record: Record, field: str | None = None) -> None:
        fields = self.tracked_fields if field is None else (field,)
        for name in fields:
            for value in self.field_values(record, name):
                self._discard(name, value, key)

    def index_update(self, key: Any, old: Record | None, new: Record) -> None:
        """Apply only the value differences between ``old`` and ``new``.

        Every delta is computed before the mapping is touched, so a value that
        cannot be indexed raises TypeError with the index unchanged.
        """
        deltas = []
        for field in self.tracked_fields:
            before = set(self.field_values(old, field)) if old is not None else set()
            after = set(self.field_values(new, field))
            deltas.append((field, before - after, after - before))
        for field, removed, added in deltas:
            for value in removed:
                self._discard(field, value, key)
            for value in added:
                self.mapping[field].setdefault(value, set()).add(key)

    def _discard(self, field: str, value: Any, key: Any) -> None:
        keys = self.mapping.get(field, {}).get(value)
        if keys is None:
            return
        keys.discard(key)
        if not keys:
            self.set_value(field, value, None)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup_value(self, field: str, value: Any) -> list[Any]:
        """Keys whose record holds ``value`` in ``field``, ordered for the field."""
        try:
            keys = self.mapping.get(field, {}).get(index_value(value))
        except TypeError:  # unhashable probe value
            return []
        if not keys:
            return []
        return self._ordered(field, keys)

    def _ordered(self, field: str, keys: Iterable[Any]) -> list[Any]:
        cmp = self.sort_fns.get(field)
        if cmp is not None:
            return sorted(keys, key=functools.cmp_to_key(cmp))
        return sorted(keys, key=str)

    def set_value(self, field: str, value: Any, keys: Iterable[Any] | None) -> None:
        """Replace the key-set for (field, value); None or an empty set drops the entry."""
        table = self.mapping.setdefault(field, {})
        value = index_value(value)
        new = set(keys) if keys is not None else set()
        if new:
            table[value] = new
        else:
            table.pop(value, None)

    def values(self, field: str) -> list[Any]:
        return sorted(self.mapping.get(field, {}), key=sort_key)

    def __len__(self) -> int:
        return sum(len(table) for table in self.mapping.values())

    # ------------------------------------------------------------------
    # Persistence shape
    # ------------------------------------------------------------------

    def to_mapping(self) -> dict[str, dict[Any, list[Any]]]:
        """Container-of-containers form with key-sets as ordered lists."""
        return {
            field: {value: self._ordered(field, keys) for value, keys in table.items()}
            for field, table in self.mapping.items()
        }

    def restore(self, raw: Mapping[Any, Any], *, source: object = "<tracker>") -> None:
        """Replace the mapping from a decoded index file.

        Fields no longer tracked are dropped; newly tracked fields start empty.
        """
        mapping: dict[str, dict[Any, set[Any]]] = {f: {} for f in self.tracked_fields}
        for field, table in raw.items():
            if not isinstance(table, dict):
                raise CorruptRecord(source, f"index for field {field!r} is not a hash-table")
            if field not in mapping:
                continue
            for value, keys in table.items():
                if not isinstance(keys, (list, tuple)):
                    raise CorruptRecord(source, f"index entry {field}={value!r} is not a key list")
                if keys:
                    mapping[field][index_value(value)] = set(keys)
        self.mapping = mapping

    # ------------------------------------------------------------------
    # Invariant check
    # ------------------------------------------------------------------

    def verify(self, records: Mapping[Any, Record]) -> list[str]:
        """Describe every disagreement between the index and ``records``."""
        problems: list[str] = []
        for key, record in records.items():
            for field in self.tracked_fields:
                for value in self.field_values(record, field):
                    if key not in self.mapping.get(field, {}).get(value, ()):
                        problems.append(f"{key!r} missing from {field}={value!r}")
        for field, table in self.mapping.items():
            for value, keys in table.items():
                for key in keys:
                    record = records.get(key)
                    if record is None:
                        problems.append(f"{field}={value!r} lists unknown key {key!r}")
                    elif value not in self.field_values(record, field):
                        problems.append(f"{field}={value!r} lists {key!r} which no longer holds it")
        return problems
