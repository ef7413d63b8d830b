"""On-disk artifacts: per-record files, the bulk record file, the bulk index file.

Layout (every path optional, configured per Database):
    objects/
        <key>           # one record, single-line record form
    objects.db          # hash-table of key -> record
    tracker.db          # hash-table of field -> hash-table of value -> (keys...)

Bulk files are written to a sibling .tmp file and renamed into place.
Per-record files are written directly and never backed up.
"""

from __future__ import annotations

import logging
import os
import re
from typing import TYPE_CHECKING, Any

from trackdb.codec import decode_mapping, decode_record, encode_mapping, encode_record
from trackdb.errors import CorruptRecord
from trackdb.models import Record

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from pathlib import Path

logger = logging.getLogger("trackdb.persist")

DEFAULT_FILE_REGEXP = r"^[^.]"


def choose_encoding(text: str) -> str:
    """Narrowest encoding that represents ``text`` losslessly."""
    return "ascii" if text.isascii() else "utf-8"


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptRecord(path, f"not valid UTF-8 text: {exc.reason}") from exc


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding=choose_encoding(text))
    tmp.replace(path)


# ---------------------------------------------------------------------------
# Per-record files
# ---------------------------------------------------------------------------


def record_path(objects_dir: Path, key: Any) -> Path:
    name = str(key)
    if not name or name in (".", "..") or os.sep in name or (os.altsep and os.altsep in name):
        msg = f"key {key!r} cannot be used as a file name"
        raise ValueError(msg)
    return objects_dir / name


def write_record(objects_dir: Path, key: Any, record: Record) -> Path:
    path = record_path(objects_dir, key)
    objects_dir.mkdir(parents=True, exist_ok=True)
    text = encode_record(record) + "\n"
    path.write_text(text, encoding=choose_encoding(text))
    return path


def read_record(path: Path, family: type[Record] = Record) -> Record:
    return decode_record(_read_text(path), source=path, family=family)


def remove_record(objects_dir: Path, key: Any) -> None:
    record_path(objects_dir, key).unlink(missing_ok=True)


def scan_records(
    objects_dir: Path,
    *,
    pattern: str = DEFAULT_FILE_REGEXP,
    family: type[Record] = Record,
    errors: list[CorruptRecord] | None = None,
) -> Iterator[tuple[str, Record]]:
    """Yield (file name, record) for every matching file in ``objects_dir``.

    With ``errors`` given, corrupt files are logged, appended to it and
    skipped; otherwise the first CorruptRecord propagates.
    """
    if not objects_dir.is_dir():
        logger.debug("objects dir %s does not exist", objects_dir)
        return
    regexp = re.compile(pattern)
    for path in sorted(objects_dir.iterdir()):
        if not path.is_file() or not regexp.search(path.name):
            continue
        try:
            record = read_record(path, family)
        except CorruptRecord as exc:
            if errors is None:
                raise
            logger.warning("skipping corrupt record file %s: %s", path, exc.reason)
            errors.append(exc)
            continue
        yield path.name, record


# ---------------------------------------------------------------------------
# Bulk files
# ---------------------------------------------------------------------------


def write_objects(path: Path, records: Mapping[Any, Record]) -> None:
    _write_atomic(path, encode_mapping(records))


def read_objects(path: Path, family: type[Record] = Record) -> dict[Any, Record]:
    records = decode_mapping(_read_text(path), source=path)
    for key, record in records.items():
        if not isinstance(record, family):
            expected = family.kind or family.__name__
            raise CorruptRecord(f"{path}[{key!r}]", f"expected a {expected} record, got {type(record).__name__}")
    return records


def write_tracker(path: Path, mapping: Mapping[str, Mapping[Any, list[Any]]]) -> None:
    _write_atomic(path, encode_mapping(mapping))


def read_tracker(path: Path) -> dict[Any, Any]:
    return decode_mapping(_read_text(path), source=path)
