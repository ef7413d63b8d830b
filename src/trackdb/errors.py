"""Exceptions raised by trackdb. OS-level failures propagate as OSError."""

from __future__ import annotations

from typing import Any


class TrackDBError(Exception):
    """Base class for trackdb errors."""


class CorruptRecord(TrackDBError):
    """A file or bulk-file entry did not decode into the expected record family."""

    def __init__(self, source: object, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"corrupt record in {source}: {reason}")


class NotFound(TrackDBError, KeyError):
    """Deletion with existence assertion hit a key that is not stored."""

    def __init__(self, key: Any) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"no record under key {self.key!r}"
