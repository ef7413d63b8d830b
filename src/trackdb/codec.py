"""Text codec for records and hash-table containers.

Record form (one line):

    #s(record Ticket :status "open" :tags ("x" "y") :owner #unbound)

Container form (entries sorted by key, one per line, nested tables indented
one level deeper; only the outermost block ends with a newline):

    #s(hash-table size 2 test equal rehash-size 1.5 rehash-threshold 0.8125 data (
      "a" #s(record Ticket :status "open")
      "b" #s(hash-table size 1 test equal rehash-size 1.5 rehash-threshold 0.8125 data (
        "x" ("k1" "k2")
      ))
    ))

Atoms: nil, t, #f, #unbound, integers, floats (#inf, #-inf, #nan), strings.
Lists print as (...), tuples as [...], sets as sorted lists.

The reader only builds data: it tokenizes, parses and instantiates registered
Record kinds. Nothing in the input is ever evaluated.
"""

from __future__ import annotations

import io
import math
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from trackdb.errors import CorruptRecord
from trackdb.models import UNBOUND, Record, build_record

if TYPE_CHECKING:
    from typing import TextIO

_INDENT = "  "
_TABLE_HEADER = "#s(hash-table size {size} test equal rehash-size 1.5 rehash-threshold 0.8125 data ("
_TABLE_TESTS = frozenset({"eq", "eql", "equal"})

_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r"})
_UNESCAPES = {"n": "\n", "t": "\t", "r": "\r"}
_UNESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<struct>\#s\()
    | (?P<open>[(\[])
    | (?P<close>[)\]])
    | (?P<string>"(?:[^"\\]|\\.)*")
    | (?P<atom>[^\s()\[\]"]+)
    """,
    re.VERBOSE | re.DOTALL,
)
_INT_RE = re.compile(r"[-+]?\d+")
_FLOAT_RE = re.compile(r"[-+]?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?|[-+]?\d+[eE][-+]?\d+")
_CONSTANTS: dict[str, Any] = {
    "nil": None,
    "t": True,
    "#f": False,
    "#unbound": UNBOUND,
    "#inf": math.inf,
    "#-inf": -math.inf,
    "#nan": math.nan,
}
_CLOSERS = {"(": ")", "[": "]"}


# ---------------------------------------------------------------------------
# Printing
# ---------------------------------------------------------------------------


def encode_record(record: Record) -> str:
    """Serialize one record to its single-line text form."""
    if not isinstance(record, Record):
        msg = f"not a record: {type(record).__name__}"
        raise TypeError(msg)
    with io.StringIO() as buf:
        _write(buf, record, 0)
        return buf.getvalue()


def encode_mapping(mapping: Mapping[Any, Any]) -> str:
    """Serialize a (possibly nested) mapping; output ends with a newline."""
    with io.StringIO() as buf:
        _write_table(buf, mapping, 0)
        buf.write("\n")
        return buf.getvalue()


def encode_value(value: Any) -> str:
    with io.StringIO() as buf:
        _write(buf, value, 0)
        return buf.getvalue()


def sort_key(key: Any) -> tuple[Any, ...]:
    """Ordering used for container entries: composite keys sort by first component.

    Mixed key types are grouped (None, numbers, strings, other) and ties are
    broken by the printed key so the order never depends on insertion order.
    """
    primary = key[0] if isinstance(key, tuple) and key else key
    if primary is None:
        rank: tuple[int, Any] = (0, 0)
    elif isinstance(primary, (int, float)):
        rank = (1, primary)
    elif isinstance(primary, str):
        rank = (2, primary)
    else:
        rank = (3, encode_value(primary))
    return (*rank, encode_value(key))


def _write(out: TextIO, value: Any, depth: int) -> None:
    if value is UNBOUND:
        out.write("#unbound")
    elif value is None:
        out.write("nil")
    elif value is True:
        out.write("t")
    elif value is False:
        out.write("#f")
    elif isinstance(value, int):
        out.write(str(value))
    elif isinstance(value, float):
        out.write(_format_float(value))
    elif isinstance(value, str):
        out.write('"' + value.translate(_ESCAPES) + '"')
    elif isinstance(value, Record):
        _write_record(out, value, depth)
    elif isinstance(value, Mapping):
        _write_table(out, value, depth)
    elif isinstance(value, tuple):
        _write_seq(out, value, depth, "[", "]")
    elif isinstance(value, list):
        _write_seq(out, value, depth, "(", ")")
    elif isinstance(value, (set, frozenset)):
        _write_seq(out, sorted(value, key=sort_key), depth, "(", ")")
    else:
        msg = f"cannot encode value of type {type(value).__name__}"
        raise TypeError(msg)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "#nan"
    if math.isinf(value):
        return "#inf" if value > 0 else "#-inf"
    return repr(value)


def _write_seq(out: TextIO, items: Any, depth: int, open_: str, close: str) -> None:
    out.write(open_)
    for i, item in enumerate(items):
        if i:
            out.write(" ")
        _write(out, item, depth)
    out.write(close)


def _write_record(out: TextIO, record: Record, depth: int) -> None:
    out.write(f"#s(record {record.kind}")
    for name in record.field_names():
        out.write(f" :{name} ")
        _write(out, getattr(record, name, UNBOUND), depth)
    out.write(")")


def _write_table(out: TextIO, mapping: Mapping[Any, Any], depth: int) -> None:
    out.write(_TABLE_HEADER.format(size=len(mapping)))
    pad = _INDENT * (depth + 1)
    for key in sorted(mapping, key=sort_key):
        out.write("\n" + pad)
        _write(out, key, depth + 1)
        out.write(" ")
        _write(out, mapping[key], depth + 1)
    out.write("\n" + _INDENT * depth + "))")


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


def decode_record(text: str, *, source: object = "<string>", family: type[Record] = Record) -> Record:
    """Parse one record; raise CorruptRecord unless it belongs to ``family``."""
    value = _Reader(text, source).read()
    if not isinstance(value, family):
        expected = family.kind or family.__name__
        msg = f"expected a {expected} record, got {type(value).__name__}"
        raise CorruptRecord(source, msg)
    return value


def decode_mapping(text: str, *, source: object = "<string>") -> dict[Any, Any]:
    value = _Reader(text, source).read()
    if not isinstance(value, dict):
        raise CorruptRecord(source, f"expected a hash-table, got {type(value).__name__}")
    return value


def decode_value(text: str, *, source: object = "<string>") -> Any:
    return _Reader(text, source).read()


class _Reader:
    """Recursive-descent parser over a pre-tokenized input."""

    def __init__(self, text: str, source: object) -> None:
        self.source = source
        self.tokens = self._tokenize(text)
        self.pos = 0

    def _fail(self, reason: str) -> CorruptRecord:
        return CorruptRecord(self.source, reason)

    def _tokenize(self, text: str) -> list[tuple[str, str]]:
        tokens: list[tuple[str, str]] = []
        pos = 0
        while pos < len(text):
            m = _TOKEN_RE.match(text, pos)
            if m is None:
                raise self._fail(f"unreadable input at offset {pos}")
            kind = m.lastgroup or ""
            if kind != "ws":
                tokens.append((kind, m.group()))
            pos = m.end()
        return tokens

    def _next(self) -> tuple[str, str]:
        if self.pos >= len(self.tokens):
            raise self._fail("unexpected end of input")
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _expect_atom(self) -> str:
        kind, text = self._next()
        if kind != "atom":
            raise self._fail(f"expected a symbol, got {text!r}")
        return text

    def _expect(self, token: str) -> None:
        _, text = self._next()
        if text != token:
            raise self._fail(f"expected {token!r}, got {text!r}")

    def _at_close(self, closer: str) -> bool:
        tok = self._peek()
        if tok is None:
            raise self._fail(f"missing {closer!r}")
        if tok[0] == "close":
            if tok[1] != closer:
                raise self._fail(f"mismatched {tok[1]!r}, expected {closer!r}")
            self.pos += 1
            return True
        return False

    def read(self) -> Any:
        if not self.tokens:
            raise self._fail("empty input")
        value = self._value()
        if self.pos != len(self.tokens):
            raise self._fail(f"trailing data after value: {self.tokens[self.pos][1]!r}")
        return value

    def _value(self) -> Any:
        kind, text = self._next()
        if kind == "struct":
            return self._struct()
        if kind == "open":
            closer = _CLOSERS[text]
            items = []
            while not self._at_close(closer):
                items.append(self._value())
            return tuple(items) if text == "[" else items
        if kind == "string":
            return _UNESCAPE_RE.sub(lambda m: _UNESCAPES.get(m.group(1), m.group(1)), text[1:-1])
        if kind == "atom":
            return self._atom(text)
        raise self._fail(f"unexpected {text!r}")

    def _atom(self, text: str) -> Any:
        if text in _CONSTANTS:
            return _CONSTANTS[text]
        if _INT_RE.fullmatch(text):
            return int(text)
        if _FLOAT_RE.fullmatch(text):
            return float(text)
        raise self._fail(f"unknown symbol {text!r}")

    def _struct(self) -> Any:
        tag = self._expect_atom()
        if tag == "hash-table":
            return self._table()
        if tag == "record":
            return self._record()
        raise self._fail(f"unknown structure {tag!r}")

    def _table(self) -> dict[Any, Any]:
        while True:
            hint = self._expect_atom()
            if hint == "data":
                break
            value = self._expect_atom()
            if hint == "size" and not _INT_RE.fullmatch(value):
                raise self._fail(f"bad hash-table size {value!r}")
            if hint == "test" and value not in _TABLE_TESTS:
                raise self._fail(f"unsupported hash-table test {value!r}")
        self._expect("(")
        table: dict[Any, Any] = {}
        while not self._at_close(")"):
            key = self._value()
            tok = self._peek()
            if tok is None or tok[0] == "close":
                raise self._fail(f"hash-table key {key!r} has no value")
            try:
                table[key] = self._value()
            except TypeError as exc:
                raise self._fail(f"unhashable hash-table key: {exc}") from exc
        self._expect(")")
        return table

    def _record(self) -> Record:
        kind = self._expect_atom()
        values: dict[str, Any] = {}
        while not self._at_close(")"):
            slot = self._expect_atom()
            if not slot.startswith(":") or len(slot) < 2:
                raise self._fail(f"expected a :field in {kind} record, got {slot!r}")
            values[slot[1:]] = self._value()
        try:
            return build_record(kind, values)
        except (LookupError, TypeError) as exc:
            raise self._fail(str(exc)) from exc
