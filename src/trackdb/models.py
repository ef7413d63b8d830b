"""Record family: dataclass kinds, the UNBOUND sentinel, and the kind registry."""

from __future__ import annotations

import dataclasses
from typing import Any, ClassVar


class _Unbound:
    """A declared field that holds no value at all (distinct from None)."""

    _instance: ClassVar[_Unbound | None] = None

    def __new__(cls) -> _Unbound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNBOUND"

    def __bool__(self) -> bool:
        return False


UNBOUND = _Unbound()

# kind name -> Record subclass
_KINDS: dict[str, type[Record]] = {}


class Record:
    """Base of every storable record kind.

    Subclasses are dataclasses; declaring one registers it under its ``kind``
    (defaults to the class name) so the codec can rebuild it from text:

        @dataclass(frozen=True)
        class Ticket(Record):
            status: str = "open"
            tags: list[str] = field(default_factory=list)
    """

    kind: ClassVar[str] = ""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "kind" not in cls.__dict__:
            cls.kind = cls.__name__
        _KINDS[cls.kind] = cls

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        if not dataclasses.is_dataclass(cls):
            return ()
        return tuple(f.name for f in dataclasses.fields(cls))

    def get(self, name: str) -> Any:
        """Return the field value, or UNBOUND if the field is not declared on this kind."""
        if name not in self.field_names():
            return UNBOUND
        return getattr(self, name, UNBOUND)

    def replace(self, **changes: Any) -> Record:
        return dataclasses.replace(self, **changes)  # type: ignore[type-var]


def kind_for(name: str) -> type[Record] | None:
    return _KINDS.get(name)


def build_record(name: str, values: dict[str, Any]) -> Record:
    """Instantiate a registered kind from decoded field values.

    Declared fields missing from ``values`` become UNBOUND. Raises LookupError
    for an unknown kind and TypeError for undeclared fields.
    """
    cls = _KINDS.get(name)
    if cls is None or not dataclasses.is_dataclass(cls):
        msg = f"unknown record kind: {name}"
        raise LookupError(msg)
    declared = cls.field_names()
    extra = sorted(set(values) - set(declared))
    if extra:
        msg = f"{name} has no field(s): {', '.join(extra)}"
        raise TypeError(msg)
    init_args: dict[str, Any] = {}
    late: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        value = values.get(f.name, UNBOUND)
        if f.init:
            init_args[f.name] = value
        else:
            late[f.name] = value
    rec = cls(**init_args)
    for name_, value in late.items():
        object.__setattr__(rec, name_, value)
    return rec
