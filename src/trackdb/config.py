"""DBConfig: project-local configuration for a trackdb database.

Default layout (all relative to the directory holding trackdb.toml):

    trackdb.toml          # config (git-tracked)
    objects/              # one file per record, named by key
    objects.db            # bulk record file
    tracker.db            # bulk index file

trackdb.toml example:

    [database]
    record_class = "myapp.models:Ticket"
    objects_dir = "objects"        # "" disables per-record files
    objects_file = "objects.db"    # "" disables the bulk record file
    tracker_file = "tracker.db"    # "" disables the bulk index file
    object_file_regexp = "^[^.]"
    tracked_fields = ["status", "tags"]
    atomic_fields = ["status"]
    write_through = true

    [database.sort]
    status = "myapp.models:compare_keys"
"""

from __future__ import annotations

import importlib
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from trackdb.models import Record
from trackdb.persist import DEFAULT_FILE_REGEXP
from trackdb.store import Database

_CONFIG_FILENAME = "trackdb.toml"
_DEFAULT_OBJECTS_DIR = "objects"
_DEFAULT_OBJECTS_FILE = "objects.db"
_DEFAULT_TRACKER_FILE = "tracker.db"


def import_object(ref: str) -> Any:
    """Resolve a "package.module:attr" reference."""
    module_name, _, attr = ref.partition(":")
    if not module_name or not attr:
        msg = f"expected 'module:attribute', got {ref!r}"
        raise ValueError(msg)
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        msg = f"{module_name} has no attribute {attr!r}"
        raise ValueError(msg) from exc


@dataclass
class DBConfig:
    """Resolved configuration for one database."""

    root: Path                      # directory that contains trackdb.toml
    record_class: str = "trackdb.models:Record"
    objects_dir: Path | None = None
    objects_file: Path | None = None
    tracker_file: Path | None = None
    object_file_regexp: str = DEFAULT_FILE_REGEXP
    tracked_fields: list[str] = field(default_factory=list)
    atomic_fields: list[str] = field(default_factory=list)
    sort: dict[str, str] = field(default_factory=dict)
    write_through: bool = True

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    def validate(self) -> None:
        tracked = set(self.tracked_fields)
        stray = sorted((set(self.atomic_fields) | set(self.sort)) - tracked)
        if stray:
            msg = f"atomic/sort fields are not tracked: {', '.join(stray)}"
            raise ValueError(msg)

    def database_class(self) -> type[Database]:
        """A Database subclass carrying this config's store-wide settings."""
        record_class = import_object(self.record_class)
        if not (isinstance(record_class, type) and issubclass(record_class, Record)):
            msg = f"{self.record_class} is not a Record subclass"
            raise ValueError(msg)
        attrs = {
            "record_class": record_class,
            "tracked_fields": tuple(self.tracked_fields),
            "atomic_fields": frozenset(self.atomic_fields),
            "sort_fns": {name: import_object(ref) for name, ref in self.sort.items()},
        }
        return type(f"{record_class.__name__}Database", (Database,), attrs)

    def open(self, *, load: bool = True, strict: bool = True) -> Database:
        db = self.database_class()(
            objects_dir=self.objects_dir,
            objects_file=self.objects_file,
            tracker_file=self.tracker_file,
            object_file_regexp=self.object_file_regexp,
            write_through=self.write_through,
        )
        if load:
            db.load(strict=strict)
        return db


def _path_option(root: Path, section: dict[str, Any], key: str, default: str) -> Path | None:
    value = section.get(key, default)
    return root / value if value else None


def load_config(root: Path | str | None = None) -> DBConfig:
    """Load trackdb.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    db_section = raw.get("database", {})
    cfg = DBConfig(
        root=root_path,
        record_class=db_section.get("record_class", "trackdb.models:Record"),
        objects_dir=_path_option(root_path, db_section, "objects_dir", _DEFAULT_OBJECTS_DIR),
        objects_file=_path_option(root_path, db_section, "objects_file", _DEFAULT_OBJECTS_FILE),
        tracker_file=_path_option(root_path, db_section, "tracker_file", _DEFAULT_TRACKER_FILE),
        object_file_regexp=db_section.get("object_file_regexp", DEFAULT_FILE_REGEXP),
        tracked_fields=list(db_section.get("tracked_fields", [])),
        atomic_fields=list(db_section.get("atomic_fields", [])),
        sort=dict(db_section.get("sort", {})),
        write_through=bool(db_section.get("write_through", True)),
    )
    cfg.validate()
    return cfg


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for trackdb.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, record_class: str, tracked_fields: list[str] | None = None) -> Path:
    """Write a default trackdb.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"trackdb.toml already exists at {config_path}"
        raise FileExistsError(msg)

    fields = ", ".join(f'"{name}"' for name in tracked_fields or [])
    content = f"""\
[database]
record_class = "{record_class}"
# objects_dir = "objects"        # default; "" disables per-record files
# objects_file = "objects.db"    # default; "" disables the bulk record file
# tracker_file = "tracker.db"    # default; "" disables the bulk index file
# object_file_regexp = "^[^.]"   # which files in objects_dir are records
tracked_fields = [{fields}]
atomic_fields = []
# write_through = true           # persist on every insert/delete

# [database.sort]
# status = "myapp.models:compare_keys"   # cmp(a, b) -> int over primary keys
"""
    config_path.write_text(content)
    return config_path
