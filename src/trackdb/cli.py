"""trackdb CLI — operator commands over a configured database.

Commands:
    trackdb init RECORD_CLASS [FIELD...]   write trackdb.toml
    trackdb reindex                        rebuild indexes and rewrite bulk files
    trackdb get KEY                        print one record
    trackdb find FIELD VALUE               keys whose FIELD holds VALUE
    trackdb values FIELD                   distinct indexed values of FIELD
    trackdb delete KEY...                  delete records
    trackdb stats                          record and index counts
    trackdb check                          verify index/record consistency

VALUE arguments are read in record syntax when they parse ("open" or 3),
otherwise taken as plain strings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from trackdb.codec import decode_value, encode_record, encode_value
from trackdb.config import DBConfig, init_config, load_config
from trackdb.errors import CorruptRecord, TrackDBError

if TYPE_CHECKING:
    from trackdb.store import Database

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(ctx: click.Context) -> DBConfig:
    try:
        return load_config(ctx.obj.get("root"))
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _open_db(ctx: click.Context, *, strict: bool = True) -> Database:
    cfg = _load_cfg(ctx)
    try:
        return cfg.open(strict=strict)
    except (TrackDBError, ValueError, ImportError) as exc:
        raise click.ClickException(str(exc)) from exc


def _parse_value(text: str) -> Any:
    try:
        return decode_value(text)
    except CorruptRecord:
        return text


def _resolve_key(db: Database, text: str) -> Any:
    """Keys from per-record files are strings; bulk files may hold typed keys."""
    if text in db:
        return text
    return _parse_value(text)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="trackdb")
@click.option("--root", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Directory holding trackdb.toml (default: search upward from cwd)")
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr")
@click.pass_context
def cli(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """trackdb — record store with tracked-field indexes."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["root"] = root


@cli.command()
@click.argument("record_class")
@click.argument("fields", nargs=-1)
@click.pass_context
def init(ctx: click.Context, record_class: str, fields: tuple[str, ...]) -> None:
    """Write trackdb.toml for RECORD_CLASS ("module:Class") tracking FIELDS."""
    root_path = (ctx.obj.get("root") or Path()).resolve()
    try:
        config_path = init_config(root_path, record_class, list(fields))
    except FileExistsError:
        click.echo("trackdb.toml already exists — skipping init")
        return
    click.echo(f"Created {config_path}")


# ---------------------------------------------------------------------------
# trackdb reindex
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--from-files", is_flag=True, help="Load records from per-record files even if a bulk file exists")
@click.pass_context
def reindex(ctx: click.Context, from_files: bool) -> None:
    """Rebuild all indexes from the stored records and persist them."""
    cfg = _load_cfg(ctx)
    try:
        db = cfg.open(load=False)
        db.load(restore_from_files=from_files)
        n = db.reindex(progress=lambda done, total: click.echo(f"  {done}/{total}"))
    except (TrackDBError, ValueError, ImportError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Indexed {n} records")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("key")
@click.pass_context
def get(ctx: click.Context, key: str) -> None:
    """Print the record stored under KEY."""
    db = _open_db(ctx)
    record = db.lookup(_resolve_key(db, key))
    if record is None:
        raise click.ClickException(f"no record under key {key!r}")
    click.echo(encode_record(record))


@cli.command()
@click.argument("field")
@click.argument("value")
@click.pass_context
def find(ctx: click.Context, field: str, value: str) -> None:
    """List keys whose FIELD holds VALUE."""
    db = _open_db(ctx)
    for key in db.lookup_value(field, _parse_value(value)):
        click.echo(str(key))


@cli.command("values")
@click.argument("field")
@click.pass_context
def values_cmd(ctx: click.Context, field: str) -> None:
    """List distinct indexed values of FIELD with their record counts."""
    db = _open_db(ctx)
    for value in db.tracked_values(field):
        click.echo(f"{encode_value(value)}\t{len(db.lookup_value(field, value))}")


@cli.command()
@click.argument("keys", nargs=-1, required=True)
@click.option("--must-exist", is_flag=True, help="Fail on the first key that is not stored")
@click.pass_context
def delete(ctx: click.Context, keys: tuple[str, ...], must_exist: bool) -> None:
    """Delete the records stored under KEYS."""
    db = _open_db(ctx)
    try:
        done = db.delete([_resolve_key(db, k) for k in keys], assert_exists=must_exist)
    except TrackDBError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        db.write_tracker_file()
    click.echo(f"Deleted {len(done)} record(s)")


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show record and index counts."""
    db = _open_db(ctx, strict=False)
    click.echo(f"Records : {len(db)}")
    for field in db.tracked_fields:
        click.echo(f"  {field:<16} {len(db.tracked_values(field))} values")
    if db.load_errors:
        click.echo(f"Corrupt : {len(db.load_errors)} file(s) skipped", err=True)


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Verify that every index entry matches its record and vice versa."""
    db = _open_db(ctx)
    problems = db.check()
    for problem in problems:
        click.echo(problem)
    if problems:
        click.echo(f"{len(problems)} problem(s); run `trackdb reindex` to rebuild", err=True)
        raise SystemExit(1)
    click.echo(f"OK: {len(db)} records consistent with index")
