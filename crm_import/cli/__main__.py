from __future__ import annotations

import argparse
import sys
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, ImportConfig, load_config
from ..db.catalog import PostgresFieldCatalog
from ..db.connection import db_connection
from ..db.importer import PostgresRecordImporter
from ..db.mapping_store import PostgresMappingStore
from ..delimited.reader import EmptyInputError, UploadReadError, read_upload
from ..logging.error_log import ErrorLogBuffer
from ..logging.init import log_summary, setup_logging
from ..services.catalog import CatalogError, StaticFieldCatalog
from ..services.collaborators import FieldCatalog, MappingStore, RecordImporter
from ..services.executor import ImportExecutionError, ImportExecutor
from ..services.field_matcher import FieldMatcher
from ..services.mapping import UnknownColumnError
from ..services.progress import ImportProgressBar
from ..services.session import ImportSession, ImportSessionError
from ..services.summary import render_summary_line

"""CLI entrypoint.

Flow: load config -> read upload -> select module -> seed mapping -> apply
saved/explicit overrides -> print preview -> (unless --dry-run) import ->
SUMMARY line.

Exit codes:
    0  every record imported (or dry run finished)
    2  import finished but some records were rejected
    1  fatal: config, unreadable/empty upload, unknown column, failed import
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


@dataclass
class Collaborators:
    catalog: FieldCatalog
    importer: RecordImporter | None
    mapping_store: MappingStore | None


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env so DATABASE_URL / PG* take priority over the config file."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="CSV -> CRM module bulk importer")
    p.add_argument("file", type=Path, help="CSV file to import (UTF-8, header on line 1)")
    p.add_argument("--module", required=True, help="Target CRM module id")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument(
        "--map", action="append", default=[], metavar="COLUMN=FIELD",
        help="Override a column's target field (repeatable; empty FIELD skips the column)",
    )
    p.add_argument("--skip", action="append", default=[], metavar="COLUMN", help="Skip a column (repeatable)")
    p.add_argument("--use-mapping", metavar="NAME", help="Apply a saved mapping before overrides")
    p.add_argument("--save-mapping", metavar="NAME", help="Save the final mapping under NAME after import")
    p.add_argument("--preview-limit", type=int, default=None, help="Rows to preview (default from config)")
    p.add_argument("--dry-run", action="store_true", help="Show mapping and preview, do not import")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _parse_overrides(pairs: list[str], skips: list[str]) -> list[tuple[str, str | None]]:
    overrides: list[tuple[str, str | None]] = []
    for pair in pairs:
        column, sep, field = pair.rpartition("=")
        if not sep or not column:
            raise ValueError(f"--map expects COLUMN=FIELD, got '{pair}'")
        overrides.append((column, field.strip() or None))
    overrides.extend((column, None) for column in skips)
    return overrides


def _needs_database(cfg: ImportConfig, args: argparse.Namespace) -> bool:
    return (
        cfg.modules is None
        or not args.dry_run
        or bool(args.use_mapping)
    )


@contextmanager
def _connect(cfg: ImportConfig, needed: bool) -> Iterator[Any]:
    if not needed:
        yield None
        return
    with db_connection(cfg.database) as conn:
        yield conn


def _build_collaborators(
    cfg: ImportConfig, conn: Any, error_log: ErrorLogBuffer, file_name: str
) -> Collaborators:
    catalog: FieldCatalog
    if cfg.modules is not None:
        catalog = StaticFieldCatalog(cfg.modules)
    else:
        catalog = PostgresFieldCatalog(conn)
    if conn is None:
        return Collaborators(catalog=catalog, importer=None, mapping_store=None)
    return Collaborators(
        catalog=catalog,
        importer=PostgresRecordImporter(
            conn,
            catalog=catalog,
            duplicate_strategy=cfg.duplicate_strategy,
            error_log=error_log,
            file_name=file_name,
        ),
        mapping_store=PostgresMappingStore(conn),
    )


class _NoImporter:
    """Placeholder for dry runs without a database; never called."""

    def import_records(
        self,
        module_id: str,
        records: Sequence[Mapping[str, str]],
        saved_mapping_name: str | None = None,
    ) -> dict[str, int]:  # pragma: no cover
        raise ImportExecutionError("no database connection (dry run)")


def _log_mapping(logger, session: ImportSession) -> None:
    assert session.mapping is not None
    for entry in session.mapping:
        if entry.is_skipped:
            logger.info(f"MAP '{entry.source_column}' -> (skip)")
        else:
            origin = "auto" if entry.auto_mapped else "manual"
            logger.info(f"MAP '{entry.source_column}' -> {entry.target_field} ({origin})")
    for key, columns in session.mapping.duplicate_targets().items():
        logger.warning(f"field '{key}' is targeted by several columns {columns}; the last one wins")
    for field in session.mapping.missing_required(session.fields):
        logger.warning(f"required field '{field.key}' ({field.label}) is not mapped")


def _run(args: argparse.Namespace, cfg: ImportConfig, logger, error_log: ErrorLogBuffer, text: str) -> int:
    file_name = args.file.name
    try:
        overrides = _parse_overrides(args.map, args.skip)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FATAL

    try:
        with _connect(cfg, _needs_database(cfg, args)) as conn:
            collab = _build_collaborators(cfg, conn, error_log, file_name)
            executor = ImportExecutor(collab.importer or _NoImporter())
            session = ImportSession(
                collab.catalog,
                executor,
                matcher=FieldMatcher(cfg.field_aliases),
                mapping_store=collab.mapping_store,
                preview_limit=cfg.preview_limit,
                error_log=error_log,
            )
            return _drive_session(args, logger, session, text, file_name, overrides)
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL


def _drive_session(
    args: argparse.Namespace,
    logger,
    session: ImportSession,
    text: str,
    file_name: str,
    overrides: list[tuple[str, str | None]],
) -> int:
    try:
        session.select_module(args.module)
    except CatalogError as e:
        logger.error(f"catalog: {e}")
        return EXIT_FATAL

    try:
        session.upload(text, file_name)
    except EmptyInputError as e:
        logger.error(f"upload: {e}")
        return EXIT_FATAL

    try:
        if args.use_mapping:
            session.apply_template(args.use_mapping)
        for column, field in overrides:
            session.set_target(column, field)
    except (UnknownColumnError, ImportSessionError) as e:
        logger.error(f"mapping: {e}")
        return EXIT_FATAL

    _log_mapping(logger, session)
    rows = session.preview(args.preview_limit)
    for number, row in enumerate(rows, start=1):
        logger.info(f"PREVIEW {number}: {row}")

    if args.dry_run:
        logger.info("dry run: nothing imported")
        return EXIT_SUCCESS_ALL

    started = time.monotonic()
    try:
        with ImportProgressBar(session.executor.progress):
            result = session.execute(save_mapping_as=args.save_mapping)
    except (ImportExecutionError, ImportSessionError) as e:
        logger.error(f"import: {e}")
        return EXIT_FATAL
    elapsed = time.monotonic() - started

    summary_line = render_summary_line(args.module, result, elapsed)
    # log_summary が "SUMMARY " を付与するため除去
    log_summary(summary_line[len("SUMMARY "):])
    return EXIT_PARTIAL_FAILURE if result.has_errors else EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: [] が渡された場合に sys.argv を読まない (None のときのみ)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        for h in logger.handlers:
            h.setLevel("DEBUG")
        logger.setLevel("DEBUG")
        logger.debug("debug mode enabled")

    try:
        text = read_upload(args.file)
    except UploadReadError as e:
        logger.error(f"upload: {e}")
        return EXIT_FATAL

    error_log = ErrorLogBuffer(cfg.error_log_dir)
    try:
        return _run(args, cfg, logger, error_log, text)
    finally:
        path = error_log.flush()
        if path is not None:
            logger.info(f"error details written to {path}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
