from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from ..config.loader import ConfigError, load_config
from ..db.batch_insert import StorageError
from ..db.repository import TransactionRepository
from ..excel.reader import WorkbookError
from ..logging.init import get_logger, log_summary, setup_logging
from ..models.config_models import IngestConfig
from ..normalize.dates import normalize_date_input
from ..services.aggregation import summarize, tenant_exists
from ..services.orchestrator import ProcessingError, parse_workbook, process_files
from ..services.summary import render_summary_line, source_summary, summarize_parsed

"""CLI entrypoint.

Subcommands:
- import FILE... [--clear-existing]: import workbooks (directories are scanned)
- summarize TENANT_ID DATE: print a DailySummary as JSON
- inspect FILE: show how a workbook would be parsed, without a database
- init-db: apply the storage schema

Exit codes: 0 all good, 2 some files failed, 1 fatal (config, database, input).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _dsn(cfg: IngestConfig) -> str:
    """Resolve connection settings.

    Precedence: ``.env`` (loaded with override in main) and the process
    environment, ``DATABASE_URL`` / ``PGDSN`` as a full DSN, then individual
    ``PG*`` variables, then the config ``database`` section.
    """
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: IngestConfig) -> Iterator[Any]:  # pragma: no cover (needs a live database)
    """Yield a cursor on a non-autocommit connection; closed on exit.

    Transaction boundaries belong to the caller (per file for imports).
    """
    conn = psycopg2.connect(_dsn(cfg))
    conn.autocommit = False
    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="weighbridge", description="Weighbridge spreadsheet ingest")
    p.add_argument("--config", type=Path, default=None, help="YAML config (default: config/ingest.yml)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import workbooks")
    imp.add_argument("files", nargs="+", type=Path, help="Workbook files or directories")
    imp.add_argument(
        "--clear-existing", action="store_true", help="Delete stored rows in each workbook's date range first"
    )

    summ = sub.add_parser("summarize", help="Print the daily summary of a tenant as JSON")
    summ.add_argument("tenant_id")
    summ.add_argument("date", help="Business date, Gregorian or Buddhist Era")

    insp = sub.add_parser("inspect", help="Show how a workbook is parsed (no database)")
    insp.add_argument("file", type=Path)
    insp.add_argument("--rows", type=int, default=5, help="Sample rows to print")

    sub.add_parser("init-db", help="Create tables and indexes")
    return p.parse_args(argv)


def _inspect(cfg: IngestConfig, path: Path, sample: int) -> int:
    logger = get_logger()
    try:
        parsed = parse_workbook(path.read_bytes(), cfg, path.name)
    except (WorkbookError, OSError) as e:
        logger.error(f"inspect: {e}")
        return EXIT_FATAL
    print(f"FILE: {path.name}")
    print(f"  sheet={parsed.sheet!r} header_row={parsed.header_index + 1 if parsed.header_index >= 0 else None}")
    print(f"  columns={ {k: v for k, v in parsed.columns.items() if v} }")
    print(f"  rows={len(parsed.rows)} dropped={parsed.dropped} mix_references={len(parsed.mix_index)}")
    print(f"  date_range={parsed.date_range.min_date}..{parsed.date_range.max_date}")
    totals = summarize_parsed(parsed.rows)
    print(f"  in={totals.total_in}t out={totals.total_out}t")
    for src in source_summary(parsed.rows):
        print(f"  source={src.alias} rows={src.rows} tons={src.tons}")
    for row in parsed.rows[:sample]:
        print(f"    {row.row_number}: {row.date_str} {row.type} {row.product!r} {row.quantity_tons}t code={row.project_code}")
    for err in parsed.errors[:sample]:
        print(f"    ! row={err.row} {err.error_type}: {err.message}")
    return EXIT_SUCCESS_ALL


def _import(cfg: IngestConfig, files: list[Path], clear_existing: bool) -> int:
    logger = get_logger()
    try:
        with _db_connection(cfg) as cur:
            result = process_files(files, cur, cfg, clear_existing=clear_existing)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL

    log_summary(render_summary_line(result).removeprefix("SUMMARY "))
    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _summarize(cfg: IngestConfig, tenant_id: str, date_input: str) -> int:
    logger = get_logger()
    try:
        normalize_date_input(date_input)
    except ValueError as e:
        logger.error(f"summarize: {e}")
        return EXIT_FATAL
    try:
        with _db_connection(cfg) as cur:
            repository = TransactionRepository(cur, page_size=cfg.page_size)
            if not tenant_exists(repository, tenant_id):
                logger.error(f"summarize: tenant not found: {tenant_id}")
                return EXIT_FATAL
            summary = summarize(repository, tenant_id, date_input)
    except (psycopg2.Error, StorageError) as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    return EXIT_SUCCESS_ALL


def _init_db(cfg: IngestConfig) -> int:
    logger = get_logger()
    try:
        with _db_connection(cfg) as cur:
            TransactionRepository(cur).apply_schema()
    except (psycopg2.Error, StorageError) as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    logger.info("schema applied")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # argv=None reads sys.argv; an explicit [] must not fall back to it
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "inspect":
        return _inspect(cfg, args.file, args.rows)
    if args.command == "import":
        return _import(cfg, args.files, args.clear_existing)
    if args.command == "summarize":
        return _summarize(cfg, args.tenant_id, args.date)
    return _init_db(cfg)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
