from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db.batch_insert import StorageError
from ..db.repository import TransactionRepository
from ..excel.headers import MissingColumnsError, find_header_row, records_from_rows, resolve_columns
from ..excel.reader import WorkbookError, read_workbook, select_sheets
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import IngestConfig
from ..models.error_record import (
    DATE_COLUMN_NOT_FOUND,
    HEADER_NOT_FOUND,
    SHEET_NOT_FOUND,
    STORAGE_ERROR,
    WORKBOOK_READ_ERROR,
    ErrorRecord,
)
from ..models.processing_result import BatchStatsAccumulator, FileStat, ProcessingResult, WorkbookImportResult
from ..models.transaction import DateRange, NormalizedTransactionRow
from ..normalize.mix_reference import MixReferenceIndex, build_mix_reference
from ..normalize.rows import RowRejected, cell_text, normalize_row
from .importer import TenantResolver, bind_mix_references, import_rows
from .progress import ProgressTracker
from .summary import source_summary, summarize_parsed

"""Workbook import orchestration.

parse_workbook: bytes -> ParsedWorkbook (no database access)
import_workbook: parse + optional clear of the affected date range + import
process_files: CLI driver; one database transaction per file, a failed file
is rolled back and the run continues with the next one
"""

__all__ = [
    "ProcessingError",
    "ParsedWorkbook",
    "parse_workbook",
    "import_workbook",
    "scan_files",
    "process_files",
]

logger = logging.getLogger(__name__)

WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}
FILE_LEVEL = "<FILE_LEVEL>"


class ProcessingError(Exception):
    """Fatal error that stops a CLI run (nothing to process)."""


@dataclass(frozen=True)
class ParsedWorkbook:
    rows: list[NormalizedTransactionRow] = field(default_factory=list)
    mix_index: MixReferenceIndex = field(default_factory=MixReferenceIndex)
    date_range: DateRange = field(default_factory=DateRange)
    dropped: int = 0
    errors: list[ErrorRecord] = field(default_factory=list)
    sheet: str | None = None
    header_index: int = -1
    columns: dict[str, str | None] = field(default_factory=dict)

    @property
    def alias_keys(self) -> set[str]:
        return {r.alias_key for r in self.rows}


def _single_value(values: Iterable[str]) -> str | None:
    distinct = {v for v in values if v}
    return distinct.pop() if len(distinct) == 1 else None


def parse_workbook(data: bytes, config: IngestConfig | None = None, file_name: str = "<workbook>") -> ParsedWorkbook:
    """Parse a workbook byte buffer into normalized rows.

    Raises WorkbookError when the bytes are not a readable spreadsheet.
    Missing sheet / header row / date column give an empty result with one
    sheet-level ErrorRecord; bad rows are dropped with a row-level record.
    """
    cfg = config or IngestConfig()
    vocab = cfg.vocabulary
    sheets = read_workbook(data)
    selection = select_sheets(sheets)
    mix_rows = sheets[selection.mix] if selection.mix else []

    def fail(sheet: str, error_type: str, message: str) -> ParsedWorkbook:
        logger.warning(f"{file_name}: {message}")
        return ParsedWorkbook(
            mix_index=build_mix_reference(mix_rows, vocab),
            errors=[ErrorRecord.create(file_name, sheet, -1, error_type, message)],
            sheet=selection.transactions,
        )

    if selection.transactions is None:
        return fail(FILE_LEVEL, SHEET_NOT_FOUND, f"no transaction sheet among {list(sheets)}")
    sheet_name = selection.transactions
    raw_rows = sheets[sheet_name]

    header_index = find_header_row(raw_rows, vocab)
    if header_index < 0:
        return fail(sheet_name, HEADER_NOT_FOUND, f"no header row in the first {vocab.scan_rows} rows")
    sheet = records_from_rows(raw_rows, header_index)
    try:
        columns = resolve_columns(sheet.headers, [r for _, r in sheet.records], vocab, cfg.date_guess)
    except MissingColumnsError as e:
        return fail(sheet_name, DATE_COLUMN_NOT_FOUND, str(e))
    logger.debug(f"{file_name}: sheet={sheet_name!r} header_row={header_index + 1} columns={columns}")

    def values_of(name: str) -> list[str]:
        col = columns.get(name)
        return [cell_text(r.get(col)) for _, r in sheet.records] if col else []

    mix_index = build_mix_reference(
        mix_rows,
        vocab,
        fallback_alias_id=_single_value(values_of("alias_id")),
        fallback_alias_name=_single_value(values_of("alias_name")),
    )

    rows: list[NormalizedTransactionRow] = []
    errors: list[ErrorRecord] = []
    date_range = DateRange()
    for row_number, record in sheet.records:
        try:
            row = normalize_row(record, columns, mix_index, row_number, vocab.type_tokens)
        except RowRejected as e:
            errors.append(ErrorRecord.create(file_name, sheet_name, row_number, e.error_type, str(e)))
            continue
        rows.append(row)
        date_range = date_range.extend(row.date_str)

    if errors:
        logger.info(f"{file_name}: dropped {len(errors)} row(s), see error log")
    return ParsedWorkbook(
        rows=rows,
        mix_index=mix_index,
        date_range=date_range,
        dropped=len(errors),
        errors=errors,
        sheet=sheet_name,
        header_index=header_index,
        columns=columns,
    )


def import_workbook(
    data: bytes,
    repository: Any,
    clear_existing: bool = False,
    config: IngestConfig | None = None,
    error_log: ErrorLogBuffer | None = None,
    file_name: str = "<workbook>",
) -> WorkbookImportResult:
    """Import one workbook; safe to repeat with the same bytes.

    With ``clear_existing`` the stored rows of the workbook's aliases within
    its date range are deleted first, so a corrected re-export replaces them.
    """
    parsed = parse_workbook(data, config, file_name)
    if error_log is not None:
        error_log.extend(parsed.errors)
    if not parsed.rows and not len(parsed.mix_index):
        return WorkbookImportResult(inserted=0, skipped=0, date_range=parsed.date_range, dropped=parsed.dropped)

    resolver = TenantResolver(repository.load_tenants())
    cleared = 0
    if clear_existing and parsed.rows:
        cleared = repository.delete_range(
            parsed.alias_keys, parsed.date_range.min_date, parsed.date_range.max_date
        )
        logger.info(
            f"{file_name}: cleared {cleared} row(s) in "
            f"{parsed.date_range.min_date}..{parsed.date_range.max_date}"
        )

    result = import_rows(parsed.rows, repository, resolver)
    mix_count = 0
    if len(parsed.mix_index):
        mix_count = repository.upsert_mix_references(bind_mix_references(parsed.mix_index.entries, resolver))

    totals = summarize_parsed(parsed.rows)
    logger.info(
        f"{file_name}: inserted={result.inserted} skipped={result.skipped} dropped={parsed.dropped} "
        f"in={totals.total_in}t out={totals.total_out}t"
    )
    for src in source_summary(parsed.rows):
        logger.debug(f"{file_name}: source={src.alias} rows={src.rows} tons={src.tons}")

    return WorkbookImportResult(
        inserted=result.inserted,
        skipped=result.skipped,
        date_range=parsed.date_range,
        cleared=cleared,
        dropped=parsed.dropped,
        mix_references=mix_count,
    )


def scan_files(paths: Sequence[Path]) -> list[Path]:
    """Expand directories (non-recursive) into workbook files, sorted by name."""
    files: list[Path] = []
    for p in paths:
        if p.is_dir():
            files.extend(sorted(f for f in p.iterdir() if f.is_file() and f.suffix.lower() in WORKBOOK_SUFFIXES))
        elif p.exists():
            files.append(p)
        else:
            raise ProcessingError(f"file not found: {p}")
    return files


def _rollback(cursor: Any) -> None:
    try:
        cursor.connection.rollback()
    except Exception as e:  # keep reporting the original error
        logger.warning(f"rollback failed: {e}")


def _process_single_file(
    path: Path,
    cursor: Any,
    config: IngestConfig,
    clear_existing: bool,
    error_log: ErrorLogBuffer,
) -> FileStat:
    """Import one file inside its own transaction; failures roll back."""
    start = datetime.now(UTC)
    batches = BatchStatsAccumulator()
    repository = TransactionRepository(
        cursor,
        page_size=config.page_size,
        metrics_callback=lambda m: batches.add_batch_time(m.elapsed_seconds),
    )

    def failed(error_type: str, e: Exception) -> FileStat:
        _rollback(cursor)
        error_log.append(ErrorRecord.create(path.name, FILE_LEVEL, -1, error_type, str(e)))
        logger.error(f"{path.name}: {e}")
        return FileStat(
            file_name=path.name,
            status="failed",
            inserted_rows=0,
            skipped_rows=0,
            dropped_rows=0,
            elapsed_seconds=(datetime.now(UTC) - start).total_seconds(),
            error=str(e),
        )

    try:
        result = import_workbook(
            path.read_bytes(),
            repository,
            clear_existing=clear_existing,
            config=config,
            error_log=error_log,
            file_name=path.name,
        )
        cursor.connection.commit()
    except (WorkbookError, OSError) as e:
        return failed(WORKBOOK_READ_ERROR, e)
    except StorageError as e:
        return failed(STORAGE_ERROR, e)

    total_batches, avg_batch, p95_batch = batches.get_stats()
    return FileStat(
        file_name=path.name,
        status="success",
        inserted_rows=result.inserted,
        skipped_rows=result.skipped,
        dropped_rows=result.dropped,
        elapsed_seconds=(datetime.now(UTC) - start).total_seconds(),
        total_batches=total_batches,
        avg_batch_seconds=avg_batch,
        p95_batch_seconds=p95_batch,
    )


def process_files(
    paths: Sequence[Path],
    cursor: Any,
    config: IngestConfig | None = None,
    clear_existing: bool = False,
    error_log: ErrorLogBuffer | None = None,
) -> ProcessingResult:
    """Import every workbook in ``paths`` and aggregate the results.

    Raises:
        ProcessingError: a path does not exist
    """
    cfg = config or IngestConfig()
    log = error_log if error_log is not None else ErrorLogBuffer()
    start_time = datetime.now(UTC)
    files = scan_files(paths)

    file_stats: list[FileStat] = []
    with ProgressTracker(len(files)) as progress:
        for path in files:
            progress.start_file(path)
            stat = _process_single_file(path, cursor, cfg, clear_existing, log)
            file_stats.append(stat)
            progress.set_postfix(
                ok=sum(1 for s in file_stats if s.status == "success"),
                rows=sum(s.inserted_rows for s in file_stats),
            )
            progress.finish_file(success=stat.status == "success")
            # flushed per file
            path_written = log.flush()
            if path_written is not None and stat.dropped_rows:
                logger.debug(f"error log: {path_written}")

    end_time = datetime.now(UTC)
    success = [s for s in file_stats if s.status == "success"]
    return ProcessingResult(
        success_files=len(success),
        failed_files=len(file_stats) - len(success),
        total_inserted_rows=sum(s.inserted_rows for s in success),
        total_skipped_rows=sum(s.skipped_rows for s in success),
        total_dropped_rows=sum(s.dropped_rows for s in success),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        file_stats=file_stats,
    )
