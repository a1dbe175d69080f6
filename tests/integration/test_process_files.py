from __future__ import annotations

import json

import pytest

import weighbridge.services.orchestrator as orchestrator
from weighbridge.db.batch_insert import StorageError
from weighbridge.logging.error_log import ErrorLogBuffer
from weighbridge.services.orchestrator import ProcessingError, process_files, scan_files


@pytest.fixture()
def use_repository(monkeypatch, repository):
    monkeypatch.setattr(orchestrator, "TransactionRepository", lambda cur, **kw: repository)
    return repository


def test_each_file_commits_separately(temp_workdir, stone_workbook, march_workbook, dummy_cursor, use_repository):
    (temp_workdir / "data" / "a.xlsx").write_bytes(stone_workbook)
    (temp_workdir / "data" / "b.xlsx").write_bytes(march_workbook)

    result = process_files([temp_workdir / "data"], dummy_cursor)

    assert (result.success_files, result.failed_files) == (2, 0)
    # march "5000 KG Stone" on 15 March hashes like the stone workbook's 5 t row
    assert (result.total_inserted_rows, result.total_skipped_rows) == (6, 1)
    assert result.total_dropped_rows == 2
    assert dummy_cursor.connection.commits == 2
    assert [s.file_name for s in result.file_stats] == ["a.xlsx", "b.xlsx"]


def test_partial_failure_rolls_back_and_continues(temp_workdir, stone_workbook, dummy_cursor, use_repository):
    bad = temp_workdir / "data" / "a_bad.xlsx"
    good = temp_workdir / "data" / "b_good.xlsx"
    bad.write_bytes(b"PK\x03\x04 truncated")
    good.write_bytes(stone_workbook)
    log = ErrorLogBuffer()

    result = process_files([bad, good], dummy_cursor, error_log=log)

    assert (result.success_files, result.failed_files) == (1, 1)
    assert result.total_inserted_rows == 3
    assert dummy_cursor.connection.rollbacks == 1
    assert dummy_cursor.connection.commits == 1
    failed = result.file_stats[0]
    assert failed.status == "failed" and "cannot open workbook" in failed.error

    records = [json.loads(line) for line in log.file_path.read_text(encoding="utf-8").splitlines()]
    assert [r["error_type"] for r in records] == ["WORKBOOK_READ_ERROR", "DATE_PARSE_ERROR"]
    assert records[0]["row"] == -1


def test_storage_error_rolls_back_the_file(temp_workdir, stone_workbook, dummy_cursor, use_repository, monkeypatch):
    def fail(rows):
        raise StorageError("deadlock detected")

    monkeypatch.setattr(use_repository, "insert_transactions", fail)
    wb = temp_workdir / "data" / "a.xlsx"
    wb.write_bytes(stone_workbook)
    log = ErrorLogBuffer()

    result = process_files([wb], dummy_cursor, error_log=log)

    assert result.failed_files == 1
    assert result.total_dropped_rows == 0
    assert dummy_cursor.connection.rollbacks == 1
    assert dummy_cursor.connection.commits == 0
    types = [json.loads(line)["error_type"] for line in log.file_path.read_text(encoding="utf-8").splitlines()]
    assert "STORAGE_ERROR" in types


def test_scan_files_filters_and_sorts(temp_workdir):
    for name in ("b.xlsx", "a.XLSX", "c.csv", "d.xls"):
        (temp_workdir / "data" / name).write_bytes(b"")
    assert [p.name for p in scan_files([temp_workdir / "data"])] == ["a.XLSX", "b.xlsx"]


def test_missing_path_is_fatal(temp_workdir, dummy_cursor):
    with pytest.raises(ProcessingError):
        process_files([temp_workdir / "nope.xlsx"], dummy_cursor)


def test_empty_directory_yields_empty_result(temp_workdir, dummy_cursor):
    result = process_files([temp_workdir / "data"], dummy_cursor)
    assert result.total_files == 0
    assert dummy_cursor.connection.commits == 0
