from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from weighbridge.logging.error_log import ErrorLogBuffer
from weighbridge.models.error_record import DATE_PARSE_ERROR, ErrorRecord
from weighbridge.services.orchestrator import import_workbook

"""Error log JSON Lines contract."""

SCHEMA_PATH = Path(__file__).with_name("schemas") / "error_log_schema.json"


@pytest.fixture(scope="module")
def schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_error_log_schema_valid_example(schema):
    record = {
        "timestamp": "2025-03-15T10:12:33.120000Z",
        "file": "march.xlsx",
        "sheet": "ALL DATA",
        "row": 6,
        "error_type": "DATE_PARSE_ERROR",
        "message": "unparseable date: 'not a date'",
    }
    jsonschema.validate(record, schema)


def test_error_log_schema_rejects_extra_key(schema):
    record = {
        "timestamp": "2025-03-15T10:12:33Z",
        "file": "march.xlsx",
        "sheet": "ALL DATA",
        "row": 6,
        "error_type": "DATE_PARSE_ERROR",
        "message": "x",
        "extra": "not allowed",
    }
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate(record, schema)


def test_created_records_conform(schema):
    jsonschema.validate(json.loads(ErrorRecord.create("f.xlsx", "S", 3, DATE_PARSE_ERROR, "m").to_json_line()), schema)


def test_import_writes_conforming_lines(temp_workdir, stone_workbook, repository, schema):
    log = ErrorLogBuffer()
    import_workbook(stone_workbook, repository, error_log=log, file_name="march.xlsx")
    path = log.flush()
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    obj = json.loads(lines[0])
    jsonschema.validate(obj, schema)
    assert (obj["file"], obj["sheet"], obj["row"], obj["error_type"]) == ("march.xlsx", "ALL DATA", 6, DATE_PARSE_ERROR)


def test_sheet_level_record_uses_row_minus_one(temp_workdir, make_workbook, repository, schema):
    data = make_workbook({"ALL DATA": [["just", "some", "text"], ["no", "header", "here"]]})
    log = ErrorLogBuffer()
    import_workbook(data, repository, error_log=log, file_name="odd.xlsx")
    obj = json.loads(log.flush().read_text(encoding="utf-8").splitlines()[0])
    jsonschema.validate(obj, schema)
    assert obj["row"] == -1
    assert obj["error_type"] == "HEADER_NOT_FOUND"
