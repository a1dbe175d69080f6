from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the ingest error log.

Rows and sheets that the pipeline recovers from locally (unparseable date,
non-positive quantity, missing header row) are not raised; they are recorded
here and written as JSON Lines. ``row=-1`` marks sheet / file level records.
"""

__all__ = [
    "ErrorRecord",
    "SHEET_NOT_FOUND",
    "HEADER_NOT_FOUND",
    "DATE_COLUMN_NOT_FOUND",
    "DATE_PARSE_ERROR",
    "NON_POSITIVE_QUANTITY",
    "WORKBOOK_READ_ERROR",
    "STORAGE_ERROR",
]

SHEET_NOT_FOUND = "SHEET_NOT_FOUND"
HEADER_NOT_FOUND = "HEADER_NOT_FOUND"
DATE_COLUMN_NOT_FOUND = "DATE_COLUMN_NOT_FOUND"
DATE_PARSE_ERROR = "DATE_PARSE_ERROR"
NON_POSITIVE_QUANTITY = "NON_POSITIVE_QUANTITY"
WORKBOOK_READ_ERROR = "WORKBOOK_READ_ERROR"
STORAGE_ERROR = "STORAGE_ERROR"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: workbook name being processed
        sheet: sheet name within the workbook
        row: 1-based sheet row. Use -1 for sheet/file level records
        error_type: classification in UPPER_SNAKE_CASE
        message: human readable description
    """
    timestamp: str
    file: str
    sheet: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)
