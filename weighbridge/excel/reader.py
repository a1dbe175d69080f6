from __future__ import annotations

import io
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd

"""Workbook loader for weighbridge exports.

Sheets are read raw (no header inference) into row lists so that the header
resolver can locate the header row itself; exports routinely carry title
blocks, logos and filter summaries above the real table.

Sheet selection:
- mix/reference sheet: first sheet whose name contains "mix"
- transactions sheet: first sheet named like "ALL DATA"/"all_data", else the
  non-mix sheet with the most non-empty rows
"""

__all__ = [
    "WorkbookError",
    "SheetSelection",
    "read_workbook",
    "count_non_empty_rows",
    "select_sheets",
    "is_blank",
]

_MIX_SHEET = re.compile(r"mix", re.IGNORECASE)
_ALL_SHEET = re.compile(r"all[_\s]?data", re.IGNORECASE)

SheetRows = list[list[Any]]


class WorkbookError(Exception):
    """Raised when the byte stream cannot be opened as a spreadsheet."""


@dataclass(frozen=True)
class SheetSelection:
    transactions: str | None
    mix: str | None


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and value.strip() == ""


def _clean_cell(value: Any) -> Any:
    return "" if is_blank(value) else value


def read_workbook(source: bytes | Path) -> dict[str, SheetRows]:
    """Read every sheet of a workbook into raw row lists keyed by sheet name.

    Empty cells become ``""``; other values keep the type openpyxl gives them
    (numbers stay numbers, date-formatted cells arrive as datetimes).
    """
    handle: Any = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
    try:
        xls = pd.ExcelFile(handle, engine="openpyxl")
    except Exception as e:  # pandas raises ValueError / zipfile / openpyxl errors here
        raise WorkbookError(f"cannot open workbook: {e}") from e

    sheets: dict[str, SheetRows] = {}
    with xls:
        for name in xls.sheet_names:
            df = xls.parse(name, header=None, dtype=object, keep_default_na=False)
            sheets[str(name)] = [[_clean_cell(v) for v in row] for row in df.itertuples(index=False, name=None)]
    return sheets


def count_non_empty_rows(rows: SheetRows) -> int:
    return sum(1 for row in rows if any(not is_blank(v) for v in row))


def select_sheets(sheets: dict[str, SheetRows]) -> SheetSelection:
    names = list(sheets.keys())
    mix = next((n for n in names if _MIX_SHEET.search(n)), None)
    transactions = next((n for n in names if _ALL_SHEET.search(n)), None)
    if transactions is None:
        candidates = [n for n in names if not _MIX_SHEET.search(n)]
        # max() keeps the first sheet on ties
        if candidates:
            best = max(candidates, key=lambda n: count_non_empty_rows(sheets[n]))
            if count_non_empty_rows(sheets[best]) > 0:
                transactions = best
    return SheetSelection(transactions=transactions, mix=mix)
