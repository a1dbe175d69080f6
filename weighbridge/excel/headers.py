from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ..models.config_models import DateGuessConfig, HeaderVocabulary
from ..models.transaction import RawRow
from ..normalize.dates import normalize_date
from .reader import is_blank

"""Header resolver: locate the header row and map logical fields to columns.

Header row detection sums the weights of every vocabulary variant found in a
row's joined text (case-insensitive substring); the first row reaching
``min_score`` within the first ``scan_rows`` rows is the header.
"""

__all__ = [
    "MissingColumnsError",
    "SheetRecords",
    "ColumnPicker",
    "pick_columns",
    "score_row",
    "find_header_row",
    "records_from_rows",
    "guess_date_column",
    "resolve_columns",
]


class MissingColumnsError(Exception):
    """Raised when a required column (date) cannot be found or guessed."""


def _text(value: Any) -> str:
    return "" if is_blank(value) else str(value).strip()


@dataclass(frozen=True)
class SheetRecords:
    header_index: int  # 0-based row index of the header
    headers: list[str]
    records: list[tuple[int, RawRow]]  # (1-based sheet row number, row)


def score_row(row: Sequence[Any], vocabulary: HeaderVocabulary) -> float:
    joined = "|".join(_text(v) for v in row).upper()
    if not joined.strip("|"):
        return 0
    return sum(weight for key, weight in vocabulary.header_keys.items() if key.upper() in joined)


def find_header_row(rows: Sequence[Sequence[Any]], vocabulary: HeaderVocabulary) -> int:
    """Return the 0-based index of the header row, or -1."""
    for i, row in enumerate(rows[: vocabulary.scan_rows]):
        if score_row(row, vocabulary) >= vocabulary.min_score:
            return i
    return -1


def records_from_rows(rows: Sequence[Sequence[Any]], header_index: int) -> SheetRecords:
    """Turn rows below ``header_index`` into RawRows keyed by header label.

    Blank header cells are ignored; fully blank data rows are skipped.
    """
    headers = [_text(v) for v in rows[header_index]]
    records: list[tuple[int, RawRow]] = []
    for r in range(header_index + 1, len(rows)):
        row = rows[r]
        if all(is_blank(v) for v in row):
            continue
        record: RawRow = {}
        for h, v in zip(headers, row, strict=False):
            if h and h not in record:
                record[h] = v
        records.append((r + 1, record))
    return SheetRecords(header_index=header_index, headers=headers, records=records)


class ColumnPicker:
    """Pick a header label from candidate synonyms: exact match first, then containment."""

    def __init__(self, headers: Sequence[str]) -> None:
        self.headers = [h for h in headers if h]
        self._upper = [h.upper() for h in self.headers]

    def exact(self, *candidates: str) -> str | None:
        for c in candidates:
            if c in self.headers:
                return c
        return None

    def contains(self, *candidates: str, exclude: frozenset[str] | set[str] = frozenset()) -> str | None:
        for c in candidates:
            needle = c.upper()
            for i, h in enumerate(self._upper):
                if needle in h and self.headers[i] not in exclude:
                    return self.headers[i]
        return None

    def pick(self, *candidates: str, exclude: frozenset[str] | set[str] = frozenset()) -> str | None:
        return self.exact(*candidates) or self.contains(*candidates, exclude=exclude)


def pick_columns(headers: Sequence[str], fields: dict[str, list[str]]) -> dict[str, str | None]:
    """Resolve every logical field: exact matches for all fields first, then containment.

    A containment match never takes a column already claimed by another field.
    """
    picker = ColumnPicker(headers)
    columns = {name: picker.exact(*syns) for name, syns in fields.items()}
    claimed = {c for c in columns.values() if c}
    for name, syns in fields.items():
        if columns[name]:
            continue
        column = picker.contains(*syns, exclude=claimed)
        columns[name] = column
        if column:
            claimed.add(column)
    return columns


def guess_date_column(
    headers: Sequence[str],
    records: Sequence[RawRow],
    config: DateGuessConfig | None = None,
    normalizer: Callable[[Any], str | None] = normalize_date,
) -> str | None:
    """Pick the column whose sampled values most often normalize to a date.

    Only non-empty values count; the winning ratio must exceed ``min_ratio``.
    """
    cfg = config or DateGuessConfig()
    best: tuple[float, str] | None = None
    sample = records[: cfg.sample_rows]
    for h in headers:
        if not h:
            continue
        ok = total = 0
        for r in sample:
            v = r.get(h)
            if is_blank(v):
                continue
            total += 1
            if normalizer(v):
                ok += 1
        if not total:
            continue
        ratio = ok / total
        if ratio > cfg.min_ratio and (best is None or ratio > best[0]):
            best = (ratio, h)
    return best[1] if best else None


def resolve_columns(
    headers: Sequence[str],
    records: Sequence[RawRow],
    vocabulary: HeaderVocabulary,
    date_guess: DateGuessConfig | None = None,
) -> dict[str, str | None]:
    """Map every logical field in the vocabulary to a header label (or None).

    Raises MissingColumnsError when no date column can be found or guessed.
    """
    columns = pick_columns(headers, vocabulary.fields)
    claimed = {c for c in columns.values() if c}
    if not columns.get("date"):
        remaining = [h for h in headers if h and h not in claimed]
        columns["date"] = guess_date_column(remaining, records, date_guess)
    if not columns["date"]:
        raise MissingColumnsError(f"no date column among headers {list(headers)}")
    return columns
