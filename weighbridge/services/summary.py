from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..models.processing_result import ProcessingResult
from ..models.transaction import TYPE_BUY, TYPE_SELL, NormalizedTransactionRow
from .aggregation import product_label

"""Import reporting: the SUMMARY output line and per-batch breakdowns.

The SUMMARY line contract:
SUMMARY files={n} success={s} failed={f} inserted={i} skipped={k} dropped={d} elapsed_sec={e}
"""

__all__ = [
    "ParsedTotals",
    "SourceTotals",
    "format_number",
    "render_summary_line",
    "summarize_parsed",
    "source_summary",
]


def format_number(value: float) -> str:
    """Integers without a decimal point, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(value)


def render_summary_line(result: ProcessingResult) -> str:
    """Render the SUMMARY line for a CLI run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2025, 3, 15, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2025, 3, 15, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ProcessingResult(
        ...     success_files=1, failed_files=0, total_inserted_rows=3,
        ...     total_skipped_rows=0, total_dropped_rows=1, start_time=start,
        ...     end_time=end, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY files=1 success=1 failed=0 inserted=3 skipped=0 dropped=1 elapsed_sec=2'
    """
    return (
        f"SUMMARY files={result.total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"inserted={result.total_inserted_rows} "
        f"skipped={result.total_skipped_rows} "
        f"dropped={result.total_dropped_rows} "
        f"elapsed_sec={format_number(result.elapsed_seconds)}"
    )


@dataclass(frozen=True)
class ParsedTotals:
    """Tonnage of a parsed batch before persistence, rounded to 3 decimals."""
    total_in: float
    total_out: float
    buy_by_product: dict[str, float] = field(default_factory=dict)
    sell_by_product: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class SourceTotals:
    alias: str
    rows: int
    tons: float


def summarize_parsed(rows: Sequence[NormalizedTransactionRow]) -> ParsedTotals:
    buy: dict[str, float] = defaultdict(float)
    sell: dict[str, float] = defaultdict(float)
    for r in rows:
        if r.type == TYPE_BUY:
            buy[r.product] += r.quantity_tons
        elif r.type == TYPE_SELL:
            sell[product_label(r.product, r.product_detail)] += r.quantity_tons
    return ParsedTotals(
        total_in=round(sum(buy.values()), 3),
        total_out=round(sum(sell.values()), 3),
        buy_by_product={k: round(v, 3) for k, v in buy.items()},
        sell_by_product={k: round(v, 3) for k, v in sell.items()},
    )


def source_summary(rows: Sequence[NormalizedTransactionRow]) -> list[SourceTotals]:
    """Row count and tonnage per source alias, largest tonnage first."""
    counts: dict[str, int] = defaultdict(int)
    tons: dict[str, float] = defaultdict(float)
    for r in rows:
        label = r.source_alias_name or r.source_alias_id or "UNKNOWN"
        counts[label] += 1
        tons[label] += r.quantity_tons
    return sorted(
        (SourceTotals(alias=a, rows=counts[a], tons=round(tons[a], 3)) for a in counts),
        key=lambda s: (-s.tons, s.alias),
    )
