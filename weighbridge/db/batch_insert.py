from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT helper on top of psycopg2.extras.execute_values.

Idempotent writes are expressed with an ``ON CONFLICT`` clause; the rows that
were actually written are counted through ``RETURNING`` so that conflicting
rows (already persisted, or written concurrently by another import) show up
as skipped rather than inserted.
"""

__all__ = [
    "StorageError",
    "BatchInsertError",
    "BatchMetrics",
    "InsertResult",
    "batch_insert",
]


class StorageError(Exception):
    """Wraps a database driver error raised by the storage layer."""


class BatchInsertError(StorageError):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of one batch_insert call."""
    batch_size: int  # Number of rows passed in
    elapsed_seconds: float  # Time spent on execute_values call
    start_time: float  # Start timestamp (time.time())
    end_time: float  # End timestamp (time.time())


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    *,
    on_conflict: str | None = None,
    returning: Sequence[str] | None = None,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Perform a batched INSERT.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table name (trusted, not user input)
    columns: insert columns, in the order of each row's values
    rows: row value sequences
    on_conflict: clause appended verbatim, e.g.
        ``"(dedup_scope, content_hash) DO NOTHING"``
    returning: columns for a RETURNING clause. When given, ``inserted_rows``
        is the number of rows the database actually wrote; otherwise it is
        the number of rows sent.
    page_size: execute_values page size
    metrics_callback: receives one BatchMetrics per call. Not invoked when
        ``rows`` is empty (the function returns early).

        Example usage for accumulating batch statistics:
            accumulator = BatchStatsAccumulator()
            batch_insert(cursor, table, columns, rows,
                         metrics_callback=lambda m: accumulator.add_batch_time(m.elapsed_seconds))
            total, avg, p95 = accumulator.get_stats()
    """
    rows_list = [tuple(r) for r in rows]
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    if on_conflict:
        sql += f" ON CONFLICT {on_conflict}"
    if returning:
        sql += " RETURNING " + ",".join(f'"{c}"' for c in returning)

    start_time = time.time()
    try:
        returned = execute_values(cursor, sql, rows_list, page_size=page_size, fetch=bool(returning))
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )

    if returning:
        returned_list = [tuple(r) for r in (returned or [])]
        return InsertResult(inserted_rows=len(returned_list), returned_values=returned_list)
    return InsertResult(inserted_rows=len(rows_list), returned_values=None)
