from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import datetime

from .transaction import DateRange

"""Processing result models for the weighbridge ingest pipeline.

ImportResult is what the dedup/import engine returns for one batch;
WorkbookImportResult is the import entry point's answer for one workbook;
ProcessingResult aggregates a multi-file CLI run.
"""


@dataclass(frozen=True)
class ImportResult:
    """Outcome of one bulk import call."""
    inserted: int
    skipped: int  # duplicates within the batch + rows already persisted


@dataclass(frozen=True)
class WorkbookImportResult:
    """Outcome of importing one workbook byte buffer."""
    inserted: int
    skipped: int
    date_range: DateRange
    cleared: int = 0  # rows removed by clear_existing before the import
    dropped: int = 0  # rows discarded during normalization (bad date, zero quantity)
    mix_references: int = 0  # reference entries upserted


@dataclass(frozen=True)
class FileStat:
    """Per-file processing statistics for a CLI run.

    Includes batch-level timing statistics for performance analysis.
    """
    file_name: str
    status: str  # success/failed
    inserted_rows: int
    skipped_rows: int
    dropped_rows: int
    elapsed_seconds: float
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0
    error: str | None = None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results for the SUMMARY output line."""
    success_files: int
    failed_files: int
    total_inserted_rows: int
    total_skipped_rows: int
    total_dropped_rows: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    file_stats: list[FileStat] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files


class BatchStatsAccumulator:
    """Accumulates batch timing statistics for FileStat."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)
