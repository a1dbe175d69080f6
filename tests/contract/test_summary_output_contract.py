from __future__ import annotations

import re
from datetime import UTC, datetime

from weighbridge.models.processing_result import ProcessingResult
from weighbridge.models.summary import DailySummary
from weighbridge.services.summary import render_summary_line

"""SUMMARY line and DailySummary output contracts."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+files=([0-9]+)\s+success=([0-9]+)\s+failed=([0-9]+)\s+"
    r"inserted=([0-9]+)\s+skipped=([0-9]+)\s+dropped=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)$"
)


def test_summary_pattern_example_line():
    line = "SUMMARY files=2 success=1 failed=1 inserted=3 skipped=0 dropped=1 elapsed_sec=0.84"
    assert SUMMARY_PATTERN.match(line)


def test_rendered_line_matches_contract():
    now = datetime.now(UTC)
    result = ProcessingResult(
        success_files=4,
        failed_files=1,
        total_inserted_rows=1200,
        total_skipped_rows=30,
        total_dropped_rows=2,
        start_time=now,
        end_time=now,
        elapsed_seconds=12.3456,
    )
    m = SUMMARY_PATTERN.match(render_summary_line(result))
    assert m
    files, success, failed = (int(m.group(i)) for i in (1, 2, 3))
    assert files == success + failed


def test_daily_summary_dict_shape():
    d = DailySummary(tenant_id="t1", date_str="2025-03-15").to_dict()
    assert d == {
        "tenant_id": "t1",
        "date_str": "2025-03-15",
        "inbound": {"total_tons": 0.0, "items": []},
        "outbound": {"total_tons": 0.0, "items": [], "sites": [], "projects": []},
        "row_count": 0,
    }
