# Shared pytest fixtures
from __future__ import annotations

import io
import tempfile
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from weighbridge.logging.init import reset_logging
from weighbridge.models.mix_reference import MixReferenceEntry
from weighbridge.models.tenant import Tenant, TenantScope
from weighbridge.models.transaction import NormalizedTransactionRow, PersistedTransaction

HEADERS = ["DATE", "TYPE", "PRODUCT", "JOB MIX", "WEIGHT", "UNIT", "COMPANY", "COMPANY ID", "NOTE"]


class InMemoryRepository:
    """Repository double; enforces the (dedup_scope, content_hash) uniqueness like the real table."""

    def __init__(self, tenants: Iterable[Tenant] = ()) -> None:
        self.tenants = list(tenants)
        self.transactions: dict[tuple[str, str], PersistedTransaction] = {}
        self.mix_references: dict[tuple[str, str], MixReferenceEntry] = {}
        self.insert_batches: list[list[PersistedTransaction]] = []

    def load_tenants(self) -> list[Tenant]:
        return list(self.tenants)

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        return next((t for t in self.tenants if str(t.id) == str(tenant_id)), None)

    def insert_transactions(self, rows: Sequence[PersistedTransaction]) -> int:
        self.insert_batches.append(list(rows))
        inserted = 0
        for r in rows:
            if r.dedup_key in self.transactions:
                continue
            self.transactions[r.dedup_key] = r
            inserted += 1
        return inserted

    def fetch_transactions(self, scope: TenantScope, date_strs: Iterable[str]) -> list[PersistedTransaction]:
        dates = set(date_strs)
        return [
            t
            for t in self.transactions.values()
            if t.row.date_str in dates and scope.matches(t.tenant_id, t.row.source_alias_id, t.row.source_alias_name)
        ]

    def delete_range(self, alias_keys: Iterable[str], min_date: str, max_date: str) -> int:
        keys = {k.lower() for k in alias_keys}
        doomed = [
            k
            for k, t in self.transactions.items()
            if t.row.alias_key in keys and min_date <= t.row.date_str <= max_date
        ]
        for k in doomed:
            del self.transactions[k]
        return len(doomed)

    def upsert_mix_references(self, entries: Sequence[MixReferenceEntry]) -> int:
        keys = set()
        for e in entries:
            self.mix_references[(e.scope_key, e.code)] = e
            keys.add((e.scope_key, e.code))
        return len(keys)

    def load_mix_references(self, codes: Iterable[str]) -> list[MixReferenceEntry]:
        wanted = {c.upper() for c in codes}
        return [e for e in self.mix_references.values() if e.code in wanted]


class DummyCursor:
    """Records execute() calls; fetch results are queued by the test."""

    def __init__(self) -> None:
        self.executed: list[tuple[str, Any]] = []
        self.results: list[list[tuple]] = []
        self.rowcount = 0
        self.connection = DummyConnection()

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))

    def fetchall(self) -> list[tuple]:
        return self.results.pop(0) if self.results else []

    def fetchone(self) -> tuple | None:
        rows = self.fetchall()
        return rows[0] if rows else None


class DummyConnection:
    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


def build_workbook(sheets: dict[str, list[list[Any]]]) -> bytes:
    """Write raw rows (no header inference) to an in-memory .xlsx."""
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buf.getvalue()


def make_row(
    type: str = "BUY",
    product: str = "Stone",
    tons: float = 1.0,
    *,
    detail: str = "",
    date_str: str = "2025-03-15",
    code: str | None = None,
    name: str | None = None,
    alias_id: str | None = "C001",
    alias_name: str | None = "ABC Co",
    weigh_number: str | None = None,
) -> NormalizedTransactionRow:
    return NormalizedTransactionRow(
        date_str=date_str,
        type=type,
        product=product,
        product_detail=detail,
        quantity_tons=tons,
        unit="tonne",
        project_code=code,
        project_name=name,
        source_alias_id=alias_id,
        source_alias_name=alias_name,
        weigh_number=weigh_number,
    ).with_hash()


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: weighbridge
header_vocabulary:
  scan_rows: 50
  fields:
    weight: ["NET WT", "WEIGHT"]
date_guess:
  min_ratio: 0.5
page_size: 200
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "ingest.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def tenant() -> Tenant:
    return Tenant(id="t1", display_name="บริษัท เอบีซี จำกัด", alias_ids=["C001"], alias_names=["ABC Co"])


@pytest.fixture()
def repository(tenant: Tenant) -> InMemoryRepository:
    return InMemoryRepository([tenant])


@pytest.fixture()
def dummy_cursor() -> DummyCursor:
    return DummyCursor()


@pytest.fixture()
def make_workbook() -> Callable[[dict[str, list[list[Any]]]], bytes]:
    return build_workbook


@pytest.fixture()
def stone_workbook() -> bytes:
    """3 valid BUY rows of Stone (5/10/15 t) and one row with an unparseable date."""
    return build_workbook(
        {
            "ALL DATA": [
                ["Daily weighbridge report", None, None, None, None, None, None, None, None],
                HEADERS,
                ["15/03/2568", "BUY", "Stone", None, 5, "TON", "ABC Co", "C001", None],
                ["15/03/2568", "BUY", "Stone", None, 10, "TON", "ABC Co", "C001", None],
                ["15/03/2568", "BUY", "Stone", None, 15, "TON", "ABC Co", "C001", None],
                ["not a date", "BUY", "Stone", None, 7, "TON", "ABC Co", "C001", None],
            ]
        }
    )


@pytest.fixture()
def march_workbook() -> bytes:
    """Two business days of BUY and SELL rows plus a MIX reference sheet."""
    return build_workbook(
        {
            "ALL DATA": [
                HEADERS,
                ["15/03/2568", "BUY", "Stone", None, 5000, "KG", "ABC Co", "C001", None],
                ["2025-03-15", "SELL", "AC", "AC-W 60/70", 12.5, "TON", "ABC Co", "C001", None],
                ["15/03/2568", "SELL", "AC", "AC-W 60/70", 7.5, "TON", "ABC Co", "C001", None],
                ["16/03/2568", "SELL", None, "BASE", 3, "TON", "ABC Co", "C001", "code=P2"],
                ["16/03/2568", "BUY", "Sand", None, 0, "TON", "ABC Co", "C001", None],
            ],
            "MIX": [
                ["code", "projectName", "mixName"],
                ["P1", "Airport Road", "AC-W 60/70"],
                ["P2", "Yard", "BASE"],
            ],
        }
    )
