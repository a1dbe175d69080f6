from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

import psycopg2

from ..models.mix_reference import MixReferenceEntry
from ..models.tenant import Tenant, TenantScope
from ..models.transaction import NormalizedTransactionRow, PersistedTransaction
from .batch_insert import BatchMetrics, StorageError, batch_insert

"""PostgreSQL storage for transactions, mix references and tenants.

The repository works on a caller-owned psycopg2 cursor and never commits;
the orchestrator owns the per-file transaction boundary.
"""

__all__ = [
    "SCHEMA_PATH",
    "TRANSACTION_COLUMNS",
    "MIX_REFERENCE_COLUMNS",
    "TransactionRepository",
    "StorageError",
]

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

# Order matches PersistedTransaction.as_db_values()
TRANSACTION_COLUMNS = (
    "tenant_id",
    "dedup_scope",
    "date_str",
    "type",
    "product",
    "product_detail",
    "quantity_tons",
    "unit",
    "project_code",
    "project_name",
    "customer",
    "note",
    "source_alias_id",
    "source_alias_name",
    "weigh_number",
    "direction",
    "content_hash",
)

MIX_REFERENCE_COLUMNS = (
    "scope_key",
    "code",
    "project_name",
    "mix_name",
    "scope_alias_id",
    "scope_alias_name",
    "scope_tenant_id",
)

_ALIAS_KEY_SQL = (
    "lower(COALESCE(NULLIF(trim(source_alias_id), ''), NULLIF(trim(source_alias_name), ''), 'UNKNOWN'))"
)
_SCOPE_SQL = (
    "tenant_id = %s OR lower(trim(source_alias_id)) = ANY(%s)"
    " OR (tenant_id IS NULL AND trim(COALESCE(source_alias_name, '')) <> '')"
)


def _row_from_record(record: Sequence[Any]) -> PersistedTransaction:
    values = dict(zip(TRANSACTION_COLUMNS, record, strict=True))
    row = NormalizedTransactionRow(
        date_str=values["date_str"],
        type=values["type"],
        product=values["product"],
        product_detail=values["product_detail"] or "",
        quantity_tons=float(values["quantity_tons"]),
        unit=values["unit"],
        project_code=values["project_code"] or None,
        project_name=values["project_name"] or None,
        customer=values["customer"] or None,
        note=values["note"] or None,
        source_alias_id=values["source_alias_id"] or None,
        source_alias_name=values["source_alias_name"] or None,
        weigh_number=values["weigh_number"],
        direction=values["direction"],
        content_hash=(values["content_hash"] or "").strip(),
    )
    return PersistedTransaction(row=row, tenant_id=values["tenant_id"], dedup_scope=values["dedup_scope"])


class TransactionRepository:
    """psycopg2-backed storage used by the import and aggregation engines."""

    def __init__(
        self,
        cursor: Any,
        page_size: int = 1000,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
    ) -> None:
        self.cursor = cursor
        self.page_size = page_size
        self.metrics_callback = metrics_callback

    def _execute(self, sql: str, params: Sequence[Any] | None = None) -> None:
        try:
            self.cursor.execute(sql, params)
        except psycopg2.Error as e:
            raise StorageError(str(e)) from e

    def apply_schema(self, path: Path = SCHEMA_PATH) -> None:
        self._execute(path.read_text(encoding="utf-8"))

    # -- tenants -----------------------------------------------------------

    def load_tenants(self) -> list[Tenant]:
        self._execute("SELECT id, display_name, alias_ids, alias_names FROM tenants ORDER BY id")
        return [
            Tenant(id=str(r[0]), display_name=r[1] or "", alias_ids=list(r[2] or []), alias_names=list(r[3] or []))
            for r in self.cursor.fetchall()
        ]

    def get_tenant(self, tenant_id: str) -> Tenant | None:
        self._execute(
            "SELECT id, display_name, alias_ids, alias_names FROM tenants WHERE id = %s", (str(tenant_id),)
        )
        r = self.cursor.fetchone()
        if r is None:
            return None
        return Tenant(id=str(r[0]), display_name=r[1] or "", alias_ids=list(r[2] or []), alias_names=list(r[3] or []))

    # -- transactions ------------------------------------------------------

    def insert_transactions(self, rows: Sequence[PersistedTransaction]) -> int:
        """Insert rows, skipping (dedup_scope, content_hash) conflicts. Returns rows written."""
        result = batch_insert(
            self.cursor,
            "transactions",
            TRANSACTION_COLUMNS,
            (r.as_db_values() for r in rows),
            on_conflict="(dedup_scope, content_hash) DO NOTHING",
            returning=("content_hash",),
            page_size=self.page_size,
            metrics_callback=self.metrics_callback,
        )
        return result.inserted_rows

    def fetch_transactions(self, scope: TenantScope, date_strs: Iterable[str]) -> list[PersistedTransaction]:
        """Rows stored under any of ``date_strs`` that belong to ``scope``.

        SQL narrows by date, tenant id and alias id, and keeps unlinked rows
        that carry a name. Loose name matching (designator stripping,
        whitespace folding) is applied in Python with ``TenantScope.matches``.
        """
        dates = sorted({d for d in date_strs if d})
        if not dates:
            return []
        cols = ",".join(TRANSACTION_COLUMNS)
        self._execute(
            f"SELECT {cols} FROM transactions WHERE date_str = ANY(%s) AND ({_SCOPE_SQL}) ORDER BY id",
            (dates, scope.tenant_id, sorted(scope.alias_ids)),
        )
        rows = [_row_from_record(r) for r in self.cursor.fetchall()]
        return [
            r for r in rows if scope.matches(r.tenant_id, r.row.source_alias_id, r.row.source_alias_name)
        ]

    def delete_range(self, alias_keys: Iterable[str], min_date: str, max_date: str) -> int:
        """Delete rows of the given alias keys within ``[min_date, max_date]``."""
        keys = sorted({k.lower() for k in alias_keys if k})
        if not keys:
            return 0
        self._execute(
            f"DELETE FROM transactions WHERE date_str BETWEEN %s AND %s AND {_ALIAS_KEY_SQL} = ANY(%s)",
            (min_date, max_date, keys),
        )
        deleted = self.cursor.rowcount or 0
        logger.debug(f"delete_range keys={keys} {min_date}..{max_date} deleted={deleted}")
        return deleted

    # -- mix references ----------------------------------------------------

    def upsert_mix_references(self, entries: Sequence[MixReferenceEntry]) -> int:
        # one row per (scope_key, code); ON CONFLICT DO UPDATE rejects repeats in a statement
        unique: dict[tuple[str, str], MixReferenceEntry] = {}
        for e in entries:
            unique.setdefault((e.scope_key, e.code), e)
        result = batch_insert(
            self.cursor,
            "mix_references",
            MIX_REFERENCE_COLUMNS,
            (
                (e.scope_key, e.code, e.project_name, e.mix_name, e.scope_alias_id, e.scope_alias_name, e.scope_tenant_id)
                for e in unique.values()
            ),
            on_conflict=(
                "(scope_key, code) DO UPDATE SET project_name = EXCLUDED.project_name, "
                "mix_name = EXCLUDED.mix_name, updated_at = now()"
            ),
            returning=("code",),
            page_size=self.page_size,
        )
        return result.inserted_rows

    def load_mix_references(self, codes: Iterable[str]) -> list[MixReferenceEntry]:
        wanted = sorted({c.strip().upper() for c in codes if c and c.strip()})
        if not wanted:
            return []
        self._execute(
            "SELECT code, project_name, mix_name, scope_alias_id, scope_alias_name, scope_tenant_id "
            "FROM mix_references WHERE code = ANY(%s) ORDER BY updated_at DESC, id",
            (wanted,),
        )
        return [
            MixReferenceEntry(
                code=r[0],
                project_name=r[1] or "",
                mix_name=r[2] or "",
                scope_alias_id=r[3],
                scope_alias_name=r[4],
                scope_tenant_id=r[5],
            )
            for r in self.cursor.fetchall()
        ]
