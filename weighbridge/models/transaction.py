from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, replace
from typing import Any

"""Transaction row models for the weighbridge ingest pipeline.

A workbook row travels through three shapes:

- RawRow: ``dict[str, Any]`` keyed by the sheet's header labels (parse time only)
- NormalizedTransactionRow: canonical values plus a content hash
- PersistedTransaction: a normalized row bound to its dedup scope / tenant
"""

__all__ = [
    "RawRow",
    "TYPE_BUY",
    "TYPE_SELL",
    "DIRECTION_IN",
    "DIRECTION_OUT",
    "NormalizedTransactionRow",
    "PersistedTransaction",
    "DateRange",
    "compute_content_hash",
    "alias_key",
]

RawRow = dict[str, Any]

TYPE_BUY = "BUY"
TYPE_SELL = "SELL"
DIRECTION_IN = "IN"
DIRECTION_OUT = "OUT"

UNKNOWN_ALIAS = "UNKNOWN"

# Field order is part of the hash contract; do not reorder.
HASH_FIELDS = (
    "date_str",
    "type",
    "product",
    "product_detail",
    "quantity_tons",
    "project_code",
    "weigh_number",
    "source_alias_id",
    "source_alias_name",
)


def compute_content_hash(values: dict[str, Any]) -> str:
    """Deterministic SHA-1 digest over the hashed transaction fields.

    Missing / None alias fields hash as empty strings so that a row exported
    with or without an empty alias column produces the same digest.
    """
    payload = {}
    for name in HASH_FIELDS:
        value = values.get(name)
        if value is None and name in ("source_alias_id", "source_alias_name", "project_code", "product_detail"):
            value = ""
        payload[name] = value
    raw = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def alias_key(alias_id: str | None, alias_name: str | None) -> str:
    """Scope key used when a row cannot be linked to a tenant."""
    key = (alias_id or "").strip() or (alias_name or "").strip() or UNKNOWN_ALIAS
    return key.lower()


@dataclass(frozen=True)
class DateRange:
    min_date: str | None = None
    max_date: str | None = None

    def extend(self, date_str: str) -> DateRange:
        lo = date_str if self.min_date is None or date_str < self.min_date else self.min_date
        hi = date_str if self.max_date is None or date_str > self.max_date else self.max_date
        return DateRange(min_date=lo, max_date=hi)

    @property
    def is_empty(self) -> bool:
        return self.min_date is None and self.max_date is None


@dataclass(frozen=True)
class NormalizedTransactionRow:
    """Canonical transaction produced from one workbook row.

    ``quantity_tons`` is always > 0 and rounded to 3 decimals before hashing.
    ``row_number`` is the 1-based sheet row and is not part of the hash.
    """
    date_str: str
    type: str  # BUY | SELL
    product: str
    product_detail: str
    quantity_tons: float
    unit: str
    project_code: str | None = None
    project_name: str | None = None
    customer: str | None = None
    note: str | None = None
    source_alias_id: str | None = None
    source_alias_name: str | None = None
    weigh_number: str | None = None
    direction: str | None = None  # IN | OUT
    content_hash: str = ""
    row_number: int = field(default=-1, compare=False)

    def hash_fields(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in HASH_FIELDS}

    def with_hash(self) -> NormalizedTransactionRow:
        return replace(self, content_hash=compute_content_hash(self.hash_fields()))

    @property
    def alias_key(self) -> str:
        return alias_key(self.source_alias_id, self.source_alias_name)


@dataclass(frozen=True)
class PersistedTransaction:
    """Storage-layer shape: normalized row plus tenant link and dedup scope."""
    row: NormalizedTransactionRow
    tenant_id: str | None
    dedup_scope: str

    @staticmethod
    def scope_for(row: NormalizedTransactionRow) -> str:
        # Independent of the tenant link: a row keeps its scope once linked.
        return f"alias:{row.alias_key}"

    @classmethod
    def bind(cls, row: NormalizedTransactionRow, tenant_id: str | None) -> PersistedTransaction:
        return cls(row=row, tenant_id=tenant_id, dedup_scope=cls.scope_for(row))

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.dedup_scope, self.row.content_hash)

    def as_db_values(self) -> list[Any]:
        r = self.row
        return [
            self.tenant_id,
            self.dedup_scope,
            r.date_str,
            r.type,
            r.product,
            r.product_detail,
            r.quantity_tons,
            r.unit,
            r.project_code or "",
            r.project_name or "",
            r.customer or "",
            r.note or "",
            r.source_alias_id or "",
            r.source_alias_name or "",
            r.weigh_number,
            r.direction,
            r.content_hash,
        ]
