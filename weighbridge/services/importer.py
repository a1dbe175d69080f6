from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from ..models.mix_reference import MixReferenceEntry
from ..models.processing_result import ImportResult
from ..models.tenant import Tenant, resolve_tenant
from ..models.transaction import NormalizedTransactionRow, PersistedTransaction

"""Dedup / import engine.

Rows are linked to a tenant by alias, bound to their dedup scope and written
in one bulk insert. Identical rows within the batch are filtered locally;
rows already persisted are rejected by the storage uniqueness constraint.
Both count as skipped.
"""

__all__ = [
    "TenantResolver",
    "import_rows",
    "bind_mix_references",
]

logger = logging.getLogger(__name__)


class TenantResolver:
    """Memoizing wrapper around resolve_tenant for one import call."""

    def __init__(self, tenants: Sequence[Tenant]) -> None:
        self.tenants = list(tenants)
        self._cache: dict[tuple[str, str], Tenant | None] = {}

    def __call__(self, alias_id: str | None, alias_name: str | None) -> Tenant | None:
        key = ((alias_id or "").strip().lower(), (alias_name or "").strip().lower())
        if key not in self._cache:
            self._cache[key] = resolve_tenant(self.tenants, alias_id, alias_name)
        return self._cache[key]


def import_rows(
    rows: Sequence[NormalizedTransactionRow],
    repository: Any,
    resolver: TenantResolver | None = None,
) -> ImportResult:
    """Persist normalized rows; returns inserted / skipped counts.

    ``skipped`` is ``len(rows) - inserted``: in-batch duplicates plus rows the
    store already holds (including rows written concurrently by another import).
    """
    if not rows:
        return ImportResult(inserted=0, skipped=0)
    resolve = resolver or TenantResolver(repository.load_tenants())

    seen: set[tuple[str, str]] = set()
    batch: list[PersistedTransaction] = []
    unlinked = 0
    for row in rows:
        tenant = resolve(row.source_alias_id, row.source_alias_name)
        if tenant is None:
            unlinked += 1
        persisted = PersistedTransaction.bind(row, tenant.id if tenant else None)
        if persisted.dedup_key in seen:
            continue
        seen.add(persisted.dedup_key)
        batch.append(persisted)

    if unlinked:
        logger.warning(f"{unlinked} row(s) matched no tenant alias; imported unlinked")
    inserted = repository.insert_transactions(batch)
    logger.debug(f"import_rows rows={len(rows)} unique={len(batch)} inserted={inserted}")
    return ImportResult(inserted=inserted, skipped=len(rows) - inserted)


def bind_mix_references(entries: Sequence[MixReferenceEntry], resolver: TenantResolver) -> list[MixReferenceEntry]:
    """Attach the owning tenant to reference entries whose alias resolves."""
    bound = []
    for entry in entries:
        tenant = resolver(entry.scope_alias_id, entry.scope_alias_name)
        bound.append(replace(entry, scope_tenant_id=tenant.id) if tenant else entry)
    return bound
