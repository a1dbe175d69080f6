from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models.mix_reference import MixReferenceEntry
from ..models.summary import (
    DailySummary,
    InboundSummary,
    OutboundSummary,
    ProductTons,
    ProjectSummary,
    SiteSummary,
)
from ..models.tenant import TenantScope
from ..models.transaction import TYPE_BUY, TYPE_SELL, PersistedTransaction
from ..normalize.dates import normalize_date_input, to_buddhist_era
from ..normalize.rows import DEFAULT_BUY_PRODUCT

"""Aggregation engine: one tenant, one business date -> DailySummary.

Rows are looked up under both the Gregorian and the Buddhist Era form of the
date. Accumulation runs at full precision; values are rounded to 2 decimals
only when the summary objects are built.
"""

__all__ = [
    "summarize",
    "summarize_transactions",
    "tenant_exists",
    "product_label",
]

logger = logging.getLogger(__name__)

OUTPUT_DECIMALS = 2


def product_label(product: str, detail: str | None) -> str:
    """``"แอสฟัลต์ติกคอนกรีต"`` + ``"AC-W"`` -> ``"แอสฟัลต์ติกคอนกรีต (AC-W)"``."""
    product = (product or "").strip() or DEFAULT_BUY_PRODUCT
    detail = (detail or "").strip()
    return f"{product} ({detail})" if detail else product


def _round(value: float) -> float:
    return round(value, OUTPUT_DECIMALS)


def _items(totals: dict[str, float]) -> list[ProductTons]:
    ordered = sorted(totals.items(), key=lambda kv: (-kv[1], kv[0]))
    return [ProductTons(product=p, tons=_round(t)) for p, t in ordered]


@dataclass
class _SiteAccumulator:
    code: str
    name: str = ""
    mix_names: list[str] = field(default_factory=list)
    total: float = 0.0
    products: dict[str, float] = field(default_factory=lambda: defaultdict(float))

    def add(self, tx: PersistedTransaction) -> None:
        row = tx.row
        self.total += row.quantity_tons
        self.products[product_label(row.product, row.product_detail)] += row.quantity_tons
        if not self.name and row.project_name:
            self.name = row.project_name
        if row.product_detail and row.product_detail not in self.mix_names:
            self.mix_names.append(row.product_detail)

    @property
    def mix_name(self) -> str:
        return ", ".join(self.mix_names)


def _reference_lookup(entries: Iterable[MixReferenceEntry], scope: TenantScope) -> dict[str, MixReferenceEntry]:
    """code -> best stored entry: tenant-scoped, then alias-scoped, then any."""
    best: dict[str, tuple[int, MixReferenceEntry]] = {}
    for e in entries:
        if e.scope_tenant_id and str(e.scope_tenant_id) == scope.tenant_id:
            rank = 0
        elif scope.matches(None, e.scope_alias_id, e.scope_alias_name):
            rank = 1
        else:
            rank = 2
        current = best.get(e.code)
        if current is None or rank < current[0]:
            best[e.code] = (rank, e)
    return {code: entry for code, (_, entry) in best.items()}


def summarize_transactions(
    tenant_id: str,
    date_str: str,
    transactions: Sequence[PersistedTransaction],
    references: dict[str, MixReferenceEntry] | None = None,
) -> DailySummary:
    """Pure aggregation over already-scoped rows."""
    references = references or {}
    inbound: dict[str, float] = defaultdict(float)
    outbound: dict[str, float] = defaultdict(float)
    sites: dict[str, _SiteAccumulator] = {}
    inbound_total = outbound_total = 0.0

    for tx in transactions:
        row = tx.row
        if row.type == TYPE_BUY:
            inbound[(row.product or "").strip() or DEFAULT_BUY_PRODUCT] += row.quantity_tons
            inbound_total += row.quantity_tons
        elif row.type == TYPE_SELL:
            outbound[product_label(row.product, row.product_detail)] += row.quantity_tons
            outbound_total += row.quantity_tons
            code = (row.project_code or "").strip().upper()
            if code:
                sites.setdefault(code, _SiteAccumulator(code=code)).add(tx)

    site_summaries = []
    project_summaries = []
    for acc in sorted(sites.values(), key=lambda s: (-s.total, s.code)):
        ref = references.get(acc.code)
        name = acc.name or (ref.display_name if ref else "") or acc.code
        mix_name = acc.mix_name or (ref.mix_name if ref else "")
        site_summaries.append(
            SiteSummary(
                code=acc.code,
                name=name,
                mix_name=mix_name,
                total_tons=_round(acc.total),
                items=_items(acc.products),
            )
        )
        project_summaries.append(
            ProjectSummary(code=acc.code, name=name, mix_name=mix_name, total_tons=_round(acc.total))
        )

    return DailySummary(
        tenant_id=str(tenant_id),
        date_str=date_str,
        inbound=InboundSummary(total_tons=_round(inbound_total), items=_items(inbound)),
        outbound=OutboundSummary(
            total_tons=_round(outbound_total),
            items=_items(outbound),
            sites=site_summaries,
            projects=project_summaries,
        ),
        row_count=len(transactions),
    )


def tenant_exists(repository: Any, tenant_id: str) -> bool:
    return repository.get_tenant(tenant_id) is not None


def summarize(repository: Any, tenant_id: str, date_input: Any) -> DailySummary:
    """Daily summary for a tenant.

    Raises ValueError when ``date_input`` is not a recognisable date. An
    unknown tenant, like a day without rows, yields a zero summary; use
    ``tenant_exists`` to tell the two apart.
    """
    date_str = normalize_date_input(date_input)
    tenant = repository.get_tenant(tenant_id)
    if tenant is None:
        logger.debug(f"summarize: tenant {tenant_id} not found")
        return summarize_transactions(tenant_id, date_str, [])

    scope = TenantScope.for_tenant(tenant)
    transactions = repository.fetch_transactions(scope, [date_str, to_buddhist_era(date_str)])
    codes = {tx.row.project_code for tx in transactions if tx.row.type == TYPE_SELL and tx.row.project_code}
    references = _reference_lookup(repository.load_mix_references(codes), scope) if codes else {}
    logger.debug(f"summarize tenant={tenant_id} date={date_str} rows={len(transactions)}")
    return summarize_transactions(tenant.id, date_str, transactions, references)
