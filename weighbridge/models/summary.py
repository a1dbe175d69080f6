from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

"""DailySummary models (derived on every query, never persisted).

All ``tons`` / ``total_tons`` values are already rounded to 2 decimals;
rounding happens once, when the aggregation engine builds these objects.
"""

__all__ = [
    "ProductTons",
    "SiteSummary",
    "ProjectSummary",
    "InboundSummary",
    "OutboundSummary",
    "DailySummary",
]


@dataclass(frozen=True)
class ProductTons:
    product: str
    tons: float


@dataclass(frozen=True)
class SiteSummary:
    code: str
    name: str
    mix_name: str
    total_tons: float
    items: list[ProductTons] = field(default_factory=list)


@dataclass(frozen=True)
class ProjectSummary:
    code: str
    name: str
    mix_name: str
    total_tons: float


@dataclass(frozen=True)
class InboundSummary:
    total_tons: float = 0.0
    items: list[ProductTons] = field(default_factory=list)


@dataclass(frozen=True)
class OutboundSummary:
    total_tons: float = 0.0
    items: list[ProductTons] = field(default_factory=list)
    sites: list[SiteSummary] = field(default_factory=list)
    projects: list[ProjectSummary] = field(default_factory=list)


@dataclass(frozen=True)
class DailySummary:
    tenant_id: str
    date_str: str
    inbound: InboundSummary = field(default_factory=InboundSummary)
    outbound: OutboundSummary = field(default_factory=OutboundSummary)
    row_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
