from __future__ import annotations

import re
from dataclasses import dataclass, field

"""Tenant read model and alias matching.

Tenants own alias identifiers / names as they appear in weighbridge exports.
Matching at import time is exact and case-insensitive; matching at summary
time is looser (whitespace-insensitive, company designators stripped).
"""

__all__ = [
    "Tenant",
    "TenantScope",
    "equals_ignore_case",
    "name_variants",
    "loose_name_key",
    "resolve_tenant",
]

# Thai company designators (บริษัท ... จำกัด (มหาชน), ห้างหุ้นส่วน, หจก., บจก.)
_DESIGNATOR_PATTERNS = (
    re.compile(r"บริษัท\s*(จำกัด\s*\(มหาชน\)|จำกัด|มหาชน)?", re.IGNORECASE),
    re.compile(r"ห้างหุ้นส่วน\s*(จำกัด)?", re.IGNORECASE),
    re.compile(r"หจก\.?", re.IGNORECASE),
    re.compile(r"บจก\.?", re.IGNORECASE),
    re.compile(r"จำกัด", re.IGNORECASE),
    re.compile(r"\(?\s*มหาชน\s*\)?", re.IGNORECASE),
)
_WHITESPACE = re.compile(r"\s+")


def _tidy(value: object) -> str:
    return "" if value is None else str(value).strip()


def equals_ignore_case(a: object, b: object) -> bool:
    return _tidy(a).lower() == _tidy(b).lower()


def name_variants(raw: str | None) -> list[str]:
    """Return the trimmed name plus a designator-stripped variant (if different)."""
    trimmed = _tidy(raw)
    if not trimmed:
        return []
    variants = [trimmed]
    stripped = trimmed
    for pattern in _DESIGNATOR_PATTERNS:
        stripped = pattern.sub(" ", stripped)
    stripped = _WHITESPACE.sub(" ", stripped.replace("(", " ").replace(")", " ")).strip()
    if stripped and stripped not in variants:
        variants.append(stripped)
    return variants


def loose_name_key(raw: str | None) -> str:
    """Lowercased name with all whitespace removed."""
    return _WHITESPACE.sub("", _tidy(raw)).lower()


@dataclass(frozen=True)
class Tenant:
    id: str
    display_name: str
    alias_ids: list[str] = field(default_factory=list)
    alias_names: list[str] = field(default_factory=list)

    def matches_alias_id(self, alias_id: str | None) -> bool:
        if not _tidy(alias_id):
            return False
        return any(equals_ignore_case(a, alias_id) for a in self.alias_ids if _tidy(a))

    def matches_alias_name(self, alias_name: str | None) -> bool:
        if not _tidy(alias_name):
            return False
        return any(equals_ignore_case(a, alias_name) for a in self.alias_names if _tidy(a))

    def matches_display_name(self, alias_name: str | None) -> bool:
        return bool(_tidy(alias_name)) and bool(_tidy(self.display_name)) and equals_ignore_case(
            self.display_name, alias_name
        )


def resolve_tenant(tenants: list[Tenant], alias_id: str | None, alias_name: str | None) -> Tenant | None:
    """Find the owning tenant: alias id, then alias name, then display name."""
    if _tidy(alias_id):
        for t in tenants:
            if t.matches_alias_id(alias_id):
                return t
    if _tidy(alias_name):
        for t in tenants:
            if t.matches_alias_name(alias_name):
                return t
        for t in tenants:
            if t.matches_display_name(alias_name):
                return t
    return None


@dataclass(frozen=True)
class TenantScope:
    """Everything a persisted row may carry that ties it to one tenant."""
    tenant_id: str
    alias_ids: frozenset[str]  # lowercased, trimmed
    name_keys: frozenset[str]  # loose_name_key() of names and their variants

    @classmethod
    def for_tenant(cls, tenant: Tenant) -> TenantScope:
        ids = frozenset(_tidy(a).lower() for a in tenant.alias_ids if _tidy(a))
        names: set[str] = set()
        for raw in [*tenant.alias_names, tenant.display_name]:
            for variant in name_variants(raw):
                key = loose_name_key(variant)
                if key:
                    names.add(key)
        return cls(tenant_id=str(tenant.id), alias_ids=ids, name_keys=frozenset(names))

    def matches(self, tenant_id: str | None, alias_id: str | None, alias_name: str | None) -> bool:
        if tenant_id is not None and str(tenant_id) == self.tenant_id:
            return True
        if _tidy(alias_id) and _tidy(alias_id).lower() in self.alias_ids:
            return True
        # names only claim rows no tenant owns yet
        if _tidy(tenant_id) or not _tidy(alias_name):
            return False
        return any(loose_name_key(v) in self.name_keys for v in name_variants(alias_name))
