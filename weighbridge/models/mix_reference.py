from __future__ import annotations

from dataclasses import dataclass

"""Mix / project reference entry read from the reference sheet."""

__all__ = [
    "MixReferenceEntry",
]


@dataclass(frozen=True)
class MixReferenceEntry:
    """Read-only lookup entry linking a project code to its display name and mix.

    ``code`` is always stored uppercased.
    """
    code: str
    project_name: str
    mix_name: str
    scope_alias_id: str | None = None
    scope_alias_name: str | None = None
    scope_tenant_id: str | None = None

    @property
    def scope_key(self) -> str:
        """Storage uniqueness scope; mirrors the (scope, code) unique index."""
        if self.scope_tenant_id:
            return f"tenant:{self.scope_tenant_id}"
        if self.scope_alias_id:
            return f"id:{self.scope_alias_id.strip().lower()}"
        if self.scope_alias_name:
            return f"name:{self.scope_alias_name.strip().lower()}"
        return "global"

    @property
    def display_name(self) -> str:
        return self.project_name or self.mix_name or self.code
