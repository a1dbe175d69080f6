from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from ..excel.headers import pick_columns, records_from_rows
from ..excel.reader import is_blank
from ..models.config_models import HeaderVocabulary
from ..models.mix_reference import MixReferenceEntry

"""Mix reference resolver.

Builds, from the optional reference ("mix") sheet, two lookup tables per
tenant-alias scope:

- project code -> project display name
- normalized mix name -> entry (code + display name)

Both tables are first-write-wins within one workbook.
"""

__all__ = [
    "normalize_mix_key",
    "MixReferenceIndex",
    "build_mix_reference",
]

_MIX_PUNCT = re.compile(r"[()\[\]{}、,.;:]")
_MIX_JOINERS = re.compile(r"[\s\-_/]+")

GLOBAL_SCOPE = "*"


def normalize_mix_key(value: Any) -> str:
    """``"AC-Wearing (60/70)"`` -> ``"ACWEARING6070"``."""
    text = "" if is_blank(value) else str(value).strip().lower()
    text = _MIX_PUNCT.sub(" ", text)
    return _MIX_JOINERS.sub("", text).upper()


def _tidy(value: Any) -> str:
    return "" if is_blank(value) else str(value).strip()


def _scopes(alias_id: str | None, alias_name: str | None) -> list[str]:
    scopes = []
    if _tidy(alias_id):
        scopes.append(f"id:{_tidy(alias_id).lower()}")
    if _tidy(alias_name):
        scopes.append(f"name:{_tidy(alias_name).lower()}")
    return scopes


class MixReferenceIndex:
    """Scoped lookup tables; lookups fall back from alias id to alias name to unscoped entries."""

    def __init__(self) -> None:
        self._code_names: dict[tuple[str, str], str] = {}
        self._mixes: dict[tuple[str, str], MixReferenceEntry] = {}
        self._entries: dict[tuple[str, str], MixReferenceEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[MixReferenceEntry]:
        return list(self._entries.values())

    def add(self, entry: MixReferenceEntry) -> None:
        code = entry.code.strip().upper()
        if not code:
            return
        self._entries.setdefault((entry.scope_key, code), entry)
        # Scoped entries stay invisible to other aliases; only unscoped ones are global.
        for scope in _scopes(entry.scope_alias_id, entry.scope_alias_name) or [GLOBAL_SCOPE]:
            if entry.project_name:
                self._code_names.setdefault((scope, code), entry.project_name)
            if entry.mix_name:
                key = normalize_mix_key(entry.mix_name)
                if key:
                    self._mixes.setdefault((scope, key), entry)

    def project_name(self, code: str | None, alias_id: str | None = None, alias_name: str | None = None) -> str | None:
        code = _tidy(code).upper()
        if not code:
            return None
        for scope in [*_scopes(alias_id, alias_name), GLOBAL_SCOPE]:
            name = self._code_names.get((scope, code))
            if name:
                return name
        return None

    def match_mix(
        self, mix_name: str | None, alias_id: str | None = None, alias_name: str | None = None
    ) -> MixReferenceEntry | None:
        key = normalize_mix_key(mix_name)
        if not key:
            return None
        for scope in [*_scopes(alias_id, alias_name), GLOBAL_SCOPE]:
            entry = self._mixes.get((scope, key))
            if entry is not None:
                return entry
        return None


def _first_non_blank_row(rows: Sequence[Sequence[Any]]) -> int:
    for i, row in enumerate(rows):
        if any(not is_blank(v) for v in row):
            return i
    return -1


def build_mix_reference(
    rows: Sequence[Sequence[Any]],
    vocabulary: HeaderVocabulary | None = None,
    fallback_alias_id: str | None = None,
    fallback_alias_name: str | None = None,
) -> MixReferenceIndex:
    """Build the index from the raw rows of a reference sheet.

    Reference rows without alias columns inherit the fallback alias (the single
    alias seen on the transactions sheet, if there is exactly one).
    """
    vocab = vocabulary or HeaderVocabulary()
    index = MixReferenceIndex()
    header_index = _first_non_blank_row(rows)
    if header_index < 0:
        return index
    sheet = records_from_rows(rows, header_index)
    cols = pick_columns(sheet.headers, vocab.mix_fields)

    def get(record: dict[str, Any], name: str) -> str:
        col = cols.get(name)
        return _tidy(record.get(col)) if col else ""

    for _, record in sheet.records:
        code = get(record, "code").upper()
        if not code:
            continue
        project_name = get(record, "project_name")
        mix_name = get(record, "mix_name")
        index.add(
            MixReferenceEntry(
                code=code,
                project_name=project_name or mix_name,
                mix_name=mix_name,
                scope_alias_id=get(record, "alias_id") or _tidy(fallback_alias_id) or None,
                scope_alias_name=get(record, "alias_name") or _tidy(fallback_alias_name) or None,
            )
        )
    return index
