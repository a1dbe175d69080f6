from __future__ import annotations

import math
import numbers
import re
from typing import Any

from ..excel.reader import is_blank
from ..models.config_models import DEFAULT_TYPE_TOKENS
from ..models.error_record import DATE_PARSE_ERROR, NON_POSITIVE_QUANTITY
from ..models.transaction import (
    DIRECTION_IN,
    DIRECTION_OUT,
    TYPE_BUY,
    TYPE_SELL,
    NormalizedTransactionRow,
    RawRow,
)
from .dates import normalize_date
from .mix_reference import MixReferenceIndex

"""Row normalizer: one RawRow -> one NormalizedTransactionRow (or a rejection).

Quantities are converted to tonnes. The export's unit column is trusted when
it names kilograms or tonnes; anything else (including no unit at all) is
read as kilograms, the weighbridge default.

Project codes are resolved in strict precedence:
explicit code column, ``code=XXXX`` in the note, a ``ABC123`` style token in
the note, the same token in the customer name, then the mix-name lookup.
"""

__all__ = [
    "RowRejected",
    "UNIT_KG",
    "UNIT_TONNE",
    "UNIT_LITRE",
    "DEFAULT_SELL_PRODUCT",
    "DEFAULT_BUY_PRODUCT",
    "cell_text",
    "parse_quantity",
    "classify_unit",
    "to_tons",
    "resolve_type",
    "resolve_project_code",
    "normalize_row",
]

UNIT_KG = "kg"
UNIT_TONNE = "tonne"
UNIT_LITRE = "litre"

DEFAULT_SELL_PRODUCT = "แอสฟัลต์ติกคอนกรีต"
DEFAULT_BUY_PRODUCT = "ไม่ระบุ"

_KG_TOKENS = ("กก", "กิโล", "KG", "KILO")
_TONNE_TOKENS = ("ตัน", "TON", "T.")
_LITRE_TOKENS = ("ลิตร", "LIT", "LTR")

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_NOTE_CODE = re.compile(r"code\s*=\s*([A-Za-z0-9_-]+)", re.IGNORECASE)
_IMPLIED_CODE = re.compile(r"([A-Za-z]{3}\d{3,})")
_IN_WORD = re.compile(r"\bIN\b")
_OUT_WORD = re.compile(r"\bOUT\b")


class RowRejected(Exception):
    """Raised for a row that must be dropped; ``error_type`` classifies why."""

    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type


def cell_text(value: Any) -> str:
    """Trimmed text of a cell; integral floats lose their ``.0`` (IDs, weigh numbers)."""
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def parse_quantity(value: Any) -> float:
    """Parse a weight cell; thousands separators are stripped, junk becomes 0."""
    if is_blank(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, numbers.Real):
        number = float(value)
        return 0.0 if math.isnan(number) or math.isinf(number) else number
    raw = str(value).strip().replace(",", "")
    if not raw:
        return 0.0
    try:
        number = float(raw)
    except ValueError:
        m = _NUMBER.search(raw)
        return float(m.group(0)) if m else 0.0
    return 0.0 if math.isnan(number) or math.isinf(number) else number


def classify_unit(unit_raw: Any) -> str:
    unit = cell_text(unit_raw).upper()
    if not unit:
        return UNIT_KG
    if any(t in unit for t in _KG_TOKENS):
        return UNIT_KG
    if unit == "T" or any(t in unit for t in _TONNE_TOKENS):
        return UNIT_TONNE
    if any(t in unit for t in _LITRE_TOKENS):
        return UNIT_LITRE
    return UNIT_KG


def to_tons(value: Any, unit_raw: Any) -> float:
    """Weight in tonnes; only an explicit tonne unit passes through unchanged."""
    weight = parse_quantity(value)
    if not weight:
        return 0.0
    if classify_unit(unit_raw) == UNIT_TONNE:
        return weight
    return weight / 1000


def resolve_type(
    type_raw: Any, product_detail: str, tokens: dict[str, list[str]] | None = None
) -> tuple[str, str | None]:
    """Return ``(type, direction)``.

    Direction is only set when the type column says so; otherwise the type is
    inferred (a job-mix detail means an outbound asphalt sale).
    """
    vocab = tokens or DEFAULT_TYPE_TOKENS
    text = cell_text(type_raw).upper()
    if text:
        if any(t.upper() in text for t in vocab.get(TYPE_BUY, [])) or _IN_WORD.search(text):
            return TYPE_BUY, DIRECTION_IN
        if any(t.upper() in text for t in vocab.get(TYPE_SELL, [])) or _OUT_WORD.search(text):
            return TYPE_SELL, DIRECTION_OUT
    return (TYPE_SELL if product_detail else TYPE_BUY), None


def resolve_project_code(code_raw: Any, note: str, customer: str) -> str:
    code = cell_text(code_raw).upper()
    if code:
        return code
    m = _NOTE_CODE.search(note)
    if m:
        return m.group(1).upper()
    m = _IMPLIED_CODE.search(note)
    if m:
        return m.group(1).upper()
    m = _IMPLIED_CODE.search(customer)
    if m:
        return m.group(1).upper()
    return ""


def normalize_row(
    record: RawRow,
    columns: dict[str, str | None],
    mix_index: MixReferenceIndex | None = None,
    row_number: int = -1,
    type_tokens: dict[str, list[str]] | None = None,
) -> NormalizedTransactionRow:
    """Normalize one data row.

    Raises RowRejected when the date does not parse or the quantity is not positive.
    """

    def get(field: str) -> Any:
        col = columns.get(field)
        return record.get(col) if col else None

    date_str = normalize_date(get("date"))
    if not date_str:
        raise RowRejected(DATE_PARSE_ERROR, f"unparseable date: {get('date')!r}")

    tons = round(to_tons(get("weight"), get("unit")), 3)
    if tons <= 0:
        raise RowRejected(NON_POSITIVE_QUANTITY, f"quantity {get('weight')!r} {get('unit')!r} is not positive")

    alias_id = cell_text(get("alias_id"))
    alias_name = cell_text(get("alias_name"))
    product_detail = cell_text(get("mix_name"))
    row_type, direction = resolve_type(get("type"), product_detail, type_tokens)
    product = cell_text(get("product")) or (DEFAULT_SELL_PRODUCT if row_type == TYPE_SELL else DEFAULT_BUY_PRODUCT)
    note = cell_text(get("note"))
    customer = cell_text(get("customer"))

    project_code = resolve_project_code(get("code"), note, customer)
    project_name = ""
    if mix_index is not None:
        if not project_code and product_detail:
            entry = mix_index.match_mix(product_detail, alias_id, alias_name)
            if entry is not None:
                project_code = entry.code
                project_name = entry.display_name
        if project_code and not project_name:
            project_name = mix_index.project_name(project_code, alias_id, alias_name) or ""

    row = NormalizedTransactionRow(
        date_str=date_str,
        type=row_type,
        product=product,
        product_detail=product_detail,
        quantity_tons=tons,
        unit=classify_unit(get("unit")),
        project_code=project_code or None,
        project_name=project_name or None,
        customer=customer or None,
        note=note or None,
        source_alias_id=alias_id or None,
        source_alias_name=alias_name or None,
        weigh_number=cell_text(get("weigh_number")) or None,
        direction=direction,
        row_number=row_number,
    )
    return row.with_hash()
