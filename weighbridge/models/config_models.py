from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the weighbridge ingest pipeline.

Header detection and column lookup are driven by a scoring table rather than
literals buried in the parser, so new export formats only need YAML changes:

- ``header_keys``: label variant -> weight, summed per row to find the header row
- ``fields``: logical field -> accepted column label synonyms, in priority order
- ``type_tokens``: BUY / SELL -> tokens found in the type/direction column
"""

DEFAULT_HEADER_KEYS: dict[str, float] = {
    "ประเภทชั่ง": 1, "TRAN TYPE": 1, "TYPE": 1,
    "สินค้า": 1, "PRODUCT": 1, "ITEM": 1,
    "ชื่อ JOB MIX": 1, "JOB MIX": 1, "MIX NAME": 1,
    "DD/MM/YYYY": 1, "วันที่": 1, "DATE": 1,
    "น้ำหนักสุทธิ FINAL": 1, "น้ำหนักสุทธิ": 1, "นน.FINAL": 1, "นน.": 1,
    "WEIGHT": 1, "NET WEIGHT": 1,
    "หน่วย": 1, "UNIT": 1,
}

DEFAULT_FIELDS: dict[str, list[str]] = {
    "alias_name": ["บริษัท", "Company", "COMPANY", "COMPANY NAME", "ลูกค้า/บริษัท"],
    "alias_id": ["companyId", "COMPANY ID", "CompanyId", "รหัสบริษัท", "COMPANY CODE"],
    "type": ["ประเภทชั่ง", "TRAN TYPE", "TYPE", "DIRECTION"],
    "product": ["สินค้า", "PRODUCT", "ITEM", "MATERIAL"],
    "mix_name": ["ชื่อ Job Mix", "JOB MIX", "MIX NAME", "JOB MIX NAME"],
    "date": ["DD/MM/YYYY", "วันที่", "DATE", "TRANSACTION DATE", "DOC DATE"],
    "weight": ["น้ำหนักสุทธิ final", "น้ำหนักสุทธิ", "นน.final", "นน.", "WEIGHT", "NET WEIGHT"],
    "unit": ["หน่วย", "UNIT"],
    "note": ["หมายเหตุ", "NOTE", "REMARK"],
    "customer": ["ชื่อลูกค้า", "ลูกค้า", "CUSTOMER"],
    "code": ["CODE", "รหัส", "รหัสงาน", "Project Code", "MIX CODE", "SITE CODE"],
    "weigh_number": ["เลขที่ชั่ง", "WEIGH NO", "WEIGH NUMBER", "SCALE NO"],
}

# Reference (mix) sheet columns; matched exactly, then case-insensitively.
DEFAULT_MIX_FIELDS: dict[str, list[str]] = {
    "code": ["code", "CODE", "Code", "mixCode", "Mix Code", "MIX CODE", "รหัส"],
    "project_name": [
        "projectName", "Project Name", "PROJECT NAME", "ชื่อโครงการ", "ชื่องาน", "name", "NAME", "Name",
    ],
    "mix_name": ["mixName", "Mix Name", "MIX NAME", "jobMix", "Job Mix", "JOB MIX NAME", "JOB MIX"],
    "alias_id": ["companyId", "CompanyId", "COMPANYID", "COMPANY ID"],
    "alias_name": ["companyName", "CompanyName", "บริษัท", "บริษัท/หน่วยงาน", "COMPANY"],
}

DEFAULT_TYPE_TOKENS: dict[str, list[str]] = {
    "BUY": ["BUY", "ซื้อ", "ขาเข้า"],
    "SELL": ["SELL", "ขาย", "ขาออก"],
}


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class HeaderVocabulary:
    header_keys: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_HEADER_KEYS))
    fields: dict[str, list[str]] = field(default_factory=lambda: {k: list(v) for k, v in DEFAULT_FIELDS.items()})
    mix_fields: dict[str, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_MIX_FIELDS.items()}
    )
    type_tokens: dict[str, list[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_TYPE_TOKENS.items()}
    )
    scan_rows: int = 100
    min_score: float = 2

    def synonyms(self, name: str) -> list[str]:
        return self.fields.get(name, [])


@dataclass(frozen=True)
class DateGuessConfig:
    sample_rows: int = 200
    min_ratio: float = 0.6


@dataclass(frozen=True)
class IngestConfig:
    """Root configuration object for the ingest pipeline."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    vocabulary: HeaderVocabulary = field(default_factory=HeaderVocabulary)
    date_guess: DateGuessConfig = field(default_factory=DateGuessConfig)
    page_size: int = 1000
    timezone: str = "Asia/Bangkok"
