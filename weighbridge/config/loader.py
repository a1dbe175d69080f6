from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DatabaseConfig,
    DateGuessConfig,
    HeaderVocabulary,
    IngestConfig,
)

"""Config loader.

Responsibilities:
- Load YAML (default ``config/ingest.yml``)
- Validate against ``ingest_schema.json`` (shipped beside this module)
- Apply defaults for every missing optional key

A missing default file yields the built-in defaults; a missing file that was
asked for explicitly is a ConfigError.
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "config_from_dict",
]

DEFAULT_CONFIG_PATH = Path("config/ingest.yml")
SCHEMA_PATH = Path(__file__).with_name("ingest_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            config data fails validation (wrong types, unknown keys, ...).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _vocabulary(raw: dict[str, Any]) -> HeaderVocabulary:
    """Merge configured vocabulary over the defaults, field by field."""
    base = HeaderVocabulary()
    fields = {**base.fields, **raw.get("fields", {})}
    mix_fields = {**base.mix_fields, **raw.get("mix_fields", {})}
    type_tokens = {**base.type_tokens, **raw.get("type_tokens", {})}
    header_keys = raw.get("header_keys")
    if header_keys is None:
        header_keys = base.header_keys
    return HeaderVocabulary(
        header_keys={str(k): float(v) for k, v in header_keys.items()},
        fields=fields,
        mix_fields=mix_fields,
        type_tokens=type_tokens,
        scan_rows=raw.get("scan_rows", base.scan_rows),
        min_score=raw.get("min_score", base.min_score),
    )


def config_from_dict(data: dict[str, Any]) -> IngestConfig:
    _validate_config_schema(data)
    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    guess_raw = data.get("date_guess", {})
    date_guess = DateGuessConfig(
        sample_rows=guess_raw.get("sample_rows", DateGuessConfig.sample_rows),
        min_ratio=guess_raw.get("min_ratio", DateGuessConfig.min_ratio),
    )
    return IngestConfig(
        database=db,
        vocabulary=_vocabulary(data.get("header_vocabulary", {})),
        date_guess=date_guess,
        page_size=data.get("page_size", 1000),
        timezone=data.get("timezone", "Asia/Bangkok"),
    )


def load_config(path: Path | None = None) -> IngestConfig:
    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return IngestConfig()
        path = DEFAULT_CONFIG_PATH
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return config_from_dict(data)
