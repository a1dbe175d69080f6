from __future__ import annotations

from pathlib import Path

import pytest

from weighbridge.config.loader import ConfigError, config_from_dict, load_config
from weighbridge.models.config_models import DEFAULT_FIELDS, IngestConfig


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.database.host == "localhost"
    assert cfg.database.port == 5432
    assert cfg.page_size == 200
    assert cfg.timezone == "Asia/Bangkok"
    assert cfg.vocabulary.scan_rows == 50
    assert cfg.date_guess.min_ratio == 0.5
    assert cfg.date_guess.sample_rows == 200


def test_configured_synonyms_replace_one_field_and_keep_the_rest(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.vocabulary.synonyms("weight") == ["NET WT", "WEIGHT"]
    assert cfg.vocabulary.synonyms("date") == DEFAULT_FIELDS["date"]


def test_default_path_is_used_when_no_path_given(write_config: Path):
    assert load_config().page_size == 200


def test_missing_default_file_yields_defaults(temp_workdir: Path):
    assert load_config() == IngestConfig()


def test_load_config_missing_file(temp_workdir: Path):
    missing = temp_workdir / "config" / "not_exists.yml"
    with pytest.raises(ConfigError):
        load_config(missing)


def test_load_config_invalid_yaml(write_config: Path):
    write_config.write_text("database: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "invalid yaml" in str(e.value)


def test_load_config_root_must_be_mapping(write_config: Path):
    write_config.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(write_config)


def test_load_config_extra_field(write_config: Path):
    # additionalProperties: false at the root
    text = write_config.read_text(encoding="utf-8") + "\nextra_field: not_allowed\n"
    write_config.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "config validation failed" in str(e.value)


@pytest.mark.parametrize(
    "data",
    [
        {"page_size": 0},
        {"database": {"port": "5432"}},
        {"header_vocabulary": {"fields": {"date": []}}},
        {"header_vocabulary": {"type_tokens": {"RETURN": ["x"]}}},
        {"date_guess": {"min_ratio": 1.5}},
    ],
)
def test_schema_rejects_bad_values(data):
    with pytest.raises(ConfigError):
        config_from_dict(data)


def test_header_keys_replace_defaults_entirely():
    cfg = config_from_dict({"header_vocabulary": {"header_keys": {"NET WT": 2, "DATE": 1}}})
    assert cfg.vocabulary.header_keys == {"NET WT": 2.0, "DATE": 1.0}


def test_type_tokens_merge_per_side():
    cfg = config_from_dict({"header_vocabulary": {"type_tokens": {"BUY": ["RECEIVE"]}}})
    assert cfg.vocabulary.type_tokens["BUY"] == ["RECEIVE"]
    assert "SELL" in cfg.vocabulary.type_tokens["SELL"]


def test_shipped_example_config_is_valid():
    example = Path(__file__).resolve().parents[2] / "config" / "ingest.yml"
    cfg = load_config(example)
    assert "NET WT" in cfg.vocabulary.synonyms("weight")
