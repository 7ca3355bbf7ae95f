from __future__ import annotations

from pathlib import Path

import pytest

from crm_import.config.defaults import DEFAULT_FIELD_ALIASES, build_alias_table
from crm_import.config.loader import ConfigError, load_config
from crm_import.models.target_field import TargetField


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.preview_limit == 5
    assert cfg.error_log_dir == "./logs"
    assert cfg.modules is not None
    assert cfg.modules["contacts"][0] == TargetField("first_name", "First Name", True)
    assert cfg.modules["contacts"][3] == TargetField("phone", "Phone", False)
    assert cfg.database.host == "localhost"
    assert cfg.database.port == 5432
    assert cfg.database.dsn is None


def test_field_aliases_override_keeps_other_defaults(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.field_aliases["mailing_zip"] == ("zip", "postal code")
    assert cfg.field_aliases["email"] == DEFAULT_FIELD_ALIASES["email"]
    assert list(cfg.field_aliases)[:3] == ["first_name", "last_name", "email"]


def test_minimal_config_uses_defaults(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("", encoding="utf-8")
    cfg = load_config(p)
    assert cfg.preview_limit == 5
    assert cfg.error_log_dir == "logs"
    assert cfg.modules is None
    assert cfg.field_aliases == DEFAULT_FIELD_ALIASES
    assert cfg.duplicate_strategy == "skip"


def test_replace_default_aliases(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text(
        "replace_default_aliases: true\nfield_aliases:\n  email: ['  Courriel ']\n",
        encoding="utf-8",
    )
    cfg = load_config(p)
    assert dict(cfg.field_aliases) == {"email": ("courriel",)}


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.yml")


@pytest.mark.parametrize(
    "body",
    [
        "preview_limit: 0\n",
        "preview_limit: five\n",
        "unknown_key: 1\n",
        "modules:\n  contacts:\n    fields:\n      - {label: No Key}\n",
        "modules:\n  contacts:\n    fields: []\n    extra: 1\n",
        "database:\n  port: '5432'\n",
    ],
)
def test_schema_violations_raise(temp_workdir: Path, body: str):
    p = temp_workdir / "config" / "import.yml"
    p.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(p)


def test_non_mapping_root_raises(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(p)


def test_invalid_yaml_raises(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("preview_limit: [1\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(p)


def test_duplicate_field_keys_rejected(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text(
        "modules:\n  contacts:\n    fields:\n"
        "      - {key: email, label: Email}\n"
        "      - {key: email, label: E-mail}\n",
        encoding="utf-8",
    )
    with pytest.raises(ConfigError, match="duplicate field keys"):
        load_config(p)


def test_build_alias_table_appends_new_keys_after_base():
    table = build_alias_table({"nickname": ["Alias", " "]})
    assert list(table)[-1] == "nickname"
    assert table["nickname"] == ("alias",)
    with pytest.raises(TypeError):
        table["x"] = ()  # type: ignore[index]


def test_duplicate_strategy_read_and_validated(temp_workdir: Path):
    p = temp_workdir / "config" / "import.yml"
    p.write_text("duplicate_strategy: error\n", encoding="utf-8")
    assert load_config(p).duplicate_strategy == "error"

    p.write_text("duplicate_strategy: merge\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="config validation failed"):
        load_config(p)
