from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.target_field import TargetField
from .defaults import (
    DEFAULT_DUPLICATE_STRATEGY,
    DEFAULT_ERROR_LOG_DIR,
    DEFAULT_FIELD_ALIASES,
    DEFAULT_PREVIEW_LIMIT,
    AliasTable,
    build_alias_table,
)

"""Config loader.

Responsibilities:
- Load the YAML import config (default ``config/import.yml``)
- Validate it against the packaged JSON schema (unknown keys rejected)
- Apply defaults (preview_limit=5, error_log_dir=logs, duplicate_strategy=skip,
  built-in aliases)
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection fallback; environment variables take precedence."""
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    preview_limit: int = DEFAULT_PREVIEW_LIMIT
    error_log_dir: str = DEFAULT_ERROR_LOG_DIR
    field_aliases: AliasTable = field(default_factory=lambda: DEFAULT_FIELD_ALIASES)
    # module id -> fields. None = DB の crm_fields を使う
    modules: dict[str, tuple[TargetField, ...]] | None = None
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    duplicate_strategy: str = DEFAULT_DUPLICATE_STRATEGY  # skip | error


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: Schema file missing/invalid, or the data violates it
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


def _parse_modules(raw: dict[str, Any] | None) -> dict[str, tuple[TargetField, ...]] | None:
    if raw is None:
        return None
    modules: dict[str, tuple[TargetField, ...]] = {}
    for module_id, module in raw.items():
        fields = tuple(TargetField.from_dict(f) for f in module["fields"])
        keys = [f.key for f in fields]
        dupes = sorted({k for k in keys if keys.count(k) > 1})
        if dupes:
            raise ConfigError(f"module '{module_id}' has duplicate field keys: {dupes}")
        modules[str(module_id)] = fields
    return modules


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    base = None if data.get("replace_default_aliases", False) else DEFAULT_FIELD_ALIASES
    aliases = build_alias_table(data.get("field_aliases"), base=base)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        preview_limit=data.get("preview_limit", DEFAULT_PREVIEW_LIMIT),
        error_log_dir=data.get("error_log_dir", DEFAULT_ERROR_LOG_DIR),
        field_aliases=aliases,
        modules=_parse_modules(data.get("modules")),
        database=db,
        duplicate_strategy=data.get("duplicate_strategy", DEFAULT_DUPLICATE_STRATEGY),
    )
