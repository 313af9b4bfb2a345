from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DEFAULT_CURRENCIES,
    CheckerConfig,
    DatabaseConfig,
    LocalStoreConfig,
    StreamConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config/checker.yml
- Validate against the bundled JSON schema (config_schema.json)
- Apply defaults for every optional key
- Load the local-mode field definitions file (YAML or JSON)
"""

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
FIELD_DEFINITIONS_SCHEMA_PATH = Path(__file__).parent / "field_definitions_schema.json"

DEFAULT_CONFIG_PATH = Path("config/checker.yml")


class ConfigError(Exception):
    pass


def _read_schema(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"config schema not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against JSON schema.

    Raises:
        ConfigError: If the schema file is missing / not valid JSON, or the
            config data fails schema validation (missing required keys,
            wrong types, unknown keys).
    """
    schema = _read_schema(SCHEMA_PATH)
    try:
        jsonschema.validate(data, schema)
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> CheckerConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")

    _validate_config_schema(data)

    defaults = CheckerConfig(temp_directory=data["temp_directory"])
    stream_raw = data.get("stream") or {}
    stream_defaults = StreamConfig()
    stream = StreamConfig(
        send_delay_ms=stream_raw.get("send_delay_ms", stream_defaults.send_delay_ms),
        queue_size=stream_raw.get("queue_size", stream_defaults.queue_size),
        itemized_diagnostics=stream_raw.get(
            "itemized_diagnostics", stream_defaults.itemized_diagnostics
        ),
        display_batch_size=stream_raw.get(
            "display_batch_size", stream_defaults.display_batch_size
        ),
    )
    local_raw = data.get("local_store") or {}
    local_store = LocalStoreConfig(
        field_definitions_file=local_raw.get("field_definitions_file"),
        fingerprints_file=local_raw.get("fingerprints_file"),
        suppliers=tuple(local_raw.get("suppliers", [])),
    )
    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    currencies = data.get("currencies")
    return CheckerConfig(
        temp_directory=data["temp_directory"],
        chunk_size=data.get("chunk_size", defaults.chunk_size),
        regex_cache_size=data.get("regex_cache_size", defaults.regex_cache_size),
        # 通貨コードは大文字で保持
        currencies=tuple(c.upper() for c in currencies) if currencies else DEFAULT_CURRENCIES,
        fingerprint_sample_size=data.get(
            "fingerprint_sample_size", defaults.fingerprint_sample_size
        ),
        blueprint_name=data.get("blueprint_name", defaults.blueprint_name),
        field_definitions_document=data.get(
            "field_definitions_document", defaults.field_definitions_document
        ),
        stream=stream,
        local_store=local_store,
        database=db,
    )


def validate_field_definitions(document: Any) -> None:
    """Validate a field-definitions document shape.

    Raises:
        jsonschema.exceptions.ValidationError: the document does not match
    """
    jsonschema.validate(document, _read_schema(FIELD_DEFINITIONS_SCHEMA_PATH))


def load_field_definitions_file(path: Path) -> list[dict[str, Any]]:
    """Load the local-mode field definitions document.

    Accepts either a bare list of definitions or a mapping with a ``fields``
    key. JSON is a subset of YAML so both formats go through yaml.safe_load.
    """
    if not path.exists():
        raise ConfigError(f"field definitions file not found: {path}")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid field definitions file: {e}") from e
    if isinstance(raw, dict):
        raw = raw.get("fields")
    if not isinstance(raw, list):
        raise ConfigError(f"field definitions file must contain a list of fields: {path}")
    return raw
