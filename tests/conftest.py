# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from catalog_checker.logging.init import reset_logging
from catalog_checker.models.process_error import Message

ESSENTIAL_HEADERS = [
    "name",
    "catalog_number",
    "supplier_catalog_number",
    "supplier.id",
    "price.buy.currency",
    "price.buy.amount",
    "price.promotion_price.amount",
    "shipment.dry_ice",
    "size",
    "available",
    "display",
]

FIELD_DEFINITIONS: list[dict[str, Any]] = [
    {
        "name": "species",
        "type": "constant",
        "value": [
            {"name": "Human", "properties": [{"name": "homo sapiens"}]},
            {"name": "Mouse", "properties": [{"name": "mus musculus"}]},
        ],
    },
    {"name": "application", "type": "variable", "value": []},
]


def product_row(catalog_number: Any = "A1", supplier_id: Any = 5, **overrides: Any) -> dict[str, Any]:
    """A fully valid product row (essential fields + additional fields)."""
    row: dict[str, Any] = {
        "name": f"Antibody {catalog_number}",
        "catalog_number": catalog_number,
        "supplier_catalog_number": f"S-{catalog_number}",
        "supplier.id": supplier_id,
        "price.buy.currency": "EUR",
        "price.buy.amount": "10.5",
        "price.promotion_price.amount": "",
        "shipment.dry_ice": "false",
        "size": "100 ul",
        "available": "true",
        "display": "yes",
        "species": "Human",
        "application": "WB",
    }
    row.update(overrides)
    return row


@pytest.fixture(autouse=True)
def _reset_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "temp").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """temp_directory: temp
chunk_size: 500
stream:
  send_delay_ms: 0
  queue_size: 10
local_store:
  field_definitions_file: config/fields.yml
  fingerprints_file: data/fingerprints.json
  suppliers: [5, 7]
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def fields_yaml() -> str:
    return """fields:
  - name: species
    type: constant
    value:
      - name: Human
        properties:
          - name: homo sapiens
      - name: Mouse
        properties:
          - name: mus musculus
  - name: application
    type: variable
    value: []
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str, fields_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "checker.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    (temp_workdir / "config" / "fields.yml").write_text(fields_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def make_workbook() -> Callable[..., Path]:
    """Write real .xlsx files with pandas + openpyxl.

    ``sheets`` maps sheet name -> list of row dicts (or a DataFrame).
    """

    def _make(path: Path, sheets: dict[str, Sequence[dict[str, Any]] | pd.DataFrame]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            for name, rows in sheets.items():
                df = rows if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
                df.to_excel(writer, sheet_name=name, index=False)
        return path

    return _make


@pytest.fixture()
def collect() -> tuple[list[Message], Callable[[Message], None]]:
    """A list plus a send function appending to it."""
    messages: list[Message] = []
    return messages, messages.append


@pytest.fixture()
def row_factory() -> Callable[..., dict[str, Any]]:
    return product_row


@pytest.fixture()
def field_definitions() -> list[dict[str, Any]]:
    return [dict(d) for d in FIELD_DEFINITIONS]
