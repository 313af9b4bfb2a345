from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from catalog_checker.db.stores import InMemoryBlueprintStore, InMemoryFieldDefinitionSource
from catalog_checker.models.config_models import CheckerConfig, StreamConfig
from catalog_checker.services.orchestrator import run_validation
from catalog_checker.services.regex_cache import RegexMatchCache
from catalog_checker.services.reporter import to_sse_frame

"""Wire format contract: every streamed record matches message.schema.json."""

SCHEMA_PATH = Path(__file__).parent / "schemas" / "message.schema.json"


@pytest.fixture(scope="module")
def schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def _messages(tmp_path: Path, make_workbook, rows, field_definitions, **stream) -> list:
    temp = tmp_path / "temp"
    make_workbook(temp / "cat.xlsx", {"Sheet1": rows, "Empty": []})
    config = CheckerConfig(temp_directory=str(temp), chunk_size=2, stream=StreamConfig(**stream))
    messages: list = []
    run_validation(
        config,
        5,
        "/temp/cat.xlsx",
        messages.append,
        field_source=InMemoryFieldDefinitionSource({"product_additional_fields": field_definitions}),
        blueprints=InMemoryBlueprintStore(),
        matcher=RegexMatchCache(),
        logs_dir=tmp_path / "logs",
    )
    return messages


def _rows(row_factory) -> list[dict]:
    return [
        row_factory("A1"),
        row_factory("A1"),
        row_factory("A2", colour="red"),
        row_factory("A3", **{"price.buy.amount": "abc"}),
        row_factory("A4", supplier_id=7),
    ]


@pytest.mark.parametrize("itemized", [False, True])
def test_every_message_matches_schema(tmp_path, make_workbook, row_factory, field_definitions, schema, itemized):
    messages = _messages(tmp_path, make_workbook, _rows(row_factory), field_definitions, itemized_diagnostics=itemized)
    assert len(messages) > 5
    for message in messages:
        jsonschema.validate(message.to_dict(), schema)
        # SSE フレームの payload も同一
        frame = to_sse_frame(message)
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        jsonschema.validate(json.loads(frame[len("data: ") : -2]), schema)


def test_summary_is_the_only_summary_record(tmp_path, make_workbook, row_factory, field_definitions):
    messages = _messages(tmp_path, make_workbook, _rows(row_factory), field_definitions)
    payloads = [m.to_dict() for m in messages]
    summaries = [p for p in payloads if p["type"] == "summary_report"]
    assert len(summaries) == 1
    assert summaries[0]["totalProducts"] == 5
    # Summary は "Process Completed." の直前
    index = payloads.index(summaries[0])
    assert payloads[index + 1]["message"] == "Process Completed."


def test_schema_rejects_unknown_keys(schema):
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate({"type": "info", "severity": "info", "message": "x", "extra": 1}, schema)
    with pytest.raises(jsonschema.exceptions.ValidationError):
        jsonschema.validate({"type": "info", "severity": "fatal", "message": "x"}, schema)
