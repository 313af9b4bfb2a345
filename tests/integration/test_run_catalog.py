from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from catalog_checker.db.stores import (
    InMemoryFieldDefinitionSource,
    InMemorySupplierDirectory,
    JsonFileBlueprintStore,
)
from catalog_checker.models.config_models import CheckerConfig
from catalog_checker.models.process_error import SummaryReport
from catalog_checker.models.run_outcome import RunStatus
from catalog_checker.services.orchestrator import run_validation
from catalog_checker.services.regex_cache import RegexMatchCache
from catalog_checker.services.upload import stage_upload

"""End-to-end runs over real files: upload -> streaming validation -> blueprint."""


@pytest.fixture()
def env(tmp_path: Path, field_definitions):
    temp = tmp_path / "temp"
    return {
        "config": CheckerConfig(temp_directory=str(temp), chunk_size=3),
        "temp": temp,
        "source": InMemoryFieldDefinitionSource({"product_additional_fields": field_definitions}),
        "blueprints": JsonFileBlueprintStore(tmp_path / "data" / "fingerprints.json"),
        "suppliers": InMemorySupplierDirectory([5, 7]),
        "logs": tmp_path / "logs",
    }


def _check(env, src: Path, supplier_id=5):
    staged = stage_upload(src, src.name, supplier_id, env["suppliers"], env["temp"])
    messages: list = []
    outcome = run_validation(
        env["config"],
        staged.supplier_id,
        staged.file_ref,
        messages.append,
        field_source=env["source"],
        blueprints=env["blueprints"],
        matcher=RegexMatchCache(),
        logs_dir=env["logs"],
    )
    return outcome, messages


def _details(messages, code: str) -> list[str]:
    return [line for m in messages if getattr(m, "code", None) == code for line in m.details]


def test_duplicate_catalog_number_is_rejected(tmp_path, env, make_workbook, row_factory):
    src = make_workbook(tmp_path / "cat.xlsx", {"Sheet1": [row_factory("A1"), row_factory("A1")]})
    outcome, messages = _check(env, src)

    assert outcome.status is RunStatus.FAILED
    dup = _details(messages, "DUPLICATION_BATCH")
    assert dup == [
        '[CHUNK_DUPLICATE_CATALOG_NUMBER] Duplicate catalog number "A1" found within the current '
        "sheet/chunk. (Field: catalog_number) (Product: A1)"
    ]
    assert (outcome.summary.total_products, outcome.summary.valid_products) == (2, 1)
    assert not env["blueprints"].path.exists()


def test_duplicate_across_sheets_is_global(tmp_path, env, make_workbook, row_factory):
    src = make_workbook(
        tmp_path / "cat.xlsx",
        {"Antibodies": [row_factory("A1"), row_factory("A2")], "Kits": [row_factory("K1"), row_factory("A1")]},
    )
    outcome, messages = _check(env, src)

    assert [m.message for m in messages if m.message.startswith("Processing sheet")] == [
        'Processing sheet: "Antibodies"',
        'Processing sheet: "Kits"',
    ]
    dup = _details(messages, "DUPLICATION_BATCH")
    assert len(dup) == 1
    assert dup[0].startswith("[GLOBAL_DUPLICATE_CATALOG_NUMBER]")
    assert outcome.summary.duplications == 1
    assert outcome.summary.valid_products == 3


def test_comma_decimal_and_lowercase_currency_pass(tmp_path, env, make_workbook, row_factory):
    row = row_factory("A1", **{"price.buy.amount": "12,50", "price.buy.currency": "eur"})
    src = make_workbook(tmp_path / "cat.xlsx", {"Sheet1": [row]})
    outcome, messages = _check(env, src)

    assert outcome.status is RunStatus.PASSED
    assert "Blue Print Saved." in [m.message for m in messages]
    assert env["blueprints"].files("auto-checker") == [outcome.fingerprint]


def test_supplier_mismatch(tmp_path, env, make_workbook, row_factory):
    src = make_workbook(tmp_path / "cat.xlsx", {"Sheet1": [row_factory("A1", supplier_id="7")]})
    outcome, messages = _check(env, src)

    assert outcome.status is RunStatus.FAILED
    lines = _details(messages, "VALIDATION_BATCH")
    assert len(lines) == 1
    assert lines[0].startswith("[INVALID_SUPPLIER_ID]")


def test_mixed_row_errors_are_all_reported(tmp_path, env, make_workbook, row_factory):
    rows = [
        row_factory("A1", **{"price.buy.amount": "-1"}),
        row_factory("A2", **{"shipment.dry_ice": "maybe", "species": "Human, Zebrafish"}),
        row_factory("A3", size=None),
        row_factory("A4", species="N/A"),
    ]
    src = make_workbook(tmp_path / "cat.xlsx", {"Sheet1": rows})
    outcome, messages = _check(env, src)

    codes = sorted(line[1 : line.index("]")] for line in _details(messages, "VALIDATION_BATCH"))
    assert codes == [
        "INVALID_BOOLEAN_VALUE",
        "MISSING_ESSENTIAL_FIELD",
        "NEGATIVE_PRICE_AMOUNT",
        "UNRECOGNIZED_CONSTANT_VALUE",
    ]
    assert outcome.summary.valid_products == 1


def test_unrecognized_columns_only_warn(tmp_path, env, make_workbook, row_factory):
    rows = [row_factory("A1", colour="red"), row_factory("A2", colour="blue")]
    src = make_workbook(tmp_path / "cat.xlsx", {"Sheet1": rows})
    outcome, messages = _check(env, src)

    warning = next(m for m in messages if getattr(m, "code", None) == "WARNING_BATCH")
    assert warning.message == "Warnings found: 2 issues (e.g., unrecognized fields: colour)."
    assert outcome.status is RunStatus.PASSED
    assert outcome.summary.warnings == 2
    assert env["blueprints"].contains("auto-checker", outcome.fingerprint)


def test_csv_catalog(tmp_path, env, row_factory):
    src = tmp_path / "cat.csv"
    pd.DataFrame([row_factory("A1"), row_factory("A2", species="N/A")]).to_csv(src, index=False)
    outcome, messages = _check(env, src)

    assert outcome.status is RunStatus.PASSED
    # CSV は 1 シート扱い (シート名 = 保存ファイル名の stem)
    sheet_line = messages[2].message
    assert sheet_line.startswith('Processing sheet: "') and sheet_line.endswith('-cat"')
    summary = next(m for m in messages if isinstance(m, SummaryReport))
    assert summary.total_products == 2


def test_csv_row_with_stray_trailing_cell_still_passes(tmp_path, env, row_factory):
    src = tmp_path / "cat.csv"
    body = pd.DataFrame([row_factory("A1")]).to_csv(index=False)
    stray = pd.DataFrame([row_factory("A2")]).to_csv(index=False, header=False).rstrip("\n") + ",stray\n"
    src.write_text(body + stray, encoding="utf-8")
    outcome, messages = _check(env, src)

    assert outcome.status is RunStatus.PASSED
    assert "UNEXPECTED_SERVER_ERROR" not in [getattr(m, "code", None) for m in messages]
    assert outcome.summary.total_products == 2
    assert outcome.summary.valid_products == 2


def test_second_run_of_same_content_is_already_validated(tmp_path, env, make_workbook, row_factory):
    rows = [row_factory(f"A{i}") for i in range(7)]
    first, _ = _check(env, make_workbook(tmp_path / "cat.xlsx", {"Sheet1": rows}))
    second, messages = _check(env, make_workbook(tmp_path / "cat.xlsx", {"Sheet1": rows}))

    assert first.fingerprint == second.fingerprint
    assert "ALREADY_VALIDATED" in [getattr(m, "code", None) for m in messages]
    reloaded = JsonFileBlueprintStore(env["blueprints"].path)
    assert reloaded.files("auto-checker") == [first.fingerprint]


def test_changed_middle_row_changes_fingerprint(tmp_path, env, make_workbook, row_factory):
    rows = [row_factory(f"A{i}") for i in range(7)]
    first, _ = _check(env, make_workbook(tmp_path / "cat.xlsx", {"Sheet1": rows}))
    rows[3] = row_factory("A3", name="Renamed")
    second, _ = _check(env, make_workbook(tmp_path / "cat.xlsx", {"Sheet1": rows}))
    assert first.fingerprint != second.fingerprint


def test_sheet_without_header_is_skipped(tmp_path, env, make_workbook, row_factory):
    src = make_workbook(
        tmp_path / "cat.xlsx", {"Notes": pd.DataFrame(), "Sheet1": [row_factory("A1")]}
    )
    outcome, messages = _check(env, src)
    assert outcome.sheets_skipped == ["Notes"]
    assert outcome.status is RunStatus.PASSED
    assert outcome.summary.warnings == 1
