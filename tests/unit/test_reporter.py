from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from catalog_checker.logging.error_log import ErrorLogBuffer
from catalog_checker.models.process_error import (
    ErrorType,
    ProcessError,
    ProgressNotice,
    Severity,
    SummaryReport,
)
from catalog_checker.services.reporter import Reporter, to_jsonl, to_sse_frame


def _err(code: str, type_: ErrorType = ErrorType.INVALID_VALUE, severity: Severity = Severity.ERROR, field="f", cn="A1"):
    return ProcessError(type_, severity, f"{code} message", field=field, catalog_number=cn, code=code)


def _chunk_errors() -> list[ProcessError]:
    return [
        _err("INVALID_CURRENCY"),
        _err("GLOBAL_DUPLICATE_CATALOG_NUMBER", ErrorType.DUPLICATION, field="catalog_number"),
        _err("UNRECOGNIZED_PRODUCT_FIELD", ErrorType.UNRECOGNIZED_FIELD, Severity.WARNING, field="colour"),
        _err("MISSING_ESSENTIAL_FIELD", ErrorType.MISSING_FIELD, field="size", cn="A2"),
    ]


def test_batched_diagnostics(collect):
    messages, send = collect
    reporter = Reporter(send)
    reporter.diagnostics(_chunk_errors())

    assert [m.code for m in messages] == ["VALIDATION_BATCH", "DUPLICATION_BATCH", "WARNING_BATCH"]
    validation = messages[0]
    assert validation.type is ErrorType.VALIDATION
    assert validation.details == (
        "[INVALID_CURRENCY] INVALID_CURRENCY message (Field: f) (Product: A1)",
        "[MISSING_ESSENTIAL_FIELD] MISSING_ESSENTIAL_FIELD message (Field: size) (Product: A2)",
    )
    assert messages[2].severity is Severity.WARNING
    assert "colour" in messages[2].message
    assert (reporter.errors, reporter.duplications, reporter.warnings) == (2, 1, 1)


def test_validation_batches_split_for_display(collect):
    messages, send = collect
    reporter = Reporter(send, display_batch_size=2)
    reporter.diagnostics([_err(f"E{i}") for i in range(5)])
    assert [len(m.details) for m in messages] == [2, 2, 1]
    assert reporter.errors == 5


def test_itemized_diagnostics_keep_order(collect):
    messages, send = collect
    errors = _chunk_errors()
    reporter = Reporter(send, itemized=True)
    reporter.diagnostics(errors)
    assert messages == errors
    assert reporter.sent == 4


def test_lifecycle_messages(collect):
    messages, send = collect
    reporter = Reporter(send)
    reporter.info("Starting file processing...")
    reporter.progress(500, "Sheet1")
    reporter.sheet_without_header("Empty")
    reporter.fatal(ErrorType.FILE_ERROR, "File not found: /temp/x", "FILE_NOT_FOUND")
    reporter.success("Process Completed.")

    assert messages[0].type is ErrorType.INFO
    assert isinstance(messages[1], ProgressNotice)
    assert messages[1].to_dict()["processed"] == 500
    assert messages[2].code == "NO_SHEET_HEADERS"
    assert messages[2].severity is Severity.WARNING
    assert messages[3].is_fatal
    assert messages[4].severity is Severity.SUCCESS
    assert reporter.warnings == 1


def test_summary_uses_counters(collect):
    messages, send = collect
    reporter = Reporter(send)
    reporter.diagnostics(_chunk_errors())
    report = reporter.summary(total_products=10, valid_products=8)
    assert isinstance(messages[-1], SummaryReport)
    assert report.to_dict() == {
        "type": "summary_report",
        "message": "Processing Summary",
        "totalProducts": 10,
        "validProducts": 8,
        "errors": 2,
        "duplications": 1,
        "warnings": 1,
        "severity": "info",
        "code": "FINAL_SUMMARY",
    }
    assert not report.clean


def test_send_delay_sleeps_between_messages(collect):
    _, send = collect
    reporter = Reporter(send, send_delay_ms=10)
    with patch("catalog_checker.services.reporter.time.sleep") as sleep:
        reporter.info("a")
        reporter.info("b")
    assert sleep.call_count == 2
    sleep.assert_called_with(0.01)


def test_error_log_receives_errors_and_warnings(tmp_path: Path, collect):
    _, send = collect
    log = ErrorLogBuffer(tmp_path / "logs")
    reporter = Reporter(send, itemized=True, error_log=log, file_name="cat.xlsx")
    reporter.info("not logged")
    reporter.diagnostics(_chunk_errors())
    path = log.flush()
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert len(lines) == 4
    assert all(line["file"] == "cat.xlsx" for line in lines)
    assert lines[0]["code"] == "INVALID_CURRENCY"


def test_framing():
    msg = ProcessError(ErrorType.INFO, Severity.INFO, "hello")
    assert to_sse_frame(msg) == 'data: {"type": "info", "severity": "info", "message": "hello"}\n\n'
    assert to_jsonl(msg).endswith("}\n")
    assert json.loads(to_jsonl(msg)) == {"type": "info", "severity": "info", "message": "hello"}
