from __future__ import annotations

import json
from datetime import date, datetime

import pytest

from catalog_checker.models.process_error import (
    ErrorType,
    ProcessError,
    ProgressNotice,
    Severity,
    SummaryReport,
)
from catalog_checker.models.processing_result import ChunkResult, ChunkStatsAccumulator
from catalog_checker.models.run_outcome import RunOutcome, RunStatus


class TestProcessError:
    def test_to_dict_omits_empty_keys(self):
        err = ProcessError(ErrorType.INFO, Severity.INFO, "Starting file processing...")
        assert err.to_dict() == {"type": "info", "severity": "info", "message": "Starting file processing..."}

    def test_to_dict_uses_camel_case(self):
        err = ProcessError(
            ErrorType.DUPLICATION,
            Severity.ERROR,
            "Duplicate catalog number",
            field="catalog_number",
            value="A1",
            catalog_number="A1",
            sheet_name="Sheet1",
            details=("first seen in Sheet1",),
            code="GLOBAL_DUPLICATE_CATALOG_NUMBER",
        )
        payload = err.to_dict()
        assert payload["catalogNumber"] == "A1"
        assert payload["sheetName"] == "Sheet1"
        assert payload["details"] == ["first seen in Sheet1"]
        assert err.is_duplication
        assert not err.is_validation_error

    def test_json_line_serializes_dates(self):
        err = ProcessError(ErrorType.INVALID_VALUE, Severity.ERROR, "bad", value=datetime(2024, 1, 2, 3, 4))
        assert json.loads(err.to_json_line())["value"] == "2024-01-02T03:04:00"
        err = ProcessError(ErrorType.INVALID_VALUE, Severity.ERROR, "bad", value=date(2024, 1, 2))
        assert json.loads(err.to_json_line())["value"] == "2024-01-02"

    def test_display_line(self):
        err = ProcessError(
            ErrorType.MISSING_FIELD, Severity.ERROR, "Missing size", field="size", catalog_number="A2", code="MISSING_ESSENTIAL_FIELD"
        )
        assert err.display_line() == "[MISSING_ESSENTIAL_FIELD] Missing size (Field: size) (Product: A2)"

    @pytest.mark.parametrize(
        "type_, severity, fatal",
        [
            (ErrorType.FILE_ERROR, Severity.ERROR, True),
            (ErrorType.PERMISSION_DENIED, Severity.ERROR, True),
            (ErrorType.FILE_ERROR, Severity.WARNING, False),
            (ErrorType.INVALID_VALUE, Severity.ERROR, False),
        ],
    )
    def test_is_fatal(self, type_, severity, fatal):
        assert ProcessError(type_, severity, "m").is_fatal is fatal


def test_progress_notice_wire_form():
    notice = ProgressNotice(1000, "Processed 1000 products...", "Sheet1")
    assert notice.to_dict() == {
        "type": "info",
        "severity": "info",
        "message": "Processed 1000 products...",
        "code": "PROGRESS",
        "processed": 1000,
        "sheetName": "Sheet1",
    }


def test_summary_report_clean_flag():
    assert SummaryReport(3, 3, 0, 0, 2).clean
    assert not SummaryReport(3, 2, 0, 1, 0).clean


def test_every_message_kind_has_code_and_message():
    notice = ProgressNotice(500, "Processed 500 products...")
    summary = SummaryReport(10, 8, 1, 1, 3)
    assert (notice.code, notice.message) == ("PROGRESS", "Processed 500 products...")
    assert (summary.code, summary.message) == ("FINAL_SUMMARY", "Processing Summary")
    assert summary.to_dict()["message"] == summary.message
    assert summary.to_dict()["code"] == summary.code


def test_chunk_result_size():
    assert ChunkResult().size == 0


class TestChunkStatsAccumulator:
    def test_empty(self):
        stats = ChunkStatsAccumulator().get_stats()
        assert (stats.total_chunks, stats.avg_chunk_seconds, stats.p95_chunk_seconds) == (0, 0.0, 0.0)

    def test_single_chunk(self):
        acc = ChunkStatsAccumulator()
        acc.add_chunk_time(0.5)
        stats = acc.get_stats()
        assert stats.total_chunks == 1
        assert stats.p95_chunk_seconds == 0.5

    def test_many_chunks(self):
        acc = ChunkStatsAccumulator()
        for i in range(1, 21):
            acc.add_chunk_time(float(i))
        stats = acc.get_stats()
        assert stats.total_chunks == 20
        assert stats.avg_chunk_seconds == pytest.approx(10.5)
        assert 19.0 <= stats.p95_chunk_seconds <= 20.0


def test_run_outcome_elapsed():
    outcome = RunOutcome(supplier_id=5, file_ref="/temp/x.xlsx")
    assert outcome.status is RunStatus.PENDING
    assert outcome.elapsed_seconds == 0.0
    outcome.start_time = datetime(2024, 1, 1, 0, 0, 0)
    outcome.end_time = datetime(2024, 1, 1, 0, 0, 2)
    assert outcome.elapsed_seconds == 2.0
