from __future__ import annotations

import re

import pytest

from catalog_checker.models.process_error import SummaryReport
from catalog_checker.services.summary import render_summary_line

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+products=([0-9]+)\s+valid=([0-9]+)\s+errors=([0-9]+)\s+"
    r"duplications=([0-9]+)\s+warnings=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)$"
)


def test_render_summary_line_clean_run():
    line = render_summary_line(SummaryReport(1200, 1200, 0, 0, 0), 3.25)
    assert line == "SUMMARY products=1200 valid=1200 errors=0 duplications=0 warnings=0 elapsed_sec=3.25"
    assert SUMMARY_PATTERN.match(line)


def test_render_summary_line_without_report():
    """Aborted runs still print a parseable line."""
    line = render_summary_line(None, 0.0)
    assert line == "SUMMARY products=0 valid=0 errors=0 duplications=0 warnings=0 elapsed_sec=0"


@pytest.mark.parametrize(
    "seconds, rendered",
    [(2.0, "2"), (0.5, "0.5"), (1.23456, "1.235"), (0.000123, "0.000123")],
)
def test_elapsed_formatting(seconds, rendered):
    line = render_summary_line(SummaryReport(1, 1, 0, 0, 0), seconds)
    assert line.endswith(f"elapsed_sec={rendered}")
    assert SUMMARY_PATTERN.match(line)
