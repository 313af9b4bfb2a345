from __future__ import annotations

from ..models.process_error import SummaryReport

"""SUMMARY line rendering for the run step.

Format::

    SUMMARY products={N} valid={V} errors={E} duplications={D} warnings={W} elapsed_sec={S}
"""


def _format_seconds(seconds: float) -> str:
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        # 指数表記を避ける
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(report: SummaryReport | None, elapsed_seconds: float) -> str:
    """Render the SUMMARY line for a run.

    A run that stopped before producing a summary renders with zero counts.

    Examples:
        >>> report = SummaryReport(10, 8, 1, 1, 3)
        >>> render_summary_line(report, 2.0)
        'SUMMARY products=10 valid=8 errors=1 duplications=1 warnings=3 elapsed_sec=2'
    """
    if report is None:
        report = SummaryReport(0, 0, 0, 0, 0)
    return (
        f"SUMMARY products={report.total_products} "
        f"valid={report.valid_products} "
        f"errors={report.errors} "
        f"duplications={report.duplications} "
        f"warnings={report.warnings} "
        f"elapsed_sec={_format_seconds(elapsed_seconds)}"
    )
