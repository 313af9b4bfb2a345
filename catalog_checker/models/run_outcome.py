from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .process_error import SummaryReport

"""Run lifecycle models for one uploaded catalog file.

A validation run moves through:

    pending -> running -> (passed | failed | aborted | cancelled)

- PASSED: the whole file was read and no validation/duplication error was found
- FAILED: the whole file was read but at least one product was rejected
- ABORTED: a fatal file/system/permission error stopped the run early
- CANCELLED: the consumer closed the stream before the run finished
"""


class RunStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


@dataclass
class RunOutcome:
    """Processing context and final result for a single uploaded file."""
    supplier_id: int | None
    file_ref: str | None
    path: Path | None = None
    status: RunStatus = RunStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    fingerprint: str | None = None
    summary: SummaryReport | None = None
    error: str | None = None  # 中断理由 (fatal 時)
    sheets_skipped: list[str] = field(default_factory=list)

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()
