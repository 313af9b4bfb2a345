from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence

from ..logging.error_log import ErrorLogBuffer
from ..models.process_error import (
    ErrorType,
    Message,
    ProcessError,
    ProgressNotice,
    Severity,
    SummaryReport,
)

"""Progress / error reporter for one run.

Wraps the outbound send callable (normally ``RunStream.send``) and keeps the
run's diagnostic counters. Messages go out strictly in call order; nothing
is dropped or reordered. Row diagnostics are sent chunk by chunk, either as
individual records or as per-chunk batches whose ``details`` carry every
line of the chunk (display batching only splits validation errors into
several records).
"""

logger = logging.getLogger(__name__)

SendFn = Callable[[Message], None]


def to_sse_frame(message: Message) -> str:
    return f"data: {message.to_json_line()}\n\n"


def to_jsonl(message: Message) -> str:
    return message.to_json_line() + "\n"


def _batches(items: Sequence[ProcessError], size: int) -> Iterable[Sequence[ProcessError]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class Reporter:
    def __init__(
        self,
        send: SendFn,
        *,
        send_delay_ms: int = 0,
        itemized: bool = False,
        display_batch_size: int = 50,
        error_log: ErrorLogBuffer | None = None,
        file_name: str = "",
    ) -> None:
        self._send = send
        self.send_delay = send_delay_ms / 1000.0
        self.itemized = itemized
        self.display_batch_size = max(1, display_batch_size)
        self.error_log = error_log
        self.file_name = file_name
        self.sent = 0
        self.errors = 0
        self.duplications = 0
        self.warnings = 0

    def emit(self, message: Message) -> None:
        self._send(message)
        self.sent += 1
        if (
            self.error_log is not None
            and isinstance(message, ProcessError)
            and message.severity in (Severity.ERROR, Severity.WARNING)
        ):
            self.error_log.append(self.file_name, message)
        if self.send_delay:
            time.sleep(self.send_delay)

    def info(self, message: str, *, code: str | None = None, sheet_name: str | None = None) -> None:
        self.emit(ProcessError(ErrorType.INFO, Severity.INFO, message, sheet_name=sheet_name, code=code))

    def success(self, message: str) -> None:
        self.emit(ProcessError(ErrorType.SUCCESS, Severity.SUCCESS, message))

    def fatal(
        self,
        error_type: ErrorType,
        message: str,
        code: str,
        *,
        details: Sequence[str] | None = None,
    ) -> None:
        logger.error("%s: %s", code, message)
        self.emit(
            ProcessError(
                error_type,
                Severity.ERROR,
                message,
                details=tuple(details) if details is not None else None,
                code=code,
            )
        )

    def sheet_without_header(self, sheet_name: str) -> None:
        self.warnings += 1
        self.emit(
            ProcessError(
                ErrorType.FILE_ERROR,
                Severity.WARNING,
                f'Sheet "{sheet_name}" has no detectable headers. Skipping this sheet.',
                sheet_name=sheet_name,
                code="NO_SHEET_HEADERS",
            )
        )

    def progress(self, processed: int, sheet_name: str | None = None) -> None:
        self.emit(ProgressNotice(processed, f"Processed {processed} products...", sheet_name))

    def diagnostics(self, errors: Sequence[ProcessError]) -> None:
        """Count and send the diagnostics of one chunk (read order preserved)."""
        validation = [e for e in errors if e.is_validation_error]
        duplications = [e for e in errors if e.is_duplication]
        warnings = [e for e in errors if e.is_warning]
        self.errors += len(validation)
        self.duplications += len(duplications)
        self.warnings += len(warnings)

        if self.itemized:
            for error in errors:
                self.emit(error)
            return

        for batch in _batches(validation, self.display_batch_size):
            self.emit(
                ProcessError(
                    ErrorType.VALIDATION,
                    Severity.ERROR,
                    f"Validation errors found: {len(batch)} issues in this batch.",
                    details=tuple(e.display_line() for e in batch),
                    code="VALIDATION_BATCH",
                )
            )
        if duplications:
            self.emit(
                ProcessError(
                    ErrorType.DUPLICATION,
                    Severity.ERROR,
                    f"Duplication errors found: {len(duplications)} duplicates.",
                    details=tuple(e.display_line() for e in duplications),
                    code="DUPLICATION_BATCH",
                )
            )
        if warnings:
            fields = list(dict.fromkeys(e.field for e in warnings if e.field))
            message = f"Warnings found: {len(warnings)} issues"
            if fields:
                message += f" (e.g., unrecognized fields: {', '.join(fields)})"
            self.emit(
                ProcessError(
                    ErrorType.WARNING,
                    Severity.WARNING,
                    message + ".",
                    details=tuple(e.display_line() for e in warnings),
                    code="WARNING_BATCH",
                )
            )

    def summary(self, total_products: int, valid_products: int) -> SummaryReport:
        report = SummaryReport(
            total_products=total_products,
            valid_products=valid_products,
            errors=self.errors,
            duplications=self.duplications,
            warnings=self.warnings,
        )
        self.emit(report)
        return report
