from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

"""Outbound message models for the catalog validation stream.

Every record a run sends to its consumer is one of:

- ProcessError: lifecycle info or a diagnostic (per item or batched)
- ProgressNotice: an ``info`` record carrying the running product count
- SummaryReport: the final counts of a completed run

All three serialize to a flat JSON object with camelCase keys. Optional keys
that carry no value are omitted from the wire format.
"""

__all__ = [
    "ErrorType",
    "Severity",
    "ProcessError",
    "ProgressNotice",
    "SummaryReport",
    "Message",
]


class ErrorType(str, Enum):
    """Message taxonomy (diagnostic kinds + lifecycle kinds)."""
    MISSING_FIELD = "missing_field"
    INVALID_VALUE = "invalid_value"
    DUPLICATION = "duplication"
    UNRECOGNIZED_FIELD = "unrecognized_field"
    FILE_ERROR = "file_error"
    SYSTEM_ERROR = "system_error"
    PERMISSION_DENIED = "permission_denied"
    # batched per-chunk validation diagnostics
    VALIDATION = "validation"
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    SUMMARY_REPORT = "summary_report"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


# 行単位で回復可能なバリデーションエラー種別
VALIDATION_TYPES = frozenset(
    {
        ErrorType.MISSING_FIELD,
        ErrorType.INVALID_VALUE,
    }
)

# ラン全体を停止させる種別
FATAL_TYPES = frozenset(
    {
        ErrorType.FILE_ERROR,
        ErrorType.SYSTEM_ERROR,
        ErrorType.PERMISSION_DENIED,
    }
)


def _json_default(value: Any) -> Any:
    # セル値に datetime 等が混入する場合の fallback
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class ProcessError:
    """Immutable diagnostic / lifecycle record, the unit of all reporting.

    Attributes:
        type: Message kind (see ErrorType)
        severity: error / warning / info / success
        message: Human readable text
        field: Dotted field path the record refers to, if any
        value: Offending raw value, if any
        catalog_number: Product identifier, if any
        sheet_name: Sheet the product was read from, if any
        details: Sub-messages (e.g. unmatched tokens, batched lines)
        code: Stable UPPER_SNAKE code identifying the rule
    """
    type: ErrorType
    severity: Severity
    message: str
    field: str | None = None
    value: Any = None
    catalog_number: str | None = None
    sheet_name: str | None = None
    details: tuple[str, ...] | None = None
    code: str | None = None

    @property
    def is_fatal(self) -> bool:
        return self.type in FATAL_TYPES and self.severity is Severity.ERROR

    @property
    def is_validation_error(self) -> bool:
        """Row-level validation failure (not a duplicate, not a warning)."""
        return self.type in VALIDATION_TYPES and self.severity is Severity.ERROR

    @property
    def is_duplication(self) -> bool:
        return self.type is ErrorType.DUPLICATION and self.severity is Severity.ERROR

    @property
    def is_warning(self) -> bool:
        return self.severity is Severity.WARNING

    def display_line(self) -> str:
        """Single line used inside batched ``details`` arrays."""
        line = f"[{self.code}] {self.message}"
        if self.field:
            line += f" (Field: {self.field})"
        if self.catalog_number:
            line += f" (Product: {self.catalog_number})"
        return line

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.value is not None:
            payload["value"] = self.value
        if self.catalog_number is not None:
            payload["catalogNumber"] = self.catalog_number
        if self.sheet_name is not None:
            payload["sheetName"] = self.sheet_name
        if self.details is not None:
            payload["details"] = list(self.details)
        if self.code is not None:
            payload["code"] = self.code
        return payload

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=_json_default)


@dataclass(frozen=True)
class ProgressNotice:
    """Lifecycle ``info`` record reporting how many products have been read."""
    processed: int
    message: str
    sheet_name: str | None = None
    code: str = "PROGRESS"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": ErrorType.INFO.value,
            "severity": Severity.INFO.value,
            "message": self.message,
            "code": self.code,
            "processed": self.processed,
        }
        if self.sheet_name is not None:
            payload["sheetName"] = self.sheet_name
        return payload

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True)
class SummaryReport:
    """Final counts of a run that reached the end of the file."""
    total_products: int
    valid_products: int
    errors: int
    duplications: int
    warnings: int
    message: str = "Processing Summary"
    code: str = "FINAL_SUMMARY"

    @property
    def clean(self) -> bool:
        return self.errors == 0 and self.duplications == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": ErrorType.SUMMARY_REPORT.value,
            "message": self.message,
            "totalProducts": self.total_products,
            "validProducts": self.valid_products,
            "errors": self.errors,
            "duplications": self.duplications,
            "warnings": self.warnings,
            "severity": Severity.INFO.value,
            "code": self.code,
        }

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


Message = ProcessError | ProgressNotice | SummaryReport
