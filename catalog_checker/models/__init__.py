"""Domain models for the supplier catalog checker.

This package contains the domain model classes shared by the reader,
validator, reporter and CLI layers.
"""

from .config_models import CheckerConfig, DatabaseConfig, LocalStoreConfig, StreamConfig
from .field_definition import AllowedValue, FieldDefinition, FieldKind
from .process_error import ErrorType, ProcessError, ProgressNotice, Severity, SummaryReport
from .processing_result import ChunkResult
from .row_data import Product, RawRow
from .run_outcome import RunOutcome, RunStatus
from .sheet_metadata import SheetMetadata

__all__ = [
    # Configuration models
    "CheckerConfig",
    "DatabaseConfig",
    "LocalStoreConfig",
    "StreamConfig",
    # Schema models
    "AllowedValue",
    "FieldDefinition",
    "FieldKind",
    # Messages
    "ErrorType",
    "ProcessError",
    "ProgressNotice",
    "Severity",
    "SummaryReport",
    # Processing models
    "ChunkResult",
    "Product",
    "RawRow",
    "RunOutcome",
    "RunStatus",
    "SheetMetadata",
]
