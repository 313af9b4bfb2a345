from __future__ import annotations

import logging
import time
import traceback
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..excel.reader import CatalogReader, SheetReadError, open_catalog
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import CheckerConfig
from ..models.process_error import ErrorType
from ..models.processing_result import ChunkStatsAccumulator
from ..models.row_data import Product
from ..models.run_outcome import RunOutcome, RunStatus
from ..models.sheet_metadata import SheetMetadata
from .channel import RunCancelled, RunStream
from .chunk_validator import CatalogNumberRegistry, ChunkValidator
from .fingerprint import (
    BlueprintStore,
    IdempotencyRecorder,
    SampleCollector,
    compute_fingerprint_from_samples,
    fallback_fingerprint,
    read_window,
)
from .normalizer import normalize_row
from .progress import ProgressTracker
from .regex_cache import RegexMatchCache, default_cache
from .reporter import Reporter, SendFn
from .schema import (
    FieldDefinitionSource,
    FieldRuleSet,
    SchemaDocumentError,
    SchemaNotFoundError,
    SchemaResolver,
)
from .upload import TEMP_REF_PREFIX, parse_supplier_id

"""Run orchestration for one uploaded supplier catalog.

Lifecycle of a run (every step reports through the Reporter, in order):

1. connected info, parameter check, temp path resolution, schema load
2. single streaming pass: sheet -> rows -> normalized products -> chunks;
   each chunk is validated and its diagnostics are sent before the next
   chunk is read
3. fingerprint (second, partial pass for the middle sample)
4. blueprint update when no validation / duplication error was found
5. summary record + "Process Completed."

Fatal errors stop the run and jump to cleanup. Cleanup (temp file removal)
always runs, also after the consumer cancelled the stream; after a
cancellation nothing more is sent.
"""

logger = logging.getLogger(__name__)


class PathOutsideTempDirError(Exception):
    """The file reference resolves outside the temp directory."""


def resolve_temp_path(file_ref: str, temp_directory: Path) -> Path:
    """Map a ``/temp/<name>`` reference to a path inside the temp directory.

    Raises:
        PathOutsideTempDirError: the reference escapes the temp directory
    """
    name = file_ref[len(TEMP_REF_PREFIX) :] if file_ref.startswith(TEMP_REF_PREFIX) else file_ref
    base = temp_directory.resolve()
    candidate = (base / name).resolve()
    if candidate == base or not candidate.is_relative_to(base):
        raise PathOutsideTempDirError(f"file reference outside temp directory: {file_ref}")
    return candidate


@dataclass
class _ScanResult:
    total: int = 0
    valid: int = 0
    metadata: list[SheetMetadata] = field(default_factory=list)
    sampler: SampleCollector | None = None


class ValidationRun:
    """One validation run over one staged file.

    Args:
        config: checker configuration
        field_source: where the additional field definitions document lives
        blueprints: persisted "already validated" fingerprint sets
        matcher: regex cache shared across runs (process-wide by default)
        progress: optional tqdm tracker (CLI only)
        error_log: JSONL audit log buffer; a fresh one under ``logs_dir`` if omitted
    """

    def __init__(
        self,
        config: CheckerConfig,
        *,
        field_source: FieldDefinitionSource,
        blueprints: BlueprintStore,
        matcher: RegexMatchCache | None = None,
        progress: ProgressTracker | None = None,
        error_log: ErrorLogBuffer | None = None,
        logs_dir: Path | None = None,
    ) -> None:
        self.config = config
        self.field_source = field_source
        self.recorder = IdempotencyRecorder(blueprints, config.blueprint_name)
        self.matcher = matcher if matcher is not None else default_cache
        self.progress = progress
        self.error_log = error_log if error_log is not None else ErrorLogBuffer(logs_dir)
        self.chunk_stats = ChunkStatsAccumulator()
        self.outcome: RunOutcome | None = None

    def stream(self, supplier_id: Any, file_ref: str | None) -> RunStream:
        """Start the run on a producer thread; iterate the returned stream to consume it."""
        channel = RunStream(self.config.stream.queue_size)
        return channel.start(lambda ch: self.execute(supplier_id, file_ref, ch.send))

    def execute(self, supplier_id: Any, file_ref: str | None, send: SendFn) -> RunOutcome:
        """Run the whole pipeline, sending every message through ``send``. Never raises."""
        outcome = RunOutcome(
            supplier_id=None,
            file_ref=file_ref,
            status=RunStatus.RUNNING,
            start_time=datetime.now(UTC),
        )
        self.outcome = outcome
        stream_cfg = self.config.stream
        reporter = Reporter(
            send,
            send_delay_ms=stream_cfg.send_delay_ms,
            itemized=stream_cfg.itemized_diagnostics,
            display_batch_size=stream_cfg.display_batch_size,
            error_log=self.error_log,
            file_name=Path(file_ref).name if file_ref else "",
        )
        try:
            self._run(supplier_id, file_ref, reporter, outcome)
        except RunCancelled:
            logger.info("run cancelled by consumer file_ref=%s", file_ref)
            outcome.status = RunStatus.CANCELLED
        except Exception as e:
            logger.exception("unexpected error during run file_ref=%s", file_ref)
            outcome.status = RunStatus.ABORTED
            outcome.error = str(e)
            try:
                reporter.fatal(
                    ErrorType.SYSTEM_ERROR,
                    f"An unexpected server error occurred: {e}",
                    "UNEXPECTED_SERVER_ERROR",
                    details=[traceback.format_exc()],
                )
            except RunCancelled:
                outcome.status = RunStatus.CANCELLED
        finally:
            self._cleanup(outcome, reporter)
        return outcome

    def _abort(self, reporter: Reporter, outcome: RunOutcome, error_type: ErrorType, message: str, code: str) -> RunOutcome:
        outcome.status = RunStatus.ABORTED
        outcome.error = message
        reporter.fatal(error_type, message, code)
        return outcome

    def _run(self, supplier_id: Any, file_ref: str | None, reporter: Reporter, outcome: RunOutcome) -> RunOutcome:
        # 最初の send より前に cleanup 対象を確定する (接続直後の cancel でも削除される)
        outside_temp = False
        if file_ref:
            try:
                outcome.path = resolve_temp_path(file_ref, Path(self.config.temp_directory))
            except PathOutsideTempDirError:
                outside_temp = True

        reporter.info("Connected, starting process...")

        parsed_id = parse_supplier_id(supplier_id)
        if parsed_id is None or not file_ref:
            return self._abort(
                reporter,
                outcome,
                ErrorType.SYSTEM_ERROR,
                "Missing required parameters (supplierId or filePath).",
                "MISSING_PARAMS",
            )
        outcome.supplier_id = parsed_id

        if outside_temp or outcome.path is None:
            return self._abort(
                reporter,
                outcome,
                ErrorType.PERMISSION_DENIED,
                f"File reference is outside the temporary directory: {file_ref}",
                "PATH_OUTSIDE_TEMP_DIR",
            )
        path = outcome.path
        if not path.is_file():
            return self._abort(
                reporter, outcome, ErrorType.FILE_ERROR, f"File not found: {file_ref}", "FILE_NOT_FOUND"
            )

        try:
            rule_set = SchemaResolver(self.field_source, self.config.field_definitions_document).resolve()
        except SchemaNotFoundError:
            return self._abort(
                reporter,
                outcome,
                ErrorType.SYSTEM_ERROR,
                "Additional fields document not found in database.",
                "METADATA_NOT_FOUND",
            )
        except SchemaDocumentError as e:
            return self._abort(
                reporter,
                outcome,
                ErrorType.SYSTEM_ERROR,
                f"Additional fields document is invalid: {e}",
                "INVALID_METADATA",
            )

        reporter.info("Starting file processing...")
        try:
            reader = open_catalog(path)
        except SheetReadError as e:
            return self._abort(
                reporter, outcome, ErrorType.FILE_ERROR, f"Error opening Excel file: {e}", "EXCEL_OPEN_ERROR"
            )

        try:
            with reader:
                scan = self._scan(reader, parsed_id, rule_set, reporter, outcome)
        except SheetReadError as e:
            return self._abort(
                reporter, outcome, ErrorType.FILE_ERROR, f"Error reading Excel file: {e}", "EXCEL_OPEN_ERROR"
            )

        if scan.total == 0:
            reporter.info("No products found in the file after initial parsing.", code="NO_PRODUCTS_FOUND")
            reporter.success("Process completed with no products to validate.")
            outcome.status = RunStatus.PASSED
            return outcome

        reporter.info(f"Finished reading file. Total products found: {scan.total}.")
        fingerprint = self._fingerprint(path, scan)
        outcome.fingerprint = fingerprint
        reporter.info(f"Metadata hash generated: {fingerprint}")
        if self._already_validated(fingerprint):
            reporter.info(
                f"This file content has already passed validation (fingerprint {fingerprint}).",
                code="ALREADY_VALIDATED",
            )

        if reporter.errors == 0 and reporter.duplications == 0:
            self._save_blueprint(fingerprint, reporter)
        else:
            reporter.info("Validation completed with errors/warnings. BluePrint not updated.")

        summary = reporter.summary(scan.total, scan.valid)
        outcome.summary = summary
        reporter.success("Process Completed.")
        outcome.status = RunStatus.PASSED if summary.clean else RunStatus.FAILED
        return outcome

    def _scan(
        self,
        reader: CatalogReader,
        supplier_id: int,
        rule_set: FieldRuleSet,
        reporter: Reporter,
        outcome: RunOutcome,
    ) -> _ScanResult:
        chunk_size = self.config.chunk_size
        validator = ChunkValidator(
            supplier_id,
            rule_set,
            CatalogNumberRegistry(),
            matcher=self.matcher,
            currencies=self.config.currencies,
        )
        scan = _ScanResult(sampler=SampleCollector(self.config.fingerprint_sample_size))

        for sheet in reader.sheets():
            reporter.info(f'Processing sheet: "{sheet.name}"', sheet_name=sheet.name)
            if self.progress is not None:
                self.progress.start_sheet(sheet.name)
            chunk: list[Product] = []
            rows = 0
            for raw in sheet:
                product = normalize_row(raw)
                if product is None:
                    continue
                rows += 1
                scan.total += 1
                scan.sampler.add(product.snapshot())
                chunk.append(product)
                if scan.total % chunk_size == 0:
                    reporter.progress(scan.total, sheet.name)
                if len(chunk) >= chunk_size:
                    scan.valid += self._validate_chunk(validator, chunk, reporter, scan.total)
                    chunk = []
            # チャンクはシートをまたがない
            if chunk:
                scan.valid += self._validate_chunk(validator, chunk, reporter, scan.total)

            if not sheet.has_header:
                outcome.sheets_skipped.append(sheet.name)
                reporter.sheet_without_header(sheet.name)
                continue
            scan.metadata.append(SheetMetadata(sheet.name, list(sheet.headers), rows))
            logger.debug("sheet=%s rows=%d headers=%d", sheet.name, rows, len(sheet.headers))
        return scan

    def _validate_chunk(
        self, validator: ChunkValidator, chunk: list[Product], reporter: Reporter, processed: int
    ) -> int:
        start = time.perf_counter()
        result = validator.validate(chunk)
        self.chunk_stats.add_chunk_time(time.perf_counter() - start)
        reporter.diagnostics(result.errors)
        if self.progress is not None:
            self.progress.advance(processed)
            self.progress.set_postfix(errors=reporter.errors, dup=reporter.duplications)
        return len(result.valid)

    def _iter_snapshots(self, reader: CatalogReader) -> Iterator[dict[str, Any]]:
        for sheet in reader.sheets():
            for raw in sheet:
                product = normalize_row(raw)
                if product is not None:
                    yield product.snapshot()

    def _fingerprint(self, path: Path, scan: _ScanResult) -> str:
        sampler = scan.sampler
        middle: list[dict[str, Any]] = []
        window = sampler.middle
        if window is not None:
            try:
                with open_catalog(path) as again:
                    middle = read_window(self._iter_snapshots(again), window)
            except Exception as e:  # fingerprint は run を止めない
                logger.warning("fingerprint sample pass failed (%s); using fallback", e)
                return fallback_fingerprint(len(scan.metadata), scan.total)
        return compute_fingerprint_from_samples(scan.metadata, sampler.samples(middle), scan.total)

    def _already_validated(self, fingerprint: str) -> bool:
        try:
            return self.recorder.contains(fingerprint)
        except Exception as e:  # store 障害は run を止めない
            logger.warning("fingerprint lookup failed: %s", e)
            return False

    def _save_blueprint(self, fingerprint: str, reporter: Reporter) -> None:
        try:
            self.recorder.record(fingerprint)
        except Exception as e:
            logger.error("blueprint save failed: %s", e)
            reporter.fatal(ErrorType.SYSTEM_ERROR, f"Failed to save BluePrint: {e}", "BLUEPRINT_SAVE_FAILED")
            return
        reporter.success("All products passed validation.")
        reporter.success("Blue Print Saved.")

    def _cleanup(self, outcome: RunOutcome, reporter: Reporter) -> None:
        cancelled = outcome.status is RunStatus.CANCELLED
        path = outcome.path
        try:
            if path is not None and path.exists():
                try:
                    path.unlink()
                except OSError as e:
                    logger.error("temp file cleanup failed path=%s: %s", path, e)
                    if not cancelled:
                        reporter.fatal(
                            ErrorType.SYSTEM_ERROR,
                            f"Error cleaning up temporary file: {e}",
                            "TEMP_FILE_CLEANUP_FAILED",
                        )
                else:
                    logger.debug("removed temp file %s", path)
                    if not cancelled:
                        reporter.info("Temporary file cleaned up successfully.")
        except RunCancelled:
            outcome.status = RunStatus.CANCELLED
        finally:
            outcome.end_time = datetime.now(UTC)
            log_path = self.error_log.flush()
            if log_path is not None:
                logger.info("diagnostics written to %s", log_path)
            stats = self.chunk_stats.get_stats()
            logger.debug(
                "chunks=%d avg_chunk_sec=%.4f p95_chunk_sec=%.4f status=%s",
                stats.total_chunks,
                stats.avg_chunk_seconds,
                stats.p95_chunk_seconds,
                outcome.status.value,
            )


def run_validation(
    config: CheckerConfig,
    supplier_id: Any,
    file_ref: str | None,
    send: SendFn,
    *,
    field_source: FieldDefinitionSource,
    blueprints: BlueprintStore,
    **kwargs: Any,
) -> RunOutcome:
    """Convenience wrapper: execute one run synchronously on the calling thread."""
    run = ValidationRun(config, field_source=field_source, blueprints=blueprints, **kwargs)
    return run.execute(supplier_id, file_ref, send)
