from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from enum import Enum
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl import load_workbook

from ..models.row_data import RawRow

"""Streaming spreadsheet reader.

- .xlsx / .xlsm: openpyxl read-only mode (rows are parsed lazily from the zip)
- .csv: pandas chunked reading, every cell kept as text ("N/A" is not NaN);
  blank lines are skipped and rows longer than the first line are truncated

Sheets and rows are forward-only, single-pass sequences. The first non-empty
row of each sheet is its header row; blank header cells get a positional
``Column<N>`` name. A sheet that never produces a header row yields no rows
and reports ``has_header == False`` once exhausted.
"""

logger = logging.getLogger(__name__)

WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SUFFIXES = {".csv"}
CSV_CHUNK_ROWS = 1000


class SheetReadError(Exception):
    """Raised when the container cannot be opened as a spreadsheet."""


class CursorState(Enum):
    AWAITING_HEADER = "awaiting_header"
    READING_ROWS = "reading_rows"


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    # pandas 経由の NaN
    if isinstance(value, float) and value != value:
        return True
    return False


def build_headers(values: Sequence[Any]) -> list[str]:
    """Header names from a header row; blank cells get ``Column<N>`` (1-based)."""
    last = max((i for i, v in enumerate(values) if not is_blank(v)), default=-1)
    headers: list[str] = []
    for idx, value in enumerate(values[: last + 1]):
        if is_blank(value):
            headers.append(f"Column{idx + 1}")
        else:
            headers.append(str(value).strip())
    return headers


class SheetCursor:
    """Per-sheet row state machine: AWAITING_HEADER -> READING_ROWS.

    The transition happens exactly once, on the first non-empty row.
    """

    def __init__(self, sheet_name: str) -> None:
        self.sheet_name = sheet_name
        self.state = CursorState.AWAITING_HEADER
        self.headers: list[str] = []
        self.row_number = 0

    @property
    def has_header(self) -> bool:
        return self.state is CursorState.READING_ROWS

    def feed(self, values: Sequence[Any]) -> RawRow | None:
        """Consume one physical row; returns a RawRow for non-empty data rows."""
        self.row_number += 1
        if all(is_blank(v) for v in values):
            return None
        if self.state is CursorState.AWAITING_HEADER:
            self.headers = build_headers(values)
            duplicated = {h for h in self.headers if self.headers.count(h) > 1}
            if duplicated:
                logger.warning(
                    "sheet=%s duplicated headers %s (last column wins)",
                    self.sheet_name,
                    sorted(duplicated),
                )
            self.state = CursorState.READING_ROWS
            return None
        # ヘッダーより長いセルは捨てる、短い行は None で埋める
        cells: dict[str, Any] = {}
        for idx, header in enumerate(self.headers):
            cells[header] = values[idx] if idx < len(values) else None
        return RawRow(sheet_name=self.sheet_name, row_number=self.row_number, cells=cells)


class SheetStream:
    """Lazy row sequence of one sheet. Iterate once."""

    def __init__(self, name: str, rows: Iterable[Sequence[Any]]) -> None:
        self.name = name
        self.cursor = SheetCursor(name)
        self._rows = rows
        self._consumed = False

    @property
    def headers(self) -> list[str]:
        return self.cursor.headers

    @property
    def has_header(self) -> bool:
        return self.cursor.has_header

    def __iter__(self) -> Iterator[RawRow]:
        if self._consumed:
            raise RuntimeError(f"sheet '{self.name}' stream already consumed")
        self._consumed = True
        for values in self._rows:
            raw = self.cursor.feed(values if values is not None else ())
            if raw is not None:
                yield raw


class CatalogReader:
    """Forward-only reader over the sheets of one uploaded file.

    Use as a context manager so the underlying workbook handle is released::

        with open_catalog(path) as reader:
            for sheet in reader.sheets():
                for raw in sheet:
                    ...
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._workbook: Any = None
        self._started = False
        self._csv_width = 0

    def open(self) -> CatalogReader:
        suffix = self.path.suffix.lower()
        if suffix in CSV_SUFFIXES:
            if not self.path.is_file():
                raise SheetReadError(f"file not found: {self.path}")
            self._csv_width = _csv_width(self.path)
            return self
        if suffix not in WORKBOOK_SUFFIXES:
            raise SheetReadError(f"unsupported file type '{suffix}' (expected .xlsx, .xlsm or .csv)")
        try:
            self._workbook = load_workbook(self.path, read_only=True, data_only=True)
        except Exception as e:
            raise SheetReadError(str(e)) from e
        return self

    def sheets(self) -> Iterator[SheetStream]:
        if self._started:
            raise RuntimeError("catalog reader is single pass; reopen the source to read again")
        self._started = True
        if self._workbook is None:
            yield SheetStream(self.path.stem, _iter_csv_rows(self.path, self._csv_width))
            return
        for worksheet in self._workbook.worksheets:
            yield SheetStream(str(worksheet.title), worksheet.iter_rows(values_only=True))

    def close(self) -> None:
        if self._workbook is not None:
            self._workbook.close()
            self._workbook = None

    def __enter__(self) -> CatalogReader:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def open_catalog(path: Path) -> CatalogReader:
    """Open a catalog file for streaming.

    Raises:
        SheetReadError: the container format cannot be opened
    """
    return CatalogReader(path).open()


def _csv_options() -> dict[str, Any]:
    # keep_default_na=False: "N/A" / "NA" を文字列のまま保持 (追加フィールドの N/A 判定に必要)
    return {
        "header": None,
        "dtype": str,
        "keep_default_na": False,
        "skip_blank_lines": True,
        "engine": "python",
    }


def _csv_width(path: Path) -> int:
    """Field count of the first non-blank CSV line (0 for an empty file)."""
    try:
        head = pd.read_csv(path, nrows=1, **_csv_options())
    except pd.errors.EmptyDataError:
        return 0
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise SheetReadError(f"cannot parse csv: {e}") from e
    return int(head.shape[1])


def _iter_csv_rows(path: Path, width: int, chunk_rows: int = CSV_CHUNK_ROWS) -> Iterator[tuple[Any, ...]]:
    if width == 0:
        # 空ファイル = ヘッダーなしシート
        return

    def truncate(fields: list[str]) -> list[str]:
        # ヘッダーより長い行は xlsx と同様に余分なセルを捨てる
        logger.debug("csv row with %d fields truncated to %d", len(fields), width)
        return fields[:width]

    try:
        with pd.read_csv(path, chunksize=chunk_rows, on_bad_lines=truncate, **_csv_options()) as reader:
            for chunk in reader:
                yield from chunk.itertuples(index=False, name=None)
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise SheetReadError(f"cannot parse csv: {e}") from e
