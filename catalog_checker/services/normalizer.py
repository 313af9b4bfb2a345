from __future__ import annotations

from typing import Any

from ..excel.reader import is_blank
from ..models.row_data import Product, RawRow


def normalize_value(value: Any) -> Any:
    """Trim strings; blank cells (None / whitespace / NaN) become None."""
    if is_blank(value):
        return None
    if isinstance(value, str):
        return value.strip()
    return value


def normalize_row(raw: RawRow) -> Product | None:
    """Flatten a raw row into a Product keyed by dotted header path.

    Headers are used verbatim as field paths (``price.buy.amount`` stays
    ``price.buy.amount``). Rows without any non-empty cell are dropped.
    """
    values = {key: normalize_value(value) for key, value in raw.cells.items()}
    if all(v is None for v in values.values()):
        return None
    return Product(sheet_name=raw.sheet_name, row_number=raw.row_number, values=values)
