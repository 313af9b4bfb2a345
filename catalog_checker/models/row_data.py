from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

"""Row-level models for the catalog validation pipeline.

RawRow is what the streaming reader produces for one spreadsheet row after the
sheet's header row has been captured. Product is the normalized, dotted-path
view of that row which the chunk validator owns while it checks one chunk.
"""

__all__ = [
    "RawRow",
    "Product",
    "CATALOG_NUMBER_FIELD",
]

CATALOG_NUMBER_FIELD = "catalog_number"


@dataclass(frozen=True)
class RawRow:
    """One spreadsheet row keyed by header name (column order preserved).

    row_number is the 1-based row number inside the source sheet.
    """
    sheet_name: str
    row_number: int
    cells: dict[str, Any]  # header -> raw cell value (str / number / bool / None)


@dataclass
class Product:
    """Mutable mapping of dotted field path -> value for a single row.

    ``validated`` is set only after every check for the product passed.
    """
    sheet_name: str
    row_number: int
    values: dict[str, Any] = field(default_factory=dict)
    validated: bool = False

    def __getitem__(self, key: str) -> Any:
        return self.values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.values[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def keys(self) -> list[str]:
        return list(self.values.keys())

    @property
    def catalog_number(self) -> Any:
        return self.values.get(CATALOG_NUMBER_FIELD)

    def snapshot(self) -> dict[str, Any]:
        """Shallow copy of the values (used for fingerprint samples)."""
        return dict(self.values)

    def to_dict(self) -> dict[str, Any]:
        out = dict(self.values)
        out["validated"] = self.validated
        return out
