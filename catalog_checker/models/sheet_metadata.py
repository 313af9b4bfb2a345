from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Per-sheet processing models.

SheetMetadata is accumulated for every sheet that had a header row and feeds
the run fingerprint. It is serialized with the same camelCase keys that the
wire format uses so the digest is stable across releases.
"""

__all__ = [
    "SheetMetadata",
]


@dataclass
class SheetMetadata:
    """Processing unit summary for one sheet (name, header list, data rows)."""
    sheet_name: str
    headers: list[str] = field(default_factory=list)
    row_count: int = 0  # 非空データ行数 (ヘッダ行除く)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sheetName": self.sheet_name,
            "rowCount": self.row_count,
            "headers": list(self.headers),
        }
