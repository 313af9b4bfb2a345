from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Protocol

"""Upload step: stage a supplier catalog file in the temp directory.

The returned reference (``/temp/<epoch_ms>-<name>``) is what the run step
takes as its file parameter.
"""

logger = logging.getLogger(__name__)

TEMP_REF_PREFIX = "/temp/"


class UploadError(Exception):
    """Upload rejected. ``status`` mirrors the HTTP status a web layer would return."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self)}


class SupplierDirectory(Protocol):
    def exists(self, supplier_id: int) -> bool: ...


@dataclass(frozen=True)
class StagedUpload:
    supplier_id: int
    path: Path
    file_ref: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": "File uploaded successfully",
            "supplierId": self.supplier_id,
            "tempFilePath": self.file_ref,
        }


def parse_supplier_id(value: Any) -> int | None:
    """Positive integer supplier id, or None when missing / zero / not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not number.is_integer() or number <= 0:
        return None
    return int(number)


def stage_upload(
    source: Path | BinaryIO | None,
    filename: str | None,
    supplier_id: Any,
    suppliers: SupplierDirectory,
    temp_directory: Path,
) -> StagedUpload:
    """Copy an uploaded file into the temp directory.

    Raises:
        UploadError: 400 when the file or supplier id is missing,
            404 when the supplier is unknown
    """
    if source is None or not filename:
        raise UploadError("No file provided", status=400)
    if isinstance(source, Path) and not source.is_file():
        raise UploadError("No file provided", status=400)

    parsed_id = parse_supplier_id(supplier_id)
    if parsed_id is None:
        raise UploadError("No supplier ID provided", status=400)
    if not suppliers.exists(parsed_id):
        raise UploadError("Supplier not found", status=404)

    temp_directory.mkdir(parents=True, exist_ok=True)
    # ディレクトリ成分は捨ててファイル名のみ使う
    staged_name = f"{int(time.time() * 1000)}-{Path(filename).name}"
    target = temp_directory / staged_name
    if isinstance(source, Path):
        shutil.copyfile(source, target)
    else:
        with target.open("wb") as out:
            shutil.copyfileobj(source, out)

    logger.info("staged upload supplier=%s file=%s", parsed_id, target)
    return StagedUpload(supplier_id=parsed_id, path=target, file_ref=TEMP_REF_PREFIX + staged_name)
