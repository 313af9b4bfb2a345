from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from ..models.process_error import ProcessError

"""Per-run diagnostic audit log (JSON Lines).

- One file per process start: ``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC)
- Each line is the wire form of a ProcessError plus ``timestamp`` and ``file``
- Records are buffered and written on flush() (once per run)
"""

__all__ = [
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for diagnostics. Flush appends JSON Lines.

    - ファイルパスは初回アクセスで決定
    - スレッド安全性不要 (producer スレッドのみが append する)
    """

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR
        self._records: list[tuple[str, str, ProcessError]] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, file_name: str, error: ProcessError) -> None:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        self._records.append((ts, file_name, error))

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the log path or None if nothing was written."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for ts, file_name, error in self._records:
                line = {"timestamp": ts, "file": file_name, **json.loads(error.to_json_line())}
                f.write(json.dumps(line, ensure_ascii=False) + "\n")
        self._records.clear()
        return fp
