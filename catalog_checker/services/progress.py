from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

The run step streams its messages to stdout, so the bar is drawn on stderr
and only when stderr is a terminal. The total product count is unknown while
streaming; the bar counts products read and shows the current sheet.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stderr is a TTY and a progress bar should be displayed."""
    return sys.stderr.isatty()


class ProgressTracker:
    """Product counter bar. Disabled (no-op) in non-TTY environments such as CI."""

    def __init__(self, *, description: str = "Validating", enabled: bool | None = None) -> None:
        self.description = description
        self.processed = 0
        self.enabled = is_tty_enabled() if enabled is None else enabled
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=None,
                desc=description,
                unit="product",
                file=sys.stderr,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_sheet(self, sheet_name: str) -> None:
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({sheet_name})")

    def advance(self, processed: int) -> None:
        """Move the bar to an absolute product count."""
        delta = processed - self.processed
        self.processed = processed
        if self.pbar is not None and delta > 0:
            self.pbar.update(delta)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
