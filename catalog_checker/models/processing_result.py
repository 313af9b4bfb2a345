from __future__ import annotations

import statistics
from dataclasses import dataclass, field

from .process_error import ProcessError
from .row_data import Product

"""Chunk-level processing results and timing statistics.

ChunkResult is what the chunk validator returns for one batch; the
ChunkStatsAccumulator collects per-chunk validation timings for the run's
debug log line.
"""


@dataclass
class ChunkResult:
    """Partition of one chunk into valid / invalid products plus diagnostics."""
    valid: list[Product] = field(default_factory=list)
    invalid: list[Product] = field(default_factory=list)
    errors: list[ProcessError] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.valid) + len(self.invalid)


@dataclass(frozen=True)
class ChunkStats:
    total_chunks: int
    avg_chunk_seconds: float
    p95_chunk_seconds: float


class ChunkStatsAccumulator:
    """Helper class to accumulate chunk validation timings.

    Collects individual chunk timing data and calculates summary statistics.
    """

    def __init__(self) -> None:
        self.chunk_times: list[float] = []

    def add_chunk_time(self, elapsed_seconds: float) -> None:
        self.chunk_times.append(elapsed_seconds)

    def get_stats(self) -> ChunkStats:
        if not self.chunk_times:
            return ChunkStats(0, 0.0, 0.0)

        total = len(self.chunk_times)
        avg = statistics.mean(self.chunk_times)

        if total == 1:
            p95 = self.chunk_times[0]
        else:
            # 95th percentile (19th out of 20 quantiles, 0-indexed)
            p95 = statistics.quantiles(self.chunk_times, n=20, method="inclusive")[18]

        return ChunkStats(total, avg, p95)
