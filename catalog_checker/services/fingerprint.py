from __future__ import annotations

import hashlib
import json
import logging
import math
from collections import deque
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from ..models.sheet_metadata import SheetMetadata

"""Run fingerprint (content hash) and the "already validated" record.

fingerprint = sha256( sha256(json(metadata)) + sha256(json(samples)) + str(N) )

``samples`` is a deterministic subset of the N products: the first window,
a middle window (only when N > 2*s) and a last window (only when N > s),
where s is the sample size. Products are sampled as read, before any
validation normalization is applied to them.

Reading is single pass, so N is only known at the end. SampleCollector keeps
the first and last windows during the main pass; the middle window is read
in a second pass over a reopened source that stops at the window's end.
"""

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_SIZE = 1


def _dumps(value: Any) -> str:
    # JSON.stringify 互換のコンパクト表現
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sample_windows(total: int, sample_size: int = DEFAULT_SAMPLE_SIZE) -> list[range]:
    """Index windows sampled from ``total`` products, in first/middle/last order."""
    if total <= 0:
        return []
    windows = [range(0, min(sample_size, total))]
    middle = middle_window(total, sample_size)
    if middle is not None:
        windows.append(middle)
    if total > sample_size:
        windows.append(range(max(0, total - sample_size), total))
    return windows


def middle_window(total: int, sample_size: int = DEFAULT_SAMPLE_SIZE) -> range | None:
    if total <= sample_size * 2:
        return None
    mid = total // 2
    return range(max(0, mid - sample_size // 2), min(total, mid + math.ceil(sample_size / 2)))


def fallback_fingerprint(metadata_count: int, product_count: int) -> str:
    return _sha256(f"{metadata_count}{product_count}")


def compute_fingerprint_from_samples(
    metadata: Sequence[SheetMetadata], samples: Sequence[dict[str, Any]], total: int
) -> str:
    """Fold metadata, sampled products and the product count into one hex digest.

    Never raises: on a serialization failure the fallback digest of the two
    counts is returned.
    """
    try:
        meta_hex = _sha256(_dumps([m.to_dict() for m in metadata]))
        products_hex = _sha256(_dumps(list(samples)))
        return _sha256(meta_hex + products_hex + str(total))
    except (TypeError, ValueError, RecursionError) as e:
        logger.warning("fingerprint generation failed (%s); using fallback", e)
        return fallback_fingerprint(len(metadata), total)


def compute_fingerprint(
    metadata: Sequence[SheetMetadata],
    products: Sequence[dict[str, Any]],
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> str:
    """In-memory variant over a fully materialized product list."""
    samples: list[dict[str, Any]] = []
    for window in sample_windows(len(products), sample_size):
        samples.extend(products[i] for i in window)
    return compute_fingerprint_from_samples(metadata, samples, len(products))


class SampleCollector:
    """Keeps the first/last sample windows while products stream past."""

    def __init__(self, sample_size: int = DEFAULT_SAMPLE_SIZE) -> None:
        if sample_size < 1:
            raise ValueError("sample_size must be >= 1")
        self.sample_size = sample_size
        self.total = 0
        self._head: list[dict[str, Any]] = []
        self._tail: deque[dict[str, Any]] = deque(maxlen=sample_size)

    def add(self, snapshot: dict[str, Any]) -> None:
        if len(self._head) < self.sample_size:
            self._head.append(snapshot)
        self._tail.append(snapshot)
        self.total += 1

    @property
    def middle(self) -> range | None:
        return middle_window(self.total, self.sample_size)

    def samples(self, middle: Sequence[dict[str, Any]] = ()) -> list[dict[str, Any]]:
        if self.total == 0:
            return []
        out = list(self._head)
        if self.middle is not None:
            out.extend(middle)
        if self.total > self.sample_size:
            out.extend(self._tail)
        return out


def read_window(snapshots: Iterable[dict[str, Any]], window: range) -> list[dict[str, Any]]:
    """Collect the snapshots whose index falls in ``window``; stops at its end."""
    out: list[dict[str, Any]] = []
    for idx, snapshot in enumerate(snapshots):
        if idx >= window.stop:
            break
        if idx >= window.start:
            out.append(snapshot)
    return out


class BlueprintStore(Protocol):
    def contains(self, name: str, fingerprint: str) -> bool: ...

    def add(self, name: str, fingerprint: str) -> None: ...


class IdempotencyRecorder:
    """Consults / extends the persisted set of already-validated fingerprints."""

    def __init__(self, store: BlueprintStore, name: str) -> None:
        self.store = store
        self.name = name

    def contains(self, fingerprint: str) -> bool:
        return self.store.contains(self.name, fingerprint)

    def record(self, fingerprint: str) -> None:
        """Set-union add; recording an existing fingerprint is a no-op."""
        self.store.add(self.name, fingerprint)
        logger.debug("recorded fingerprint %s under '%s'", fingerprint, self.name)
