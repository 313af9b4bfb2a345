from __future__ import annotations

import re
import threading

"""Fuzzy ("aggressive") matchers for controlled-vocabulary labels.

A label such as ``alpha lipoic acid`` becomes a case-insensitive pattern in
which every letter/digit of the label may be followed by any run of
non-alphanumeric noise (punctuation, whitespace, underscores). Separators in
the label itself are dropped, so the pattern matches ``Alpha-Lipoic Acid,``
and ``alpha_lipoic_acid`` alike. Matching is a search, not a full match.

Compiled patterns are cached per label. When the cache holds more entries
than its ceiling it is cleared completely before the new entry is inserted
(reset on overflow, not LRU). The cache is shared across runs; misses are
inserted under a lock, hits are lock-free dict reads.
"""

__all__ = [
    "RegexMatchCache",
    "build_aggressive_pattern",
    "default_cache",
]

DEFAULT_MAX_ENTRIES = 1000

_NOISE = r"[\W_]*"


def build_aggressive_pattern(label: str) -> re.Pattern[str]:
    parts = [re.escape(ch) + _NOISE for ch in label if ch.isalnum()]
    if not parts:
        # 英数字を含まないラベルはリテラル一致
        return re.compile(re.escape(label.strip()), re.IGNORECASE)
    return re.compile("".join(parts), re.IGNORECASE)


class RegexMatchCache:
    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._patterns: dict[str, re.Pattern[str]] = {}
        self._lock = threading.Lock()
        self.resets = 0

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, label: object) -> bool:
        return label in self._patterns

    def pattern(self, label: str) -> re.Pattern[str]:
        compiled = self._patterns.get(label)
        if compiled is not None:
            return compiled
        with self._lock:
            compiled = self._patterns.get(label)
            if compiled is None:
                if len(self._patterns) > self.max_entries:
                    self._patterns.clear()
                    self.resets += 1
                compiled = build_aggressive_pattern(label)
                self._patterns[label] = compiled
        return compiled

    def matches(self, label: str, text: str) -> bool:
        return self.pattern(label).search(text) is not None

    def clear(self) -> None:
        with self._lock:
            self._patterns.clear()


# プロセス全体で共有 (ラン間で保持される)
default_cache = RegexMatchCache()
