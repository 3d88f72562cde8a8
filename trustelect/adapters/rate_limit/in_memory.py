"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit,
  and a restart resets every counter.
- Thread-safe: uses a lock around shared state.
- One record per bare key. A record from an older window is replaced on the
  next access for that key, so memory stays bounded by active keys.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from trustelect.adapters.rate_limit.base import (
    AbstractCounterStore,
    IncrementResult,
    composite_key,
    window_index,
)


@dataclass
class _CounterEntry:
    window_index: int
    count: int


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a lock-guarded dict.

    A single instance is meant to be shared by every policy in the process.
    Keys from different policies never collide because each policy prefixes
    its keys with its own namespace.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[str, _CounterEntry] = {}

    def increment(self, key: str, window_ms: int, now_ms: int) -> IncrementResult:
        """Count one attempt for ``key`` in the window covering ``now_ms``.

        Raises:
            ValueError: If ``window_ms`` is not positive.
        """
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")

        index = window_index(now_ms, window_ms)

        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.window_index != index:
                # Stale window for this key is dropped here, lazily.
                entry = _CounterEntry(window_index=index, count=0)
                self._entries[key] = entry
            entry.count += 1
            total_hits = entry.count

        return IncrementResult(total_hits=total_hits, reset_time=(index + 1) * window_ms)

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def entries_for(self, key: str) -> dict[str, int]:
        """Return the live ``key:windowIndex -> count`` entries for ``key``."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return {}
            return {composite_key(key, entry.window_index): entry.count}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(size={len(self)})"
