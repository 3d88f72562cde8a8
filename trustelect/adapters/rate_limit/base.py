"""Counter store interfaces.

Policies depend on this abstraction (not the concrete implementation) so the
storage backend can be swapped with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class IncrementResult:
    """Result of a counter increment.

    Attributes:
        total_hits: Attempts counted for the key in the current window,
            including the one just recorded.
        reset_time: Epoch milliseconds at which the current window ends.
    """

    total_hits: int
    reset_time: int


def window_index(now_ms: int, window_ms: int) -> int:
    """Return the index of the fixed window containing ``now_ms``."""
    return now_ms // window_ms


def composite_key(key: str, index: int) -> str:
    """Build the ``key:windowIndex`` form used in logs and introspection."""
    return f"{key}:{index}"


class AbstractCounterStore(ABC):
    """Interface for per-key fixed-window counters."""

    @abstractmethod
    def increment(self, key: str, window_ms: int, now_ms: int) -> IncrementResult:
        """Count one attempt for ``key`` in the window covering ``now_ms``.

        Args:
            key: Logical key (e.g. ``login:1.2.3.4:a@b.com``).
            window_ms: Window length in milliseconds.
            now_ms: Current time as epoch milliseconds.

        Returns:
            IncrementResult with the updated count and window end.
        """
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str | None = None) -> None:
        """Forget the counter for ``key``, or every counter when omitted."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        """Number of live counter entries."""
        raise NotImplementedError
