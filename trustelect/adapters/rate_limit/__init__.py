"""Counter store adapters for admission control.

The policy layer only talks to ``AbstractCounterStore`` so the in-memory
store can later be replaced by a shared backend without touching policies or
the HTTP layer.
"""

from trustelect.adapters.rate_limit.base import AbstractCounterStore, IncrementResult
from trustelect.adapters.rate_limit.in_memory import InMemoryCounterStore

__all__ = ["AbstractCounterStore", "IncrementResult", "InMemoryCounterStore"]
