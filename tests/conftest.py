"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded, and resets the process-wide
policy registry so counters never leak between tests.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from trustelect.adapters.rate_limit.in_memory import InMemoryCounterStore
from trustelect.core.rate_limit import reset_policy_registry


@pytest.fixture(autouse=True)
def _fresh_policy_registry():
    reset_policy_registry()
    yield
    reset_policy_registry()


@pytest.fixture
def store() -> InMemoryCounterStore:
    return InMemoryCounterStore()
