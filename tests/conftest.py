"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from remember.store.memory_store import MemoryDocumentStore  # noqa: E402
from remember.sync.scan_service import ScanService  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (full scan passes)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class FakeClock:
    """A settable clock shared by the store and the scanner."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def clock():
    """A clock set to 2021-01-07 09:00."""
    return FakeClock(datetime(2021, 1, 7, 9, 0))


@pytest.fixture
def settings():
    """Settings for an in-memory store with no settle delay."""
    return Settings(
        store_backend="memory",
        index_settle_seconds=0,
        scan_workers=2,
        log_file=None,
    )


@pytest.fixture
def memory_store(clock):
    return MemoryDocumentStore(page_size=3, clock=clock)


@pytest.fixture
def scan_service(memory_store, settings, clock):
    """A ScanService over the memory store with a seeded random source."""
    return ScanService(
        memory_store,
        settings=settings,
        clock=clock,
        sleep=lambda seconds: None,
        rng=random.Random(1234),
    )


@pytest.fixture
def sample_note_body():
    """A note with two trackable blocks and no ids yet."""
    return (
        "# Geography\n"
        "\n"
        "```remember\n"
        "Paris is the capital of France.\n"
        "```\n"
        "\n"
        "Some prose in between.\n"
        "\n"
        "```remember\n"
        "Q: What is the capital of Italy?\n"
        "Rome\n"
        "```\n"
    )
