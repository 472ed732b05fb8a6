"""
filterflow Test Configuration and Fixtures

Shared records, sessions and surfaces for unit and integration tests.
"""

import pytest

from filterflow.bootstrap.config import FilterFlowConfig
from filterflow.selection import RecordCollection, RecordingSurface
from filterflow.session import create_session, teardown_session


SAMPLE_RECORDS = [
    {"region": "CA", "locality": "LA", "name": "Golden Road Wolf Pup"},
    {"region": "CA", "locality": "LA", "name": "Angel City IPA"},
    {"region": "CA", "locality": "SF", "name": "Anchor Steam"},
    {"region": "CA", "locality": "SD", "name": "Stone IPA"},
    {"region": "TX", "locality": "Austin", "name": "Live Oak Hefeweizen"},
    {"region": "TX", "locality": "Houston", "name": "Saint Arnold Lawnmower"},
    {"region": "TX", "locality": "Austin", "name": "Jester King Le Petit Prince"},
    {"region": "OR", "locality": "Portland", "name": "Breakside IPA"},
]


@pytest.fixture
def config():
    """Default configuration, independent of the environment."""
    return FilterFlowConfig()


@pytest.fixture
def session(config):
    """A fresh session, torn down after the test."""
    s = create_session(config)
    yield s
    teardown_session(s)


@pytest.fixture
def records():
    """Beer records across three regions."""
    return RecordCollection(SAMPLE_RECORDS)


@pytest.fixture
def surface():
    """In-memory rendering surface."""
    return RecordingSurface()
