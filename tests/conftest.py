"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
The study engine is exercised on in-memory adapters (tests/fakes.py);
integration tests bring their own database fixtures.
"""
import itertools
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from skillpath.api.dependencies import build_services  # noqa: E402
from skillpath.core.modes import CardState  # noqa: E402
from tests.fakes import (  # noqa: E402
    NOW,
    InMemoryCardStore,
    InMemoryDistractorStore,
    InMemoryJobQueue,
    InMemorySessionRepository,
    due_state,
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture
def now():
    """Fixed reference time shared with tests.fakes."""
    return NOW


@pytest.fixture
def settings():
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def card_store():
    return InMemoryCardStore()


@pytest.fixture
def distractor_store():
    return InMemoryDistractorStore()


@pytest.fixture
def job_queue():
    return InMemoryJobQueue()


@pytest.fixture
def session_repo():
    return InMemorySessionRepository()


@pytest.fixture
def services(card_store, distractor_store, job_queue, session_repo, settings):
    """Study services wired on the in-memory adapters with a seeded RNG."""
    wired = build_services(
        card_store=card_store,
        distractor_store=distractor_store,
        job_queue=job_queue,
        sessions=session_repo,
        settings=settings,
        rng=random.Random(7),
    )
    # Sequential ids: later sessions sort after earlier ones on ties
    counter = itertools.count(1)
    wired.session_manager.id_factory = lambda: f"session-{next(counter):03d}"
    return wired


@pytest.fixture
def manager(services):
    return services.session_manager


@pytest.fixture
def goal_tree(card_store):
    """
    Goal with a small skill tree:

        1 (node-1) ── 1.1 (node-1-1)
        2 (node-2)

    node-1 holds c1 and c2, node-1-1 holds c3, node-2 holds c4. All cards are
    due and still in the Learning tier.
    """
    card_store.add_goal()
    card_store.add_node("node-1", "1")
    card_store.add_node("node-1-1", "1.1", parent_id="node-1")
    card_store.add_node("node-2", "2")
    card_store.add_card("c1", "node-1", due_state(days_ago=1, state=CardState.LEARNING))
    card_store.add_card("c2", "node-1", due_state(days_ago=2, state=CardState.LEARNING))
    card_store.add_card("c3", "node-1-1", due_state(days_ago=3, state=CardState.LEARNING))
    card_store.add_card("c4", "node-2", due_state(days_ago=4, state=CardState.LEARNING))
    return card_store
