"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across unit tests.
"""

from datetime import date, datetime, timezone
import os
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root BEFORE any fixtures run
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    # Try backend directory
    _backend_env = Path(__file__).parent.parent / ".env"
    if _backend_env.exists():
        load_dotenv(_backend_env)

# Settings are instantiated when app modules are first imported during
# collection, so these must be in place before any test module loads.
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["LEADERBOARD_SCHEDULER_ENABLED"] = "false"

from tests.fakes import InMemoryPlannerRepository  # noqa: E402


# ============================================================================
# Environment Configuration
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """
    Set up test environment variables before any tests run.

    This ensures tests run with predictable configuration, overriding
    any values from .env files to ensure test isolation.
    """
    # Store original environment
    original_env = os.environ.copy()

    test_env = {
        "POSTGRES_HOST": os.environ.get("POSTGRES_HOST", "localhost"),
        "POSTGRES_PORT": os.environ.get("POSTGRES_PORT", "5432"),
        "POSTGRES_USER": os.environ.get("POSTGRES_TEST_USER", "testuser"),
        "POSTGRES_PASSWORD": os.environ.get("POSTGRES_TEST_PASSWORD", "testpass"),
        "POSTGRES_DB": os.environ.get("POSTGRES_TEST_DB", "testdb"),
        "DEBUG": "true",
    }
    os.environ.update(test_env)

    yield

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


# ============================================================================
# Planner Fixtures
# ============================================================================


@pytest.fixture
def now() -> datetime:
    """Fixed 'now' on the first due date of the reference schedule."""
    return datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo() -> InMemoryPlannerRepository:
    """Empty in-memory planner repository."""
    return InMemoryPlannerRepository()


@pytest.fixture
def seeded_repo(repo: InMemoryPlannerRepository) -> InMemoryPlannerRepository:
    """
    Repository with user u1 and topic t1 (frequency [7, 14, 21], first
    studied 2024-01-01) but no schedule yet.
    """
    repo.add_learner("u1", "Ada")
    repo.add_topic(
        "t1",
        "u1",
        subject="Maths",
        title="Integrals",
        first_studied=date(2024, 1, 1),
        frequency=[7, 14, 21],
    )
    return repo


# ============================================================================
# Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_db_session() -> MagicMock:
    """
    Create a mock database session for unit testing.
    """
    mock = MagicMock()
    mock.execute = AsyncMock()
    mock.commit = AsyncMock()
    mock.rollback = AsyncMock()
    mock.close = AsyncMock()
    mock.flush = AsyncMock()
    mock.get = AsyncMock(return_value=None)
    mock.add = MagicMock()
    return mock
