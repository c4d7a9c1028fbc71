"""
Pytest configuration and fixtures for Modrelay tests.
"""

import os
import sys
import tempfile
from pathlib import Path

# Keep test runs from writing session logs into the project tree
os.environ.setdefault("MODRELAY_LOGS_DIR", tempfile.mkdtemp(prefix="modrelay-test-logs-"))

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

import pytest
import pytest_asyncio

from modrelay.configuration.identity_settings import IdentityConfig
from modrelay.database.database import Database
from modrelay.identity.hasher import IdentityHasher
from modrelay.moderation.moderation_engine import ModerationEngine

# Low iteration count keeps PBKDF2 fast in tests; production uses the config default
TEST_ITERATIONS = 1_000


@pytest.fixture
def identity_config() -> IdentityConfig:
    return IdentityConfig(salt="test-salt", iterations=TEST_ITERATIONS)


@pytest.fixture
def hasher(identity_config: IdentityConfig) -> IdentityHasher:
    return IdentityHasher(identity_config)


@pytest_asyncio.fixture
async def test_db(tmp_path: Path):
    """An initialized database in a temporary directory."""
    db = Database(tmp_path / "test.db")
    await db.initialize()
    yield db
    await db.shutdown()


@pytest.fixture
def engine(test_db: Database, hasher: IdentityHasher) -> ModerationEngine:
    return ModerationEngine(hasher, test_db.bans, test_db.messages)
