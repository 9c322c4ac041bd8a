"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings; integration tests build their own
# per-test SQLite database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_engine.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FILE", "logs/test_engine.log")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from loguru import logger

from app.config.business_constants import DEFAULT_RANKS
from app.services.rank.rank_resolver import RankSnapshot, RankTier


@pytest.fixture
def rank_snapshot():
    """Snapshot of the default rank table."""
    return RankSnapshot(
        tiers=tuple(
            RankTier(rank_id=i, title=title, required_points=points)
            for i, (title, points, _details) in enumerate(DEFAULT_RANKS, start=1)
        )
    )


@pytest.fixture
def mock_package():
    """Package row with a four-level schedule (10% / 5% / 3% / 2%)."""
    package = MagicMock()
    package.id = 1
    package.price = Decimal("10000.00")
    package.points = 1000
    package.direct_commission_rate = Decimal("0.1000")
    package.indirect_commission_rates = {"2": "0.05", "3": "0.03", "4": "0.02"}
    package.is_active = True
    return package


@pytest.fixture
def log_records():
    """Loguru records emitted during the test."""
    records = []
    handler_id = logger.add(
        lambda message: records.append(message.record), level="DEBUG"
    )
    yield records
    logger.remove(handler_id)
