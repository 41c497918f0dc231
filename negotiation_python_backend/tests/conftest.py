"""
Pytest configuration and shared fixtures for the negotiation analysis backend.

This module provides:
- An async SQLite usage ledger (one database file per test)
- A controllable clock for the token budget guard
- Sample LLM records used across the pipeline tests
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from negotiation_python_backend.db_session import build_engine, init_usage_ledger


# ============================================================================
# Usage ledger database
# ============================================================================

@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """
    Session factory over a fresh SQLite file.

    A file (not :memory:) so concurrent sessions get separate connections
    to the same database.
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'usage.db'}"
    engine = build_engine(url)
    await init_usage_ledger(engine, url)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ============================================================================
# Clock
# ============================================================================

class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 14, 10, 0, 0, tzinfo=timezone.utc))


# ============================================================================
# Sample records
# ============================================================================

@pytest.fixture
def sample_highlight():
    return {
        "type": "highlight",
        "paragraph_index": 0,
        "char_start": 0,
        "char_end": 24,
        "category": "manipulation",
        "label": "Штучний дедлайн",
        "labels": ["Штучний дедлайн", "Тиск часом"],
        "text": "Відповідь потрібна сьогодні",
        "explanation": "Creates urgency without a real deadline",
        "severity": 3,
        "actors": ["Продавець"],
        "tactics": ["deadline pressure"],
        "confidence": "high",
    }


@pytest.fixture
def sample_summary():
    return {
        "type": "summary",
        "counts_by_category": {"manipulation": 2, "cognitive_bias": 1, "rhetological_fallacy": 0},
        "top_patterns": ["Тиск часом", "Якоріння"],
        "overall_observations": "The seller controls the pace.",
        "cognitive_bias_heatmap": {"anchoring": 2},
    }


@pytest.fixture
def sample_barometer():
    return {
        "type": "barometer",
        "score": 72,
        "label": "High",
        "rationale": "Repeated pressure tactics",
        "factors": {"pressure": 0.8},
        "adequacy": {"score": 35, "label": "Низька", "comment": "Terms are one-sided"},
    }
