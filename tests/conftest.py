"""
Shared Fixtures and Mocks for Testing
======================================

This file is automatically loaded by pytest and provides:
- Mock Gamma API responses
- Frictionless and seeded simulation fixtures
- Portfolio, config and market fixtures
"""

import json
import random
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from poly_agent.core.config import AgentConfig
from poly_agent.core.models import Market
from poly_agent.core.portfolio import Portfolio
from poly_agent.core.simulation import FillSimulator, SimConfig


# ============================================================
# MOCK DATA
# ============================================================

MOCK_GAMMA_MARKETS = [
    {
        "conditionId": "0xmarket1",
        "question": "Will Bitcoin hit $150k by March 2027?",
        "category": "Crypto",
        "outcomePrices": json.dumps(["0.45", "0.55"]),
        "volumeNum": 50000,
        "liquidityNum": 100000,
        "endDate": (datetime.now(timezone.utc) + timedelta(days=30)).isoformat(),
        "slug": "btc-150k",
    },
    {
        "conditionId": "0xmarket2",
        "question": "Will it rain in London tomorrow?",
        "category": "Weather",
        "outcomePrices": ["0.70", "0.30"],
        "volume": "1200.5",
        "liquidity": "800",
        "endDate": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
    },
    {
        "conditionId": "0xbroken",
        "question": "Market without prices",
        "outcomePrices": "not json",
    },
]


# ============================================================
# FIXTURES - Clock & Randomness
# ============================================================

class FakeClock:
    """Deterministic clock for ledger tests."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class StubRandom(random.Random):
    """Random source returning scripted values for random() and uniform()."""

    def __init__(self, randoms=(), uniforms=()):
        super().__init__(0)
        self._randoms = list(randoms)
        self._uniforms = list(uniforms)

    def random(self):
        return self._randoms.pop(0) if self._randoms else 0.99

    def uniform(self, a, b):
        return self._uniforms.pop(0) if self._uniforms else a


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def seeded_simulator():
    return FillSimulator(rng=random.Random(42))


# ============================================================
# FIXTURES - Simulation configs
# ============================================================

@pytest.fixture
def no_sim():
    """Frictionless execution."""
    return SimConfig.disabled()


@pytest.fixture
def full_sim():
    """Every effect on, with a non-zero taker fee."""
    return SimConfig(taker_fee_pct=Decimal("0.01"))


# ============================================================
# FIXTURES - Portfolio & Config
# ============================================================

@pytest.fixture
def portfolio(clock):
    """$100 portfolio on a fake clock."""
    return Portfolio(Decimal("100"), simulator=FillSimulator(rng=random.Random(7)), clock=clock)


@pytest.fixture
def config():
    """Config with frictionless simulation and an always-on fast loop."""
    return AgentConfig(
        initial_balance=Decimal("100"),
        kill_threshold=Decimal("15"),
        max_position_pct=Decimal("0.20"),
        kelly_fraction=Decimal("0.40"),
        min_confidence=Decimal("0.60"),
        balance_reserve_pct=Decimal("0.10"),
        sim_fees_enabled=False,
        sim_slippage_enabled=False,
        sim_fills_enabled=False,
        sim_impact_enabled=False,
    )


@pytest.fixture
def market():
    return Market(
        id="0xmarket1",
        question="Will Bitcoin hit $150k by March 2027?",
        category="Crypto",
        end_date="2026-12-31T00:00:00Z",
        yes_price=Decimal("0.45"),
        no_price=Decimal("0.55"),
        volume=Decimal("50000"),
        liquidity=Decimal("100000"),
    )


# ============================================================
# FIXTURES - HTTP mocks
# ============================================================

def make_gamma_session(payload, status=200):
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=payload)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    mock_session.get = MagicMock(return_value=mock_response)
    return mock_session


@pytest.fixture
def mock_gamma_api(mocker):
    """Mock Polymarket Gamma API responses."""
    return mocker.patch("aiohttp.ClientSession", return_value=make_gamma_session(MOCK_GAMMA_MARKETS))
