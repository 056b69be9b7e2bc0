"""Pytest fixtures and utilities for the trade replay test suite."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List

import pytest

from tradereplay.core.broker import BrokerEngine
from tradereplay.core.config import BrokerConfig, ReplayConfig
from tradereplay.core.models import Bar, TradeEvent


# =============================================================================
# Helpers
# =============================================================================

def make_bars(closes: List[str], start: datetime = None) -> List[Bar]:
    """Build one-minute bars whose open/high/low/close all equal the close."""
    start = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
    bars = []
    for i, close in enumerate(closes):
        price = Decimal(str(close))
        bars.append(
            Bar(
                timestamp=start + timedelta(minutes=i),
                open=price,
                high=price,
                low=price,
                close=price,
            )
        )
    return bars


class EventRecorder:
    """Subscriber that keeps every delivered event."""

    def __init__(self):
        self.events: List[TradeEvent] = []

    def notify(self, event: TradeEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self):
        return [e.kind for e in self.events]


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def broker_config():
    """Broker configuration with a stop distance small enough for unit prices."""
    return BrokerConfig(
        initial_balance=Decimal("10000"),
        risk_per_trade=Decimal("0.01"),
        default_lot_size=Decimal("0.1"),
        min_sl_distance=Decimal("0.1"),
        max_open_positions=10,
    )


@pytest.fixture
def replay_config():
    """Fast replay configuration for playback tests."""
    return ReplayConfig(playback_speed_ms=10, frame_interval_ms=2)


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def broker(broker_config):
    """Create a fresh broker for each test."""
    return BrokerEngine(broker_config)


@pytest.fixture
def recorder(broker):
    """Event recorder subscribed to the broker."""
    rec = EventRecorder()
    broker.subscribe(rec)
    return rec


@pytest.fixture
def bars():
    """Ten bars rising from 100 to 109."""
    return make_bars([str(100 + i) for i in range(10)])


def assert_equity_invariant(broker: BrokerEngine):
    """equity == balance + sum of open unrealized PnL."""
    unrealized = sum((t.unrealized_pnl for t in broker.open_trades), Decimal("0"))
    assert broker.equity == broker.balance + unrealized


# =============================================================================
# Helper Fixtures
# =============================================================================

@pytest.fixture
def bar_factory():
    """Expose make_bars to tests."""
    return make_bars


@pytest.fixture
def recorder_factory():
    """Create additional event recorders."""
    return EventRecorder


@pytest.fixture
def check_equity():
    """Expose the equity invariant assertion to tests."""
    return assert_equity_invariant
