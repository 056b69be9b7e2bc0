"""Unit tests for trade replay data models."""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from tradereplay.core.models import (
    # Enums
    TradeDirection, TradeStatus, TradeEventType,
    # Models
    Bar, Trade, TradeEvent, ReplayState, BrokerStats,
    # Helpers
    to_decimal, is_positive_finite,
)


def make_trade(direction="long", entry="100", sl="99", tp="102", size="1", **kwargs):
    return Trade(
        id="trade_1",
        direction=direction,
        entry_price=Decimal(entry),
        stop_loss=Decimal(sl),
        take_profit=Decimal(tp),
        size=Decimal(size),
        **kwargs,
    )


# =============================================================================
# Helper Tests
# =============================================================================

class TestHelpers:
    """Test numeric conversion helpers."""

    def test_to_decimal_float_uses_str(self):
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal(99.5) == Decimal("99.5")

    def test_to_decimal_passthrough(self):
        value = Decimal("1.23")
        assert to_decimal(value) is value

    def test_to_decimal_rejects_non_numeric(self):
        assert to_decimal("abc") is None
        assert to_decimal(None) is None
        assert to_decimal(True) is None
        assert to_decimal([1]) is None

    def test_is_positive_finite(self):
        assert is_positive_finite(Decimal("0.0001"))
        assert not is_positive_finite(Decimal("0"))
        assert not is_positive_finite(Decimal("-1"))
        assert not is_positive_finite(Decimal("NaN"))
        assert not is_positive_finite(Decimal("Infinity"))
        assert not is_positive_finite(None)


# =============================================================================
# Enum Tests
# =============================================================================

class TestEnums:
    """Test enumeration values and behavior."""

    def test_trade_direction_values(self):
        assert TradeDirection.LONG.value == "long"
        assert TradeDirection.SHORT.value == "short"

    def test_trade_direction_aliases(self):
        assert TradeDirection("buy") is TradeDirection.LONG
        assert TradeDirection("Sell") is TradeDirection.SHORT

    def test_trade_direction_unknown(self):
        with pytest.raises(ValueError):
            TradeDirection("sideways")

    def test_trade_status_values(self):
        assert TradeStatus.OPEN.value == "open"
        assert TradeStatus.STOPPED.value == "stopped"
        assert TradeStatus.TAKEN.value == "taken"

    def test_event_type_values(self):
        assert TradeEventType.TRADE_OPENED.value == "trade_opened"
        assert TradeEventType.TRADE_CLOSED.value == "trade_closed"
        assert TradeEventType.PNL_UPDATED.value == "pnl_updated"


# =============================================================================
# Bar Tests
# =============================================================================

class TestBar:
    """Test the OHLC bar model."""

    def test_bar_creation(self):
        bar = Bar(
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            open=Decimal("100"),
            high=Decimal("105"),
            low=Decimal("99"),
            close=Decimal("104"),
        )

        assert bar.high - bar.low == Decimal("6")
        assert bar.volume == Decimal("0")

    def test_bar_close_outside_range(self):
        with pytest.raises(ValueError):
            Bar(
                timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
                open=Decimal("100"),
                high=Decimal("101"),
                low=Decimal("99"),
                close=Decimal("102"),
            )

    def test_bar_non_positive_price(self):
        with pytest.raises(ValueError):
            Bar(
                timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
                open=Decimal("0"),
                high=Decimal("1"),
                low=Decimal("0"),
                close=Decimal("1"),
            )


# =============================================================================
# Trade Tests
# =============================================================================

class TestTrade:
    """Test the trade model."""

    def test_trade_defaults(self):
        trade = make_trade()

        assert trade.is_open
        assert trade.status == TradeStatus.OPEN
        assert trade.unrealized_pnl == Decimal("0")
        assert trade.realized_pnl is None
        assert trade.exit_price is None
        assert trade.duration is None
        assert trade.entry_time.tzinfo is not None

    def test_long_level_ordering_enforced(self):
        with pytest.raises(ValueError):
            make_trade(sl="101")

    def test_short_level_ordering_enforced(self):
        with pytest.raises(ValueError):
            make_trade(direction="short", sl="99", tp="98")

    def test_stop_distance_and_risk_reward(self):
        trade = make_trade()
        assert trade.stop_distance == Decimal("1")
        assert trade.risk_reward_ratio == Decimal("2")

    def test_calculate_pnl_long(self):
        trade = make_trade(size="0.5")
        assert trade.calculate_pnl(Decimal("101")) == Decimal("0.5")
        assert trade.calculate_pnl(Decimal("99")) == Decimal("-0.5")

    def test_calculate_pnl_short(self):
        trade = make_trade(direction="short", sl="101", tp="98", size="2")
        assert trade.calculate_pnl(Decimal("99")) == Decimal("2")
        assert trade.calculate_pnl(Decimal("100.5")) == Decimal("-1")

    def test_exit_checks_long(self):
        trade = make_trade()
        assert trade.stop_loss_hit(Decimal("99"))
        assert not trade.stop_loss_hit(Decimal("99.01"))
        assert trade.take_profit_hit(Decimal("102"))
        assert not trade.take_profit_hit(Decimal("101.99"))

    def test_exit_checks_short(self):
        trade = make_trade(direction="short", sl="101", tp="98")
        assert trade.stop_loss_hit(Decimal("101"))
        assert not trade.stop_loss_hit(Decimal("100.99"))
        assert trade.take_profit_hit(Decimal("97.5"))
        assert not trade.take_profit_hit(Decimal("98.01"))

    def test_close(self):
        trade = make_trade()
        exit_time = trade.entry_time + timedelta(minutes=5)

        realized = trade.close(Decimal("102"), TradeStatus.TAKEN, exit_time)

        assert realized == Decimal("2")
        assert trade.realized_pnl == Decimal("2")
        assert trade.status == TradeStatus.TAKEN
        assert trade.exit_price == Decimal("102")
        assert trade.duration == 300
        assert not trade.is_open

    def test_close_twice_raises(self):
        trade = make_trade()
        trade.close(Decimal("99"))

        with pytest.raises(ValueError):
            trade.close(Decimal("102"), TradeStatus.TAKEN)
        assert trade.status == TradeStatus.STOPPED
        assert trade.realized_pnl == Decimal("-1")

    def test_close_with_open_status_raises(self):
        trade = make_trade()
        with pytest.raises(ValueError):
            trade.close(Decimal("101"), TradeStatus.OPEN)
        assert trade.is_open

    def test_snapshot_is_independent(self):
        trade = make_trade()
        snap = trade.snapshot()

        trade.unrealized_pnl = Decimal("5")
        trade.close(Decimal("102"), TradeStatus.TAKEN)

        assert snap.unrealized_pnl == Decimal("0")
        assert snap.is_open
        assert snap.id == trade.id


# =============================================================================
# Event and Snapshot Model Tests
# =============================================================================

class TestTradeEvent:
    """Test trade event model."""

    def test_timestamp_is_epoch_milliseconds(self):
        before = int(datetime.now(timezone.utc).timestamp() * 1000)
        event = TradeEvent(kind=TradeEventType.TRADE_OPENED, trade=make_trade())
        after = int(datetime.now(timezone.utc).timestamp() * 1000)

        assert before <= event.timestamp <= after


class TestSnapshots:
    """Test replay and broker snapshot models."""

    def test_replay_state_defaults(self):
        state = ReplayState()
        assert state.current_tick_index == 0
        assert state.playback_speed_ms == 1000.0
        assert state.is_paused is True

    def test_broker_stats_properties(self):
        stats = BrokerStats(
            balance=Decimal("1000"),
            equity=Decimal("1050"),
            margin_used=Decimal("1"),
            profit_factor=1.0,
            win_rate=0.0,
            open_positions_count=1,
            closed_positions_count=0,
        )

        assert stats.total_unrealized_pnl == Decimal("50")
        assert stats.margin_level == Decimal("105")
        assert stats.has_open_positions

    def test_broker_stats_margin_level_non_positive_balance(self):
        stats = BrokerStats(
            balance=Decimal("-5"),
            equity=Decimal("-5"),
            margin_used=Decimal("0"),
            profit_factor=float("inf"),
            win_rate=100.0,
            open_positions_count=0,
            closed_positions_count=1,
        )

        assert stats.margin_level == Decimal("0")
        assert not stats.has_open_positions
