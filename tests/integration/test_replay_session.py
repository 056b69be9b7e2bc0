"""Integration tests: replay clock driving the broker through a session."""
import asyncio
import math
from decimal import Decimal

import pytest

from tradereplay.backtest.report import ReplayReport
from tradereplay.backtest.session import ReplaySession
from tradereplay.core.models import TradeEventType, TradeStatus

pytestmark = pytest.mark.integration


def open_at(tick, direction, sl, tp, size="1"):
    """Strategy placing one order at the close of the given tick."""
    def strategy(session, index, bar):
        if index == tick:
            session.broker.place_order(direction, bar.close, sl, tp, size)
    return strategy


# =============================================================================
# Session Tests
# =============================================================================

class TestReplaySession:
    """Test the clock-to-broker wiring."""

    def test_primes_with_first_bar(self, bars, broker_config):
        session = ReplaySession(bars, broker_config)

        assert session.broker.last_price == Decimal("100")
        assert session.current_bar is bars[0]
        assert len(session.equity_curve) == 1

    def test_run_to_end_takes_profit(self, bars, broker_config, recorder_factory):
        session = ReplaySession(bars, broker_config, strategy=open_at(2, "long", 101, 105))
        rec = recorder_factory()
        session.broker.subscribe(rec)

        session.run_to_end()

        trade = session.broker.get_trade("trade_1")
        assert trade.entry_price == Decimal("102")
        assert trade.status == TradeStatus.TAKEN
        assert trade.exit_price == Decimal("105")
        assert trade.realized_pnl == Decimal("3")
        assert session.broker.balance == Decimal("10003")
        assert rec.kinds == [TradeEventType.TRADE_OPENED, TradeEventType.TRADE_CLOSED]
        assert session.controller.is_at_end()
        assert len(session.equity_curve) == 10

    def test_stop_loss_on_falling_prices(self, bar_factory, broker_config):
        bars = bar_factory(["100", "100", "99.6", "99.2", "98.8"])
        session = ReplaySession(bars, broker_config, strategy=open_at(1, "long", "99.5", 102))

        session.run_to_end()

        trade = session.broker.get_trade("trade_1")
        assert trade.status == TradeStatus.STOPPED
        assert trade.exit_price == Decimal("99.5")
        assert session.broker.balance == Decimal("9999.5")

    def test_equity_curve_tracks_open_trade(self, bars, broker_config, check_equity):
        session = ReplaySession(bars, broker_config, strategy=open_at(0, "long", 99, 200))
        session.run_to_end()

        last = session.equity_curve[-1]
        assert last.price == Decimal("109")
        assert last.balance == Decimal("10000")
        assert last.equity == Decimal("10009")
        check_equity(session.broker)

    def test_subscribers_see_tick_zero_orders(self, bars, broker_config, recorder_factory):
        rec = recorder_factory()
        session = ReplaySession(
            bars, broker_config, strategy=open_at(0, "long", 99, 105), subscribers=[rec]
        )

        assert rec.kinds == [TradeEventType.TRADE_OPENED]
        assert rec.events[0].trade.entry_price == Decimal("100")
        assert len(session.broker.events) == 1

    def test_strategy_error_is_contained(self, bars, broker_config):
        def broken(session, index, bar):
            raise RuntimeError("strategy failure")

        session = ReplaySession(bars, broker_config, strategy=broken)
        session.run_to_end()

        assert session.controller.is_at_end()
        assert len(session.equity_curve) == 10

    def test_backward_step_reprices(self, bars, broker_config):
        session = ReplaySession(bars, broker_config)
        session.controller.seek(5)
        session.controller.step("backward")

        assert session.broker.last_price == Decimal("104")
        assert session.current_bar is bars[4]

    def test_empty_session(self, broker_config):
        session = ReplaySession([], broker_config)

        assert session.current_bar is None
        assert session.equity_curve == []
        session.run_to_end()

    @pytest.mark.asyncio
    async def test_play_to_end(self, bars, broker_config, replay_config):
        session = ReplaySession(
            bars, broker_config, replay_config, strategy=open_at(1, "short", 110, 90)
        )

        await asyncio.wait_for(session.play_to_end(), timeout=5)

        trade = session.broker.get_trade("trade_1")
        assert session.controller.is_paused
        assert session.controller.is_at_end()
        assert trade.is_open
        # Short from 101, marked at 109
        assert trade.unrealized_pnl == Decimal("-8")
        assert session.broker.equity == Decimal("9992")


# =============================================================================
# Report Tests
# =============================================================================

class TestReplayReport:
    """Test the session report."""

    @pytest.fixture
    def finished_session(self, bar_factory, broker_config):
        bars = bar_factory(["100", "101", "102", "101", "100", "99", "98", "99"])

        def strategy(session, index, bar):
            if index == 0:
                session.broker.place_order("long", bar.close, 99, 102, 1)     # taken +2
            elif index == 3:
                session.broker.place_order("long", bar.close, 99, 105, 1)     # stopped -2
            elif index == 6:
                session.broker.place_order("long", bar.close, 97, 120, 1)     # open +1

        session = ReplaySession(bars, broker_config, strategy=strategy)
        session.run_to_end()
        return session

    def test_trades_frame(self, finished_session):
        df = ReplayReport(finished_session).trades_frame()

        assert list(df["id"]) == ["trade_1", "trade_2", "trade_3"]
        assert list(df["status"]) == ["taken", "stopped", "open"]
        assert df["realized_pnl"].iloc[0] == pytest.approx(2.0)
        assert df["realized_pnl"].iloc[1] == pytest.approx(-2.0)
        assert math.isnan(df["realized_pnl"].iloc[2])

    def test_trades_frame_ratio_and_duration(self, finished_session):
        df = ReplayReport(finished_session).trades_frame()

        assert df["risk_reward"].iloc[0] == pytest.approx(2.0)
        assert df["risk_reward"].iloc[1] == pytest.approx(2.0)
        assert df["duration_s"].iloc[0] >= 0
        assert math.isnan(df["duration_s"].iloc[2])

    def test_summary(self, finished_session):
        s = ReplayReport(finished_session).summary()

        assert s["initial_balance"] == 10000.0
        assert s["balance"] == pytest.approx(10000.0)
        assert s["equity"] == pytest.approx(10001.0)
        assert s["total_trades"] == 3
        assert s["open_trades"] == 1
        assert s["closed_trades"] == 2
        assert s["taken"] == 1
        assert s["stopped"] == 1
        assert s["win_rate_pct"] == pytest.approx(50.0)
        assert s["profit_factor"] == pytest.approx(1.0)
        assert s["avg_win"] == pytest.approx(2.0)
        assert s["avg_loss"] == pytest.approx(-2.0)
        assert s["max_drawdown_pct"] < 0
        assert s["ticks_processed"] == 8

    def test_empty_report(self, broker_config):
        session = ReplaySession([], broker_config)
        s = ReplayReport(session).summary()

        assert s["total_trades"] == 0
        assert s["max_drawdown_pct"] == 0.0
        assert s["avg_win"] == 0.0

    def test_drawdown_bounded_when_equity_goes_negative(self, bar_factory, broker_config):
        config = broker_config.model_copy(update={"initial_balance": Decimal("1")})
        bars = bar_factory(["100", "50", "60"])
        session = ReplaySession(bars, config, strategy=open_at(0, "long", 10, 200))
        session.run_to_end()

        assert session.equity_curve[1].equity == Decimal("-49")
        assert ReplayReport(session).max_drawdown_pct() == pytest.approx(-100.0)

    def test_markdown_report(self, finished_session):
        text = ReplayReport(finished_session).generate_markdown_report()

        assert text.startswith("# Replay Session Report")
        assert "| Win Rate | 50.0% |" in text
        assert "| Profit Factor | 1.00 |" in text

    def test_print_full_report(self, finished_session, capsys):
        ReplayReport(finished_session).print_full_report()
        out = capsys.readouterr().out

        assert "REPLAY SESSION REPORT" in out
        assert "Take-profit exits: 1" in out
