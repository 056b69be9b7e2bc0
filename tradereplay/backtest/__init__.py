"""
Replay session module.

Usage:
    from tradereplay.backtest import HistoricalDataLoader, ReplaySession, ReplayReport

    bars = HistoricalDataLoader().load_csv("data/EURUSD_1m.csv")
    session = ReplaySession(bars, BrokerConfig(initial_balance=10000))
    session.run_to_end()

    ReplayReport(session).print_full_report()
"""

from tradereplay.backtest.data_loader import HistoricalDataLoader
from tradereplay.backtest.report import ReplayReport
from tradereplay.backtest.session import EquityPoint, ReplaySession

__all__ = [
    "HistoricalDataLoader",
    "ReplaySession",
    "ReplayReport",
    "EquityPoint",
]
