"""
Trade Replay - replay-driven virtual trading engine.

Replays recorded price samples through a play/pause/seek clock and
simulates a trading account against them: orders, stop-loss/take-profit
exits, balance/equity tracking and lifecycle events.

Usage:
    from tradereplay import BrokerConfig, ReplaySession, HistoricalDataLoader

    bars = HistoricalDataLoader().load_csv("EURUSD_1m.csv")
    session = ReplaySession(bars, BrokerConfig(initial_balance=10000, min_sl_distance=0.001))
    session.broker.place_order("long", 1.1000, 1.0900, 1.1200, size=1000)
    session.run_to_end()
"""

from tradereplay.backtest.data_loader import HistoricalDataLoader
from tradereplay.backtest.report import ReplayReport
from tradereplay.backtest.session import ReplaySession
from tradereplay.core.broker import BrokerEngine
from tradereplay.core.config import BrokerConfig, LoggingConfig, ReplayConfig
from tradereplay.core.events import TradeEventBus, TradeEventSubscriber
from tradereplay.core.models import (Bar, BrokerStats, ReplayState, Trade,
                                     TradeDirection, TradeEvent,
                                     TradeEventType, TradeStatus)
from tradereplay.replay.controller import ReplayController

__version__ = "1.0.0"

__all__ = [
    "BrokerEngine",
    "BrokerConfig",
    "ReplayConfig",
    "LoggingConfig",
    "ReplayController",
    "ReplaySession",
    "ReplayReport",
    "HistoricalDataLoader",
    "TradeEventBus",
    "TradeEventSubscriber",
    "Bar",
    "BrokerStats",
    "ReplayState",
    "Trade",
    "TradeDirection",
    "TradeEvent",
    "TradeEventType",
    "TradeStatus",
]
