"""
Trade Replay - Main Entry Point

Replays a recorded OHLC CSV file through the virtual broker.

Usage:
    # Replay as fast as possible and print the report
    python main.py --data data/EURUSD_1m.csv --initial-balance 10000

    # Replay with scripted orders
    python main.py --data data/EURUSD_1m.csv --orders orders.json

    # Wall-clock paced replay, 50 ms per bar
    python main.py --data data/EURUSD_1m.csv --realtime --speed 50

Order script format (JSON list, entry defaults to the bar close):
    [
        {"tick": 5, "direction": "long", "stop_loss": 1.0950, "take_profit": 1.1100},
        {"tick": 40, "direction": "short", "entry_price": 1.1050,
         "stop_loss": 1.1100, "take_profit": 1.0950, "size": 0.5},
        {"tick": 90, "action": "close_all"}
    ]
"""

import argparse
import asyncio
import json
import sys
from collections import defaultdict
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List

import structlog
from pydantic import ValidationError

from tradereplay.backtest.data_loader import HistoricalDataLoader
from tradereplay.backtest.report import ReplayReport
from tradereplay.backtest.session import ReplaySession
from tradereplay.core.config import BrokerConfig, LoggingConfig, ReplayConfig
from tradereplay.core.models import Bar, TradeEvent
from tradereplay.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)

DEFAULT_INITIAL_BALANCE = Decimal("10000")


class ScriptedStrategy:
    """Places and closes orders at predetermined ticks."""

    def __init__(self, instructions: List[Dict[str, Any]]):
        self.by_tick: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
        for instruction in instructions:
            self.by_tick[int(instruction["tick"])].append(instruction)

    @classmethod
    def from_file(cls, path: str) -> "ScriptedStrategy":
        with open(path, "r", encoding="utf-8") as fh:
            return cls(json.load(fh))

    def __call__(self, session: ReplaySession, tick: int, bar: Bar):
        # Consume so a backward seek does not replay the order
        for instruction in self.by_tick.pop(tick, []):
            action = instruction.get("action", "open")

            if action == "close_all":
                session.broker.close_all_positions()
            elif action == "close":
                session.broker.close_trade(instruction["trade_id"])
            else:
                trade = session.broker.place_order(
                    instruction["direction"],
                    instruction.get("entry_price", bar.close),
                    instruction["stop_loss"],
                    instruction["take_profit"],
                    instruction.get("size"),
                )
                if trade is None:
                    rejection = session.broker.last_rejection
                    print(f"  ✗ tick {tick}: order rejected ({rejection.reason})")


def print_event(event: TradeEvent):
    trade = event.trade
    if trade.is_open:
        print(
            f"  ▶ {trade.id} {trade.direction.value} {trade.size} @ {trade.entry_price} "
            f"(SL {trade.stop_loss} / TP {trade.take_profit})"
        )
    else:
        print(
            f"  ■ {trade.id} {trade.status.value} @ {trade.exit_price} "
            f"PnL {trade.realized_pnl:+}"
        )


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Trade Replay")
    parser.add_argument("--data", required=True, help="OHLC CSV file to replay")
    parser.add_argument(
        "--initial-balance", type=Decimal, default=None,
        help="Starting balance (default: BROKER_INITIAL_BALANCE or 10000)",
    )
    parser.add_argument("--orders", help="JSON order script")
    parser.add_argument(
        "--realtime", action="store_true", help="Pace the replay by wall-clock time"
    )
    parser.add_argument(
        "--speed", type=float, default=None, help="Milliseconds per bar in realtime mode"
    )
    parser.add_argument(
        "--markdown", action="store_true", help="Print the report as markdown"
    )
    parser.add_argument(
        "--log-level", default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )

    args = parser.parse_args()

    # Setup logging
    logging_config = LoggingConfig()
    if args.log_level:
        logging_config.log_level = args.log_level
    setup_logging(logging_config)

    try:
        bars = HistoricalDataLoader().load_csv(args.data)
    except (FileNotFoundError, ValueError) as e:
        print(f"\n✗ Could not load data: {e}")
        sys.exit(1)

    if not bars:
        print("\n✗ Data file contains no bars")
        sys.exit(1)

    if args.initial_balance is not None:
        broker_config = BrokerConfig(initial_balance=args.initial_balance)
    else:
        try:
            broker_config = BrokerConfig()
        except ValidationError:
            # BROKER_INITIAL_BALANCE not set
            broker_config = BrokerConfig(initial_balance=DEFAULT_INITIAL_BALANCE)

    replay_config = ReplayConfig()
    if args.speed is not None:
        replay_config = ReplayConfig(playback_speed_ms=args.speed)

    strategy = ScriptedStrategy.from_file(args.orders) if args.orders else None

    session = ReplaySession(
        bars, broker_config, replay_config, strategy=strategy, subscribers=[print_event]
    )

    logger.info("main.replay_starting", bars=len(bars), realtime=args.realtime)
    print(f"\nReplaying {len(bars)} bars from {Path(args.data).name}")

    try:
        if args.realtime:
            await session.play_to_end()
        else:
            session.run_to_end()
    except KeyboardInterrupt:
        session.controller.pause()
        print("\n\nReplay interrupted by user...")

    report = ReplayReport(session)
    if args.markdown:
        print(report.generate_markdown_report())
    else:
        report.print_full_report()


if __name__ == "__main__":
    asyncio.run(main())
