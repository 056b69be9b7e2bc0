"""
Replay session - wires the replay clock to the virtual broker.

Every accepted tick pushes the close of the bar at the new index into
``BrokerEngine.update`` and then hands control to an optional strategy
hook, which may place or close orders against that bar.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Sequence

import structlog

from tradereplay.core.broker import BrokerEngine
from tradereplay.core.config import BrokerConfig, ReplayConfig
from tradereplay.core.events import Subscriber
from tradereplay.core.models import Bar
from tradereplay.replay.controller import ReplayController

logger = structlog.get_logger(__name__)

Strategy = Callable[["ReplaySession", int, Bar], None]


@dataclass
class EquityPoint:
    """Account values after a processed tick."""
    tick: int
    timestamp: datetime
    price: Decimal
    balance: Decimal
    equity: Decimal


class ReplaySession:
    """
    One replay of a recorded bar sequence against a virtual account.

    The session is the tick-callback owner: strategy errors are caught and
    logged here so they never reach the replay clock. Subscribers passed in
    are registered before the starting bar is primed, so they also see
    orders placed on tick 0.
    """

    def __init__(
        self,
        bars: Sequence[Bar],
        broker_config: BrokerConfig,
        replay_config: Optional[ReplayConfig] = None,
        strategy: Optional[Strategy] = None,
        subscribers: Iterable[Subscriber] = (),
    ):
        self.bars = list(bars)
        self.broker = BrokerEngine(broker_config)
        self.controller = ReplayController(
            self.bars, config=replay_config, on_tick_change=self._on_tick
        )
        self.strategy = strategy
        for subscriber in subscribers:
            self.broker.subscribe(subscriber)
        self.equity_curve: List[EquityPoint] = []

        logger.info(
            "session.initialized",
            bars=len(self.bars),
            initial_balance=str(broker_config.initial_balance),
            start_tick=self.controller.current_tick_index,
        )

        # Prime the broker with the starting bar
        if self.bars:
            self._on_tick(self.controller.current_tick_index)

    @property
    def current_bar(self) -> Optional[Bar]:
        if not self.bars:
            return None
        return self.bars[self.controller.current_tick_index]

    def run_to_end(self) -> BrokerEngine:
        """Step synchronously through every remaining bar."""
        while not self.controller.is_at_end():
            self.controller.step("forward")
        logger.info(
            "session.completed",
            ticks=len(self.equity_curve),
            balance=str(self.broker.balance),
            equity=str(self.broker.equity),
        )
        return self.broker

    async def play_to_end(self) -> BrokerEngine:
        """Play at the configured wall-clock pace until the last bar."""
        self.controller.play()
        await self.controller.join()
        logger.info(
            "session.completed",
            ticks=len(self.equity_curve),
            balance=str(self.broker.balance),
            equity=str(self.broker.equity),
        )
        return self.broker

    def _on_tick(self, index: int):
        bar = self.bars[index]
        self.broker.update(bar.close)

        if self.strategy is not None:
            try:
                self.strategy(self, index, bar)
            except Exception as e:
                logger.error("session.strategy_error", tick=index, error=str(e), exc_info=True)

        self.equity_curve.append(
            EquityPoint(
                tick=index,
                timestamp=bar.timestamp,
                price=bar.close,
                balance=self.broker.balance,
                equity=self.broker.equity,
            )
        )
