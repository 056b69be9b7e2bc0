"""Virtual broker - order execution, PnL and SL/TP management during replay."""
import threading
from decimal import Decimal
from typing import Any, List, Optional

import structlog

from tradereplay.core.config import BrokerConfig
from tradereplay.core.events import Subscriber, TradeEventBus
from tradereplay.core.models import (
    BrokerStats,
    Trade,
    TradeEventType,
    TradeStatus,
    is_positive_finite,
    to_decimal,
    utc_now,
)
from tradereplay.risk.risk_manager import OrderRequest, RiskCheck, RiskManager

logger = structlog.get_logger(__name__)


class BrokerEngine:
    """
    Simulated trading account driven by replayed prices.

    Responsibilities:
    - Validates and sizes orders through the risk manager
    - Marks open trades to market on every price update
    - Closes trades on stop-loss / take-profit crossings
    - Keeps balance and equity consistent
    - Publishes lifecycle events on its own event bus

    Invariants:
    - equity == balance + sum(unrealized_pnl of open trades)
    - balance only moves by a trade's realized_pnl when it closes
    - open trades never exceed max_open_positions

    All public operations run under one re-entrant lock so the account
    fields change together; subscribers may call back into accessors.
    """

    def __init__(self, config: BrokerConfig, risk_manager: Optional[RiskManager] = None):
        self.config = config
        self.risk_manager = risk_manager or RiskManager(config)
        self.events = TradeEventBus()

        self._lock = threading.RLock()
        self._trades: List[Trade] = []
        self._balance: Decimal = config.initial_balance
        self._equity: Decimal = config.initial_balance
        self._trade_counter = 0
        self._last_price: Optional[Decimal] = None

        self.last_rejection: Optional[RiskCheck] = None

        logger.info(
            "broker.initialized",
            initial_balance=str(config.initial_balance),
            risk_per_trade=str(config.risk_per_trade),
            default_lot_size=str(config.default_lot_size),
            min_sl_distance=str(config.min_sl_distance),
            max_open_positions=config.max_open_positions,
        )

    # =========================================================================
    # Orders
    # =========================================================================

    def place_order(
        self,
        direction: Any,
        entry_price: Any,
        stop_loss: Any,
        take_profit: Any,
        size: Any = None,
    ) -> Optional[Trade]:
        """
        Open a new trade.

        Args:
            direction: "long"/"short" (or "buy"/"sell")
            entry_price: Entry price
            stop_loss: Stop loss price
            take_profit: Take profit price
            size: Trade size (optional, risk-based sizing if omitted)

        Returns:
            The created trade, or None if the order was rejected
        """
        with self._lock:
            order = OrderRequest.from_raw(direction, entry_price, stop_loss, take_profit, size)
            check = self.risk_manager.check_order(order, len(self.open_trades))

            if not check.passed:
                self.last_rejection = check
                logger.info(
                    "broker.order_rejected",
                    rule=check.rule_triggered,
                    reason=check.reason,
                )
                return None

            self.last_rejection = None

            if order.size_supplied:
                position_size = order.size
            else:
                position_size = self.risk_manager.calculate_position_size(
                    self._balance, order.entry_price, order.stop_loss
                )
                # A depleted balance leaves nothing to risk
                if position_size <= 0:
                    self.last_rejection = RiskCheck(
                        passed=False,
                        reason=f"Computed position size {position_size} is not positive",
                        rule_triggered="position_size",
                    )
                    logger.info(
                        "broker.order_rejected",
                        rule="position_size",
                        reason=self.last_rejection.reason,
                    )
                    return None

            self._trade_counter += 1
            trade = Trade(
                id=f"trade_{self._trade_counter}",
                direction=order.direction,
                entry_price=order.entry_price,
                stop_loss=order.stop_loss,
                take_profit=order.take_profit,
                size=position_size,
                entry_time=utc_now(),
            )

            self._trades.append(trade)
            self._update_equity()

            logger.info(
                "broker.order_placed",
                trade_id=trade.id,
                direction=trade.direction.value,
                entry_price=str(trade.entry_price),
                stop_loss=str(trade.stop_loss),
                take_profit=str(trade.take_profit),
                size=str(trade.size),
            )

            self.events.publish(TradeEventType.TRADE_OPENED, trade)
            return trade

    def update(self, current_price: Any) -> List[Trade]:
        """
        Re-evaluate all open trades at the current market price.

        Called once per replay tick. Unrealized PnL is recomputed for every
        open trade, then exits are checked with stop-loss before
        take-profit: a price that gaps through both levels closes the
        trade as STOPPED. Hits close at the exact SL/TP level, not at
        the current price. Events are published only after every trade
        has been evaluated and equity recomputed.

        Args:
            current_price: Current market price

        Returns:
            Trades closed by this update
        """
        with self._lock:
            price = to_decimal(current_price)
            if not is_positive_finite(price):
                logger.warning("broker.invalid_price", price=str(current_price))
                return []

            self._last_price = price
            now = utc_now()
            closed: List[Trade] = []

            for trade in self.open_trades:
                trade.unrealized_pnl = trade.calculate_pnl(price)

                if trade.stop_loss_hit(price):
                    self._close(trade, trade.stop_loss, TradeStatus.STOPPED, now)
                    closed.append(trade)
                elif trade.take_profit_hit(price):
                    self._close(trade, trade.take_profit, TradeStatus.TAKEN, now)
                    closed.append(trade)

            self._update_equity()

            for trade in closed:
                self.events.publish(TradeEventType.TRADE_CLOSED, trade)

            return closed

    def close_trade(self, trade_id: str, exit_price: Any = None) -> Optional[Trade]:
        """
        Close a specific open trade manually.

        The status is STOPPED, the same as a stop-loss exit.

        Args:
            trade_id: Trade identifier
            exit_price: Exit price (optional, uses the last observed price)

        Returns:
            The closed trade, or None if no open trade has that id
        """
        with self._lock:
            trade = self._find_open_trade(trade_id)
            if trade is None:
                return None

            if exit_price is None:
                price = self._last_price
                if price is None:
                    logger.warning("broker.close_without_price", trade_id=trade_id)
                    return None
            else:
                price = to_decimal(exit_price)
                if not is_positive_finite(price):
                    logger.warning(
                        "broker.invalid_exit_price", trade_id=trade_id, price=str(exit_price)
                    )
                    return None

            self._close(trade, price, TradeStatus.STOPPED, utc_now())
            self._update_equity()
            self.events.publish(TradeEventType.TRADE_CLOSED, trade)
            return trade

    def close_all_positions(self) -> List[Trade]:
        """Close all open trades at the last observed price."""
        with self._lock:
            closed = []
            for trade in self.open_trades:
                result = self.close_trade(trade.id)
                if result is not None:
                    closed.append(result)
            return closed

    def reset(self):
        """Discard all trades and restore the initial balance."""
        with self._lock:
            self._trades = []
            self._balance = self.config.initial_balance
            self._equity = self.config.initial_balance
            self._trade_counter = 0
            self._last_price = None
            self.last_rejection = None
            logger.info("broker.reset", balance=str(self._balance))

    # =========================================================================
    # Event subscription
    # =========================================================================

    def subscribe(self, subscriber: Subscriber) -> None:
        """Register a trade event subscriber."""
        self.events.subscribe(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        """Remove a trade event subscriber."""
        self.events.unsubscribe(subscriber)

    # =========================================================================
    # Read accessors
    # =========================================================================

    @property
    def balance(self) -> Decimal:
        """Realized capital."""
        return self._balance

    @property
    def equity(self) -> Decimal:
        """Balance plus unrealized PnL of open trades."""
        return self._equity

    @property
    def last_price(self) -> Optional[Decimal]:
        return self._last_price

    @property
    def trades(self) -> List[Trade]:
        """All trades ever created, in creation order."""
        return list(self._trades)

    @property
    def open_trades(self) -> List[Trade]:
        return [t for t in self._trades if t.is_open]

    @property
    def closed_trades(self) -> List[Trade]:
        return [t for t in self._trades if not t.is_open]

    @property
    def margin_used(self) -> Decimal:
        """Sum of open trade sizes."""
        return sum((t.size for t in self.open_trades), Decimal("0"))

    @property
    def win_rate(self) -> float:
        """Percentage of closed trades with positive realized PnL."""
        closed = self.closed_trades
        if not closed:
            return 0.0
        wins = sum(1 for t in closed if t.realized_pnl > 0)
        return wins / len(closed) * 100

    @property
    def profit_factor(self) -> float:
        """Gross profit divided by gross loss of closed trades."""
        closed = self.closed_trades
        gross_profit = sum((t.realized_pnl for t in closed if t.realized_pnl > 0), Decimal("0"))
        gross_loss = sum((abs(t.realized_pnl) for t in closed if t.realized_pnl < 0), Decimal("0"))

        if gross_loss == 0:
            return float("inf") if gross_profit > 0 else 1.0
        return float(gross_profit / gross_loss)

    def get_trade(self, trade_id: str) -> Optional[Trade]:
        """Look up a trade (open or closed) by id."""
        for trade in self._trades:
            if trade.id == trade_id:
                return trade
        return None

    def get_stats(self) -> BrokerStats:
        """Snapshot of the account for renderers and reports."""
        with self._lock:
            return BrokerStats(
                balance=self._balance,
                equity=self._equity,
                margin_used=self.margin_used,
                profit_factor=self.profit_factor,
                win_rate=self.win_rate,
                open_positions_count=len(self.open_trades),
                closed_positions_count=len(self.closed_trades),
            )

    # =========================================================================
    # Internals
    # =========================================================================

    def _find_open_trade(self, trade_id: str) -> Optional[Trade]:
        for trade in self._trades:
            if trade.id == trade_id and trade.is_open:
                return trade
        return None

    def _close(self, trade: Trade, exit_price: Decimal, status: TradeStatus, exit_time) -> None:
        """Freeze the trade's PnL and move it into the balance."""
        balance_before = self._balance
        realized = trade.close(exit_price, status=status, exit_time=exit_time)
        self._balance = balance_before + realized

        logger.info(
            "broker.trade_closed",
            trade_id=trade.id,
            status=status.value,
            exit_price=str(exit_price),
            realized_pnl=str(realized),
            balance=str(self._balance),
        )

    def _update_equity(self):
        unrealized = sum((t.unrealized_pnl for t in self.open_trades), Decimal("0"))
        self._equity = self._balance + unrealized
