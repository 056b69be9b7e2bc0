"""Order validation and position sizing for the virtual broker.

Every order passes through an ordered list of blocking risk rules before
a trade is created. The first failing rule rejects the order; a rejected
order never changes account state.

Rule order (lower priority runs first):
1. direction          - long/short (buy/sell) recognised
2. valid_prices       - entry, stop-loss and take-profit finite and > 0
3. level_ordering     - SL < entry < TP for longs, TP < entry < SL for shorts
4. min_stop_distance  - |entry - SL| >= configured minimum
5. valid_size         - explicit size finite and > 0
6. max_open_positions - open trades below the configured cap
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import structlog

from tradereplay.core.config import BrokerConfig
from tradereplay.core.models import TradeDirection, is_positive_finite, to_decimal

logger = structlog.get_logger(__name__)


@dataclass
class OrderRequest:
    """Normalised order parameters.

    Fields that could not be interpreted are left as None and rejected
    by the matching rule.
    """
    direction: Optional[TradeDirection]
    entry_price: Optional[Decimal]
    stop_loss: Optional[Decimal]
    take_profit: Optional[Decimal]
    size: Optional[Decimal] = None
    size_supplied: bool = False

    @classmethod
    def from_raw(cls, direction: Any, entry_price: Any, stop_loss: Any,
                 take_profit: Any, size: Any = None) -> "OrderRequest":
        """Build a request from caller input (str, int, float or Decimal)."""
        try:
            parsed_direction = TradeDirection(direction)
        except ValueError:
            parsed_direction = None

        return cls(
            direction=parsed_direction,
            entry_price=to_decimal(entry_price),
            stop_loss=to_decimal(stop_loss),
            take_profit=to_decimal(take_profit),
            size=to_decimal(size) if size is not None else None,
            size_supplied=size is not None,
        )

    @property
    def stop_distance(self) -> Decimal:
        return abs(self.entry_price - self.stop_loss)


@dataclass
class RiskCheck:
    """Result of a risk validation check.

    Attributes:
        passed: Whether the order passed all risk checks
        reason: Human-readable explanation if check failed
        rule_triggered: Name of the risk rule that rejected (if any)
        metadata: Additional diagnostic information
    """
    passed: bool
    reason: str = ""
    rule_triggered: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RiskRule:
    """Individual risk rule definition.

    Attributes:
        name: Unique identifier for the rule
        check_fn: Function that performs the validation
        priority: Lower numbers = higher priority (checked first)
    """
    name: str
    check_fn: Callable[[OrderRequest, int], RiskCheck]
    priority: int = 100


class RiskManager:
    """
    Pre-trade validation and risk-based sizing.

    The manager is stateless apart from its configuration and a bounded
    log of recent rejections; account state stays with the broker.
    """

    MAX_REJECTION_HISTORY = 1000

    def __init__(self, config: BrokerConfig):
        self.config = config
        self.rejected_orders: List[Dict[str, Any]] = []
        self._risk_rules: List[RiskRule] = []
        self._register_default_rules()

    def _register_default_rules(self):
        """Register the default set of risk rules in priority order."""
        self._risk_rules = [
            RiskRule(name="direction", check_fn=self._check_direction, priority=1),
            RiskRule(name="valid_prices", check_fn=self._check_valid_prices, priority=2),
            RiskRule(name="level_ordering", check_fn=self._check_level_ordering, priority=3),
            RiskRule(name="min_stop_distance", check_fn=self._check_min_stop_distance, priority=4),
            RiskRule(name="valid_size", check_fn=self._check_valid_size, priority=5),
            RiskRule(name="max_open_positions", check_fn=self._check_max_open_positions, priority=6),
        ]
        self._risk_rules.sort(key=lambda r: r.priority)

    @property
    def rules(self) -> List[str]:
        """Rule names in evaluation order."""
        return [r.name for r in self._risk_rules]

    def check_order(self, order: OrderRequest, open_positions: int) -> RiskCheck:
        """
        Validate an order against all risk rules.

        Rules are evaluated in priority order and the first failure
        rejects the order.

        Args:
            order: Normalised order parameters
            open_positions: Number of currently open trades

        Returns:
            RiskCheck indicating if the order can be executed
        """
        for rule in self._risk_rules:
            try:
                result = rule.check_fn(order, open_positions)
            except Exception as e:
                logger.error("risk_manager.rule_error", rule=rule.name, error=str(e))
                # On rule error, be conservative and block
                result = RiskCheck(
                    passed=False,
                    reason=f"Risk rule '{rule.name}' encountered an error",
                )

            if not result.passed:
                result.rule_triggered = rule.name
                self._log_order_rejected(order, rule.name, result.reason)
                return result

        return RiskCheck(passed=True)

    def calculate_position_size(
        self,
        balance: Decimal,
        entry_price: Decimal,
        stop_loss: Decimal,
    ) -> Decimal:
        """
        Risk-based position size capped at the default lot size.

        ``size = balance * risk_per_trade / |entry - stop_loss|``, then the
        smaller of that and ``default_lot_size`` is used so a very tight
        stop cannot blow up the position.

        Args:
            balance: Current account balance
            entry_price: Entry price per unit
            stop_loss: Stop loss price

        Returns:
            Quantity to trade
        """
        risk_amount = balance * self.config.risk_per_trade
        stop_distance = abs(entry_price - stop_loss)
        risk_based_size = risk_amount / stop_distance
        size = min(risk_based_size, self.config.default_lot_size)

        logger.debug(
            "risk_manager.position_size_calculated",
            balance=str(balance),
            risk_amount=str(risk_amount),
            stop_distance=str(stop_distance),
            risk_based_size=str(risk_based_size),
            size=str(size),
        )

        return size

    # === Risk Rule Implementations ===

    def _check_direction(self, order: OrderRequest, open_positions: int) -> RiskCheck:
        """Check that the direction is long or short."""
        if order.direction is None:
            return RiskCheck(passed=False, reason="Unknown trade direction")
        return RiskCheck(passed=True)

    def _check_valid_prices(self, order: OrderRequest, open_positions: int) -> RiskCheck:
        """Check that all three prices are finite and strictly positive."""
        prices = {
            "entry_price": order.entry_price,
            "stop_loss": order.stop_loss,
            "take_profit": order.take_profit,
        }
        for name, value in prices.items():
            if not is_positive_finite(value):
                return RiskCheck(
                    passed=False,
                    reason=f"Invalid {name}: {value}",
                    metadata={"field": name},
                )
        return RiskCheck(passed=True)

    def _check_level_ordering(self, order: OrderRequest, open_positions: int) -> RiskCheck:
        """Check stop-loss and take-profit placement relative to direction."""
        entry, sl, tp = order.entry_price, order.stop_loss, order.take_profit

        if order.direction == TradeDirection.LONG:
            if sl >= entry:
                return RiskCheck(passed=False, reason="Stop loss must be below entry for long")
            if tp <= entry:
                return RiskCheck(passed=False, reason="Take profit must be above entry for long")
        else:
            if sl <= entry:
                return RiskCheck(passed=False, reason="Stop loss must be above entry for short")
            if tp >= entry:
                return RiskCheck(passed=False, reason="Take profit must be below entry for short")

        return RiskCheck(passed=True)

    def _check_min_stop_distance(self, order: OrderRequest, open_positions: int) -> RiskCheck:
        """Check the stop is at least the configured distance from entry."""
        distance = order.stop_distance
        minimum = self.config.min_sl_distance

        if distance < minimum:
            return RiskCheck(
                passed=False,
                reason=f"Stop distance {distance} below minimum {minimum}",
                metadata={"distance": str(distance), "minimum": str(minimum)},
            )
        return RiskCheck(passed=True)

    def _check_valid_size(self, order: OrderRequest, open_positions: int) -> RiskCheck:
        """Check an explicitly supplied size is finite and strictly positive."""
        if order.size_supplied and not is_positive_finite(order.size):
            return RiskCheck(passed=False, reason=f"Invalid size: {order.size}")
        return RiskCheck(passed=True)

    def _check_max_open_positions(self, order: OrderRequest, open_positions: int) -> RiskCheck:
        """Check if the maximum number of open trades would be exceeded."""
        max_positions = self.config.max_open_positions

        if open_positions >= max_positions:
            return RiskCheck(
                passed=False,
                reason=f"Max open positions reached: {open_positions}/{max_positions}",
                metadata={"current": open_positions, "max": max_positions},
            )
        return RiskCheck(passed=True)

    def _log_order_rejected(self, order: OrderRequest, rule: str, reason: str):
        """Record a rejected order for analysis."""
        self.rejected_orders.append({
            "direction": order.direction.value if order.direction else None,
            "entry_price": str(order.entry_price),
            "stop_loss": str(order.stop_loss),
            "take_profit": str(order.take_profit),
            "size": str(order.size) if order.size_supplied else None,
            "rule_triggered": rule,
            "reason": reason,
        })

        if len(self.rejected_orders) > self.MAX_REJECTION_HISTORY:
            self.rejected_orders = self.rejected_orders[-self.MAX_REJECTION_HISTORY:]
