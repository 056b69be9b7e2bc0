"""Data models for the trade replay system.

This module defines the structures shared by the replay clock, the
virtual broker and the reporting layer:
- Trade: one position from entry to exit
- TradeEvent: lifecycle notification published on the event bus
- Bar: one recorded OHLC sample
- ReplayState / BrokerStats: read-only snapshots for renderers

All monetary values and prices use Decimal for precision.
All timestamps are timezone-aware UTC datetime objects.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Convert a numeric input to Decimal.

    Floats go through ``str`` so that ``0.1`` stays ``Decimal("0.1")``.
    Returns None for values that cannot be interpreted as a number.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None


def is_positive_finite(value: Optional[Decimal]) -> bool:
    """True if value is a finite Decimal strictly above zero."""
    return value is not None and value.is_finite() and value > 0


# =============================================================================
# Enums
# =============================================================================

class TradeDirection(str, Enum):
    """Trade direction - long or short."""
    LONG = "long"
    SHORT = "short"

    @classmethod
    def _missing_(cls, value):
        # Order-ticket vocabulary
        aliases = {"buy": cls.LONG, "sell": cls.SHORT}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class TradeStatus(str, Enum):
    """Trade lifecycle status.

    STOPPED covers both stop-loss hits and manual closes; TAKEN is only
    reached through a take-profit hit.
    """
    OPEN = "open"
    STOPPED = "stopped"
    TAKEN = "taken"


class TradeEventType(str, Enum):
    """Kinds of lifecycle notifications on the event bus."""
    TRADE_OPENED = "trade_opened"
    TRADE_CLOSED = "trade_closed"
    PNL_UPDATED = "pnl_updated"   # Reserved, never published


# =============================================================================
# Market Data Models
# =============================================================================

class Bar(BaseModel):
    """One recorded OHLC sample of the replayed instrument.

    Attributes:
        timestamp: Sample open time (UTC)
        open: Opening price
        high: Highest price
        low: Lowest price
        close: Closing price
        volume: Traded volume
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    timestamp: datetime = Field(..., description="Sample time (UTC)")
    open: Decimal = Field(..., gt=0, description="Opening price")
    high: Decimal = Field(..., gt=0, description="Highest price")
    low: Decimal = Field(..., gt=0, description="Lowest price")
    close: Decimal = Field(..., gt=0, description="Closing price")
    volume: Decimal = Field(default=Decimal("0"), ge=0, description="Volume")

    @model_validator(mode="after")
    def check_range(self) -> "Bar":
        """Validate low <= open/close <= high."""
        if self.low > self.high:
            raise ValueError("Low must be <= high")
        if not (self.low <= self.open <= self.high):
            raise ValueError("Open must lie within [low, high]")
        if not (self.low <= self.close <= self.high):
            raise ValueError("Close must lie within [low, high]")
        return self


# =============================================================================
# Trade Model
# =============================================================================

class Trade(BaseModel):
    """One position's full lifecycle record.

    Created open by a successful order placement, re-evaluated on every
    price update, and marked terminal exactly once. Trades are never
    deleted; closed trades stay in the history for reporting.

    Attributes:
        id: Monotonic trade identifier ("trade_<n>")
        direction: Long or short
        entry_price: Entry execution price
        stop_loss: Stop-loss price level
        take_profit: Take-profit price level
        size: Position quantity
        entry_time: Creation timestamp
        exit_time: Close timestamp (set once)
        exit_price: Close execution price (set once)
        status: Open, stopped or taken
        unrealized_pnl: Mark-to-market PnL, frozen once closed
        realized_pnl: Final PnL, set exactly once at close
    """
    model_config = ConfigDict(json_encoders={Decimal: str})

    id: str = Field(..., description="Trade ID")
    direction: TradeDirection = Field(..., description="Trade direction")
    entry_price: Decimal = Field(..., gt=0, description="Entry price")
    stop_loss: Decimal = Field(..., gt=0, description="Stop loss price")
    take_profit: Decimal = Field(..., gt=0, description="Take profit price")
    size: Decimal = Field(..., gt=0, description="Position size")

    entry_time: datetime = Field(default_factory=utc_now, description="Entry time")
    exit_time: Optional[datetime] = Field(default=None, description="Exit time")
    exit_price: Optional[Decimal] = Field(default=None, description="Exit price")

    status: TradeStatus = Field(default=TradeStatus.OPEN, description="Trade status")
    unrealized_pnl: Decimal = Field(default=Decimal("0"), description="Unrealized PnL")
    realized_pnl: Optional[Decimal] = Field(default=None, description="Realized PnL")

    @model_validator(mode="after")
    def check_levels(self) -> "Trade":
        """Validate stop-loss and take-profit sit on the correct sides of entry."""
        if self.direction == TradeDirection.LONG:
            if not (self.stop_loss < self.entry_price < self.take_profit):
                raise ValueError("Long trade requires stop_loss < entry_price < take_profit")
        else:
            if not (self.take_profit < self.entry_price < self.stop_loss):
                raise ValueError("Short trade requires take_profit < entry_price < stop_loss")
        return self

    @property
    def is_open(self) -> bool:
        """True while the trade has not reached a terminal status."""
        return self.status == TradeStatus.OPEN

    @property
    def stop_distance(self) -> Decimal:
        """Absolute distance between entry and stop-loss."""
        return abs(self.entry_price - self.stop_loss)

    @property
    def risk_reward_ratio(self) -> Decimal:
        """Take-profit distance divided by stop-loss distance."""
        return abs(self.take_profit - self.entry_price) / self.stop_distance

    @property
    def duration(self) -> Optional[float]:
        """Trade duration in seconds (None if still open)."""
        if self.exit_time is None:
            return None
        return (self.exit_time - self.entry_time).total_seconds()

    def calculate_pnl(self, price: Decimal) -> Decimal:
        """PnL of the full position if marked at the given price."""
        if self.direction == TradeDirection.LONG:
            return (price - self.entry_price) * self.size
        return (self.entry_price - price) * self.size

    def stop_loss_hit(self, price: Decimal) -> bool:
        """True if price has crossed the stop-loss level adversely."""
        if self.direction == TradeDirection.LONG:
            return price <= self.stop_loss
        return price >= self.stop_loss

    def take_profit_hit(self, price: Decimal) -> bool:
        """True if price has crossed the take-profit level favorably."""
        if self.direction == TradeDirection.LONG:
            return price >= self.take_profit
        return price <= self.take_profit

    def close(
        self,
        exit_price: Decimal,
        status: TradeStatus = TradeStatus.STOPPED,
        exit_time: Optional[datetime] = None,
    ) -> Decimal:
        """Close the trade and freeze its realized PnL.

        Args:
            exit_price: Exit execution price
            status: Terminal status (STOPPED or TAKEN)
            exit_time: Exit timestamp (defaults to now)

        Returns:
            The realized PnL

        Raises:
            ValueError: If the trade is already closed or status is OPEN
        """
        if not self.is_open:
            raise ValueError(f"Trade {self.id} is already {self.status.value}")
        if status == TradeStatus.OPEN:
            raise ValueError("Closing status must be terminal")

        self.exit_price = exit_price
        self.exit_time = exit_time or utc_now()
        self.status = status
        self.realized_pnl = self.calculate_pnl(exit_price)
        return self.realized_pnl

    def snapshot(self) -> "Trade":
        """Independent copy for event payloads."""
        return self.model_copy(deep=True)


# =============================================================================
# Event Model
# =============================================================================

class TradeEvent(BaseModel):
    """Lifecycle notification delivered to event bus subscribers.

    Attributes:
        kind: Event type
        trade: Snapshot of the trade at publish time
        timestamp: Milliseconds since epoch
    """
    kind: TradeEventType = Field(..., description="Event type")
    trade: Trade = Field(..., description="Trade snapshot")
    timestamp: int = Field(
        default_factory=lambda: int(utc_now().timestamp() * 1000),
        description="Publish time (ms since epoch)",
    )


# =============================================================================
# Snapshot Models
# =============================================================================

class ReplayState(BaseModel):
    """Snapshot of the replay clock state."""
    current_tick_index: int = Field(default=0, ge=0, description="Playhead position")
    playback_speed_ms: float = Field(default=1000.0, description="Delay between ticks")
    is_paused: bool = Field(default=True, description="Paused flag")


class BrokerStats(BaseModel):
    """Read-only account summary for renderers and reports."""
    model_config = ConfigDict(json_encoders={Decimal: str})

    balance: Decimal
    equity: Decimal
    margin_used: Decimal
    profit_factor: float
    win_rate: float
    open_positions_count: int
    closed_positions_count: int

    @property
    def total_unrealized_pnl(self) -> Decimal:
        """Equity minus balance."""
        return self.equity - self.balance

    @property
    def margin_level(self) -> Decimal:
        """Equity as a percentage of balance (0 when balance <= 0)."""
        if self.balance <= 0:
            return Decimal("0")
        return (self.equity / self.balance) * 100

    @property
    def has_open_positions(self) -> bool:
        return self.open_positions_count > 0
