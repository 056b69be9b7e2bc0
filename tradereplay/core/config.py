"""Configuration management for the trade replay system."""

from decimal import Decimal
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Floor applied to the inter-tick delay to prevent runaway loops
MIN_PLAYBACK_SPEED_MS = 10.0

# =============================================================================
# Broker Configuration
# =============================================================================


class BrokerConfig(BaseSettings):
    """Virtual broker account and risk configuration.

    Every option can be passed as a keyword argument or read from the
    environment with the ``BROKER_`` prefix (e.g. ``BROKER_INITIAL_BALANCE``).
    """

    model_config = SettingsConfigDict(
        env_prefix="BROKER_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    # Starting balance (required)
    initial_balance: Decimal = Field(..., gt=0)

    # Fraction of balance risked per auto-sized order (1%)
    risk_per_trade: Decimal = Field(default=Decimal("0.01"))

    # Cap on auto-sized positions
    default_lot_size: Decimal = Field(default=Decimal("0.1"), gt=0)

    # Minimum stop distance in price units
    min_sl_distance: Decimal = Field(default=Decimal("10"), ge=0)

    # Concurrency cap on open trades
    max_open_positions: int = Field(default=10, ge=1)

    @field_validator("risk_per_trade")
    @classmethod
    def validate_risk_per_trade(cls, v):
        """Validate that risk per trade is between 0 and 1."""
        if v <= 0 or v > 1:
            raise ValueError("Risk per trade must be between 0 and 1")
        return v


# =============================================================================
# Replay Configuration
# =============================================================================


class ReplayConfig(BaseSettings):
    """Replay clock configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REPLAY_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    # Delay between ticks while playing
    playback_speed_ms: float = Field(default=1000.0)

    # Playhead position on creation
    initial_tick_index: int = Field(default=0, ge=0)

    # Scheduler granularity of the playback loop (~60 fps)
    frame_interval_ms: float = Field(default=16.0, gt=0)

    @field_validator("playback_speed_ms")
    @classmethod
    def floor_playback_speed(cls, v):
        """Floor the playback speed at the minimum delay."""
        return max(MIN_PLAYBACK_SPEED_MS, v)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LOG_", env_file=".env", case_sensitive=False, extra="ignore"
    )

    # Log level
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )

    # Optional log file in addition to stdout
    log_file: Optional[str] = Field(default=None)

    # JSON lines instead of console rendering
    json_logs: bool = Field(default=False)


__all__ = [
    "MIN_PLAYBACK_SPEED_MS",
    "BrokerConfig",
    "ReplayConfig",
    "LoggingConfig",
]
