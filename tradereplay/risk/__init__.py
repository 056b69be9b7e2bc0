"""Risk management module for the virtual broker.

Provides pre-trade order validation rules and risk-based position sizing.
"""

from tradereplay.risk.risk_manager import (
    OrderRequest,
    RiskCheck,
    RiskManager,
    RiskRule,
)

__all__ = [
    'OrderRequest',
    'RiskCheck',
    'RiskManager',
    'RiskRule',
]
