"""
Replay Session Report Generator.

Produces a summary of a replay session with:
- Account summary
- Trade statistics
- Drawdown from the equity curve
"""

import math
from typing import Any, Dict

import numpy as np
import pandas as pd

from tradereplay.backtest.session import ReplaySession

TRADE_COLUMNS = [
    "id", "direction", "status", "entry_time", "exit_time", "entry_price",
    "exit_price", "stop_loss", "take_profit", "size", "risk_reward", "realized_pnl",
    "unrealized_pnl", "duration_s",
]


class ReplayReport:
    """Generate replay session reports."""

    def __init__(self, session: ReplaySession):
        self.session = session

    def trades_frame(self) -> pd.DataFrame:
        """All trades (open and closed) as a DataFrame, one row per trade."""
        records = []
        for t in self.session.broker.trades:
            records.append(
                {
                    "id": t.id,
                    "direction": t.direction.value,
                    "status": t.status.value,
                    "entry_time": t.entry_time,
                    "exit_time": t.exit_time,
                    "entry_price": float(t.entry_price),
                    "exit_price": float(t.exit_price) if t.exit_price is not None else np.nan,
                    "stop_loss": float(t.stop_loss),
                    "take_profit": float(t.take_profit),
                    "size": float(t.size),
                    "risk_reward": float(t.risk_reward_ratio),
                    "realized_pnl": float(t.realized_pnl) if t.realized_pnl is not None else np.nan,
                    "unrealized_pnl": float(t.unrealized_pnl),
                    "duration_s": t.duration if t.duration is not None else np.nan,
                }
            )
        return pd.DataFrame(records, columns=TRADE_COLUMNS)

    def equity_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "tick": p.tick,
                    "timestamp": p.timestamp,
                    "price": float(p.price),
                    "balance": float(p.balance),
                    "equity": float(p.equity),
                }
                for p in self.session.equity_curve
            ],
            columns=["tick", "timestamp", "price", "balance", "equity"],
        )

    def max_drawdown_pct(self) -> float:
        """Largest peak-to-trough equity decline, as a negative percentage.

        Bounded at -100%: equity at or below zero is a total loss, and a
        point whose running peak is not positive counts as one.
        """
        equity = self.equity_frame()["equity"]
        if equity.empty:
            return 0.0
        peak = equity.cummax()
        drawdown = ((equity - peak) / peak.where(peak > 0) * 100).fillna(-100.0)
        return float(drawdown.clip(lower=-100.0).min())

    def summary(self) -> Dict[str, Any]:
        stats = self.session.broker.get_stats()
        trades = self.trades_frame()
        closed = trades[trades["status"] != "open"]

        wins = closed[closed["realized_pnl"] > 0]["realized_pnl"]
        losses = closed[closed["realized_pnl"] < 0]["realized_pnl"]
        initial = float(self.session.broker.config.initial_balance)

        return {
            "initial_balance": initial,
            "balance": float(stats.balance),
            "equity": float(stats.equity),
            "total_return_pct": (float(stats.equity) - initial) / initial * 100,
            "margin_used": float(stats.margin_used),
            "total_trades": len(trades),
            "open_trades": stats.open_positions_count,
            "closed_trades": stats.closed_positions_count,
            "taken": int((closed["status"] == "taken").sum()),
            "stopped": int((closed["status"] == "stopped").sum()),
            "win_rate_pct": stats.win_rate,
            "profit_factor": stats.profit_factor,
            "avg_win": float(np.mean(wins)) if len(wins) else 0.0,
            "avg_loss": float(np.mean(losses)) if len(losses) else 0.0,
            "max_drawdown_pct": self.max_drawdown_pct(),
            "ticks_processed": len(self.session.equity_curve),
        }

    def generate_markdown_report(self) -> str:
        """Generate markdown formatted report."""
        s = self.summary()
        lines = []

        lines.append("# Replay Session Report")
        lines.append("")
        lines.append(f"**Initial Balance:** ${s['initial_balance']:,.2f}")
        lines.append(f"**Final Balance:** ${s['balance']:,.2f}")
        lines.append(f"**Final Equity:** ${s['equity']:,.2f}")
        lines.append("")

        lines.append("## Trade Statistics")
        lines.append("")
        lines.append("| Metric | Value |")
        lines.append("|--------|-------|")
        lines.append(f"| Total Return | {s['total_return_pct']:+.2f}% |")
        lines.append(f"| Trades | {s['total_trades']} ({s['open_trades']} open) |")
        lines.append(f"| Take-profit exits | {s['taken']} |")
        lines.append(f"| Stopped exits | {s['stopped']} |")
        lines.append(f"| Win Rate | {s['win_rate_pct']:.1f}% |")
        lines.append(f"| Profit Factor | {self._format_ratio(s['profit_factor'])} |")
        lines.append(f"| Max Drawdown | {s['max_drawdown_pct']:.2f}% |")
        lines.append("")

        return "\n".join(lines)

    def print_full_report(self):
        """Print complete session report to console."""
        s = self.summary()

        print("\n" + "=" * 60)
        print("REPLAY SESSION REPORT")
        print("=" * 60)
        print(f"\n  Ticks processed:   {s['ticks_processed']}")
        print(f"  Initial Balance:   ${s['initial_balance']:,.2f}")
        print(f"  Final Balance:     ${s['balance']:,.2f}")
        print(f"  Final Equity:      ${s['equity']:,.2f}")
        print(f"  Total Return:      {s['total_return_pct']:+.2f}%")

        print("\n" + "-" * 60)
        print("TRADE STATISTICS")
        print("-" * 60)
        print(f"\n  Trades:            {s['total_trades']} ({s['open_trades']} open)")
        print(f"  Take-profit exits: {s['taken']}")
        print(f"  Stopped exits:     {s['stopped']}")
        print(f"  Win Rate:          {s['win_rate_pct']:.1f}%")
        print(f"  Profit Factor:     {self._format_ratio(s['profit_factor'])}")
        print(f"  Avg Win:           {s['avg_win']:+.4f}")
        print(f"  Avg Loss:          {s['avg_loss']:+.4f}")
        print(f"  Max Drawdown:      {s['max_drawdown_pct']:.2f}%")
        print("\n" + "=" * 60)

    @staticmethod
    def _format_ratio(value: float) -> str:
        return "inf" if math.isinf(value) else f"{value:.2f}"
