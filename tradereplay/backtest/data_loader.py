"""
Historical Data Loader for Replay.

Reads recorded OHLC(V) samples from CSV files into Bar objects.
"""

from decimal import Decimal
from pathlib import Path
from typing import List, Union

import pandas as pd
import structlog

from tradereplay.core.models import Bar

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = ("timestamp", "open", "high", "low", "close")


class HistoricalDataLoader:
    """
    Load recorded market data for replay.

    Accepted timestamp formats are ISO-8601 strings or integer epoch
    milliseconds. Naive timestamps are treated as UTC. Rows are sorted by
    time and exact duplicate timestamps are dropped (first one wins).
    """

    def __init__(self, data_dir: Union[str, Path] = "data"):
        self.data_dir = Path(data_dir)

    def load_csv(self, path: Union[str, Path]) -> List[Bar]:
        """
        Load bars from a CSV file.

        Args:
            path: CSV file, absolute or relative to ``data_dir``

        Returns:
            Bars in chronological order

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If required columns are missing
        """
        filepath = Path(path)
        if not filepath.is_absolute() and not filepath.exists():
            filepath = self.data_dir / filepath

        df = pd.read_csv(filepath)
        df.columns = [str(c).strip().lower() for c in df.columns]
        bars = self.frame_to_bars(df)

        logger.info(
            "data_loader.loaded",
            file=str(filepath),
            records=len(bars),
            date_range=(
                f"{bars[0].timestamp} to {bars[-1].timestamp}" if bars else "N/A"
            ),
        )
        return bars

    def frame_to_bars(self, df: pd.DataFrame) -> List[Bar]:
        """Convert a DataFrame with OHLC columns to Bar objects."""
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Missing required columns: {', '.join(missing)}")

        df = df.copy()
        df["timestamp"] = self._parse_timestamps(df["timestamp"])
        df = df.sort_values("timestamp", kind="stable")
        df = df.drop_duplicates(subset="timestamp", keep="first")

        has_volume = "volume" in df.columns

        bars = []
        for row in df.itertuples(index=False):
            bars.append(
                Bar(
                    timestamp=row.timestamp.to_pydatetime(),
                    open=Decimal(str(row.open)),
                    high=Decimal(str(row.high)),
                    low=Decimal(str(row.low)),
                    close=Decimal(str(row.close)),
                    volume=Decimal(str(row.volume)) if has_volume else Decimal("0"),
                )
            )

        return bars

    @staticmethod
    def bars_to_frame(bars: List[Bar]) -> pd.DataFrame:
        """Convert bars back to a DataFrame (floats, for analysis)."""
        return pd.DataFrame(
            [
                {
                    "timestamp": b.timestamp,
                    "open": float(b.open),
                    "high": float(b.high),
                    "low": float(b.low),
                    "close": float(b.close),
                    "volume": float(b.volume),
                }
                for b in bars
            ]
        )

    @staticmethod
    def _parse_timestamps(values: pd.Series) -> pd.Series:
        if pd.api.types.is_numeric_dtype(values):
            return pd.to_datetime(values, unit="ms", utc=True)
        return pd.to_datetime(values, utc=True)
