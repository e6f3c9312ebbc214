"""OHLCV frame helpers.

An OHLCV series is a pandas DataFrame with the canonical columns below, one
row per bar, sorted by ``date`` ascending. ``date`` holds ``datetime.date``
values; ``adjusted_close`` may be missing (NaN).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Any

import pandas as pd

from factor_data.core.models import OhlcvBar

OHLCV_COLUMNS: list[str] = [
    "symbol",
    "date",
    "open",
    "high",
    "low",
    "close",
    "volume",
    "adjusted_close",
]

_FLOAT_COLUMNS = ("open", "high", "low", "close", "volume", "adjusted_close")


def empty_frame() -> pd.DataFrame:
    """An OHLCV frame with the canonical columns and no rows."""
    frame = pd.DataFrame({col: pd.Series(dtype=object) for col in OHLCV_COLUMNS})
    for col in _FLOAT_COLUMNS:
        frame[col] = frame[col].astype(float)
    return frame


def bars_to_frame(bars: Iterable[OhlcvBar]) -> pd.DataFrame:
    """Build a canonical frame from bars, sorted by date."""
    rows = [bar.model_dump() for bar in bars]
    if not rows:
        return empty_frame()
    frame = pd.DataFrame(rows, columns=OHLCV_COLUMNS)
    frame["adjusted_close"] = frame["adjusted_close"].astype(float)
    return frame.sort_values("date", kind="stable").reset_index(drop=True)


def to_date(value: Any) -> date:
    """Coerce a frame cell (date, datetime, Timestamp, ISO string) to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    return pd.Timestamp(value).date()


def date_extent(frame: pd.DataFrame) -> tuple[date, date] | None:
    """Earliest and latest dates present in the frame, or None if there are none."""
    if "date" not in frame.columns or frame.empty:
        return None
    dates = [to_date(v) for v in frame["date"] if not pd.isna(v)]
    if not dates:
        return None
    return min(dates), max(dates)


def with_symbol(frame: pd.DataFrame, symbol: str) -> pd.DataFrame:
    """Return the frame with a ``symbol`` column, adding one if absent."""
    if "symbol" in frame.columns:
        return frame
    tagged = frame.copy()
    tagged.insert(0, "symbol", symbol)
    return tagged


def concat_frames(frames: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """Stack per-symbol frames; an empty input yields an empty frame."""
    if not frames:
        return empty_frame()
    return pd.concat(list(frames), ignore_index=True)
