"""Tests for factor_data.core.frames."""

from datetime import date, datetime

import pandas as pd

from fakes import make_frame
from factor_data.core.frames import (
    OHLCV_COLUMNS,
    bars_to_frame,
    concat_frames,
    date_extent,
    empty_frame,
    to_date,
    with_symbol,
)
from factor_data.core.models import OhlcvBar


class TestEmptyFrame:
    def test_columns(self):
        frame = empty_frame()
        assert list(frame.columns) == OHLCV_COLUMNS
        assert frame.empty
        assert pd.api.types.is_float_dtype(frame["close"])


class TestBarsToFrame:
    def test_sorted_by_date(self):
        frame = make_frame(days=3)
        reversed_bars = [
            OhlcvBar(symbol="AAPL", date=d, open=1, high=1, low=1, close=1, volume=0)
            for d in sorted(frame["date"], reverse=True)
        ]
        assert list(bars_to_frame(reversed_bars)["date"]) == list(frame["date"])

    def test_no_bars(self):
        assert list(bars_to_frame([]).columns) == OHLCV_COLUMNS


class TestDateExtent:
    def test_extent(self):
        frame = make_frame(start=date(2024, 3, 1), days=10)
        assert date_extent(frame) == (date(2024, 3, 1), date(2024, 3, 10))

    def test_empty(self):
        assert date_extent(empty_frame()) is None

    def test_timestamps_and_strings(self):
        frame = pd.DataFrame({"date": [pd.Timestamp("2024-01-05"), "2024-01-02"]})
        assert date_extent(frame) == (date(2024, 1, 2), date(2024, 1, 5))


class TestToDate:
    def test_variants(self):
        assert to_date(datetime(2024, 1, 2, 15, 0)) == date(2024, 1, 2)
        assert to_date(date(2024, 1, 2)) == date(2024, 1, 2)
        assert to_date("2024-01-02T00:00:00") == date(2024, 1, 2)
        assert to_date(pd.Timestamp("2024-01-02")) == date(2024, 1, 2)


class TestSymbolHelpers:
    def test_with_symbol_adds_column_once(self):
        bare = make_frame().drop(columns=["symbol"])
        tagged = with_symbol(bare, "MSFT")
        assert list(tagged.columns)[0] == "symbol"
        assert set(tagged["symbol"]) == {"MSFT"}
        assert "symbol" not in bare.columns
        assert with_symbol(tagged, "OTHER") is tagged

    def test_concat(self):
        combined = concat_frames([make_frame("AAPL", days=2), make_frame("MSFT", days=3)])
        assert len(combined) == 5
        assert list(combined.index) == list(range(5))
        assert concat_frames([]).empty
