"""CSV price source — serves OHLCV bars from a directory of CSV files.

Each symbol lives in ``<directory>/<SYMBOL>.csv``. Column names are
auto-detected from common conventions (``Date``/``date``/``timestamp``,
``Adj Close``/``adj_close``, ...), so exports from most tools load as is.
"""

from __future__ import annotations

import asyncio
import csv
import logging
from datetime import date, datetime
from pathlib import Path

import pandas as pd

from factor_data.core.exceptions import (
    DataNotAvailableError,
    ParseError,
    SymbolNotFoundError,
)
from factor_data.core.frames import bars_to_frame
from factor_data.core.models import (
    DataFrequency,
    OhlcvBar,
    check_date_range,
    checked_symbol,
    normalize_symbol,
)
from factor_data.sources.base import BasePriceSource

logger = logging.getLogger(__name__)

_DATE_ALIASES = {"date", "Date", "DATE", "timestamp", "Timestamp"}
_OPEN_ALIASES = {"open", "Open", "OPEN"}
_HIGH_ALIASES = {"high", "High", "HIGH"}
_LOW_ALIASES = {"low", "Low", "LOW"}
_CLOSE_ALIASES = {"close", "Close", "CLOSE"}
_VOLUME_ALIASES = {"volume", "Volume", "VOLUME", "vol", "Vol"}
_ADJ_CLOSE_ALIASES = {"adj_close", "Adj Close", "adjclose", "adjusted_close", "Adj_Close"}


def _find_column(headers: list[str], aliases: set[str]) -> str | None:
    for h in headers:
        if h in aliases:
            return h
    return None


def _parse_date(raw: str, date_format: str) -> date | None:
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        pass
    try:
        return datetime.strptime(raw, date_format).date()
    except ValueError:
        return None


def parse_rows(
    rows: list[dict[str, str]], symbol: str, date_format: str = "%Y-%m-%d"
) -> list[OhlcvBar]:
    """Turn ``csv.DictReader`` rows into bars, sorted by date.

    Missing open/high/low fall back to the close; missing volume is 0.
    Rows with an unparseable date are skipped with a warning.
    """
    if not rows:
        return []

    headers = list(rows[0].keys())
    date_col = _find_column(headers, _DATE_ALIASES)
    close_col = _find_column(headers, _CLOSE_ALIASES)
    if date_col is None:
        raise ParseError(f"Cannot find date column in headers: {headers}")
    if close_col is None:
        raise ParseError(f"Cannot find close column in headers: {headers}")
    open_col = _find_column(headers, _OPEN_ALIASES)
    high_col = _find_column(headers, _HIGH_ALIASES)
    low_col = _find_column(headers, _LOW_ALIASES)
    volume_col = _find_column(headers, _VOLUME_ALIASES)
    adj_col = _find_column(headers, _ADJ_CLOSE_ALIASES)

    def _value(row: dict[str, str], col: str | None) -> float | None:
        if col is None or not row.get(col):
            return None
        return float(row[col])

    bars: list[OhlcvBar] = []
    for row in rows:
        bar_date = _parse_date(row.get(date_col) or "", date_format)
        if bar_date is None:
            logger.warning("Skipping row with unparseable date: %s", row.get(date_col))
            continue
        try:
            close = float(row[close_col])
            bars.append(
                OhlcvBar(
                    symbol=symbol,
                    date=bar_date,
                    open=_value(row, open_col) or close,
                    high=_value(row, high_col) or close,
                    low=_value(row, low_col) or close,
                    close=close,
                    volume=_value(row, volume_col) or 0.0,
                    adjusted_close=_value(row, adj_col),
                )
            )
        except ValueError as e:
            raise ParseError(
                f"Invalid row for {symbol} on {bar_date}: {e}",
                context={"symbol": symbol, "date": str(bar_date)},
            ) from e

    return sorted(bars, key=lambda b: b.date)


class CSVPriceSource(BasePriceSource):
    """Price source backed by local CSV files.

    Parameters
    ----------
    directory : str | Path
        Directory holding one ``<SYMBOL>.csv`` per symbol.
    name : str
        Source name used for cache namespacing. Default: ``"csv"``.
    date_format : str
        strptime fallback for non-ISO dates.
    """

    def __init__(
        self,
        directory: str | Path,
        name: str = "csv",
        date_format: str = "%Y-%m-%d",
    ) -> None:
        super().__init__(name)
        self._directory = Path(directory)
        self._date_format = date_format

    def path_for(self, symbol: str) -> Path:
        return self._directory / f"{normalize_symbol(symbol)}.csv"

    def _load(self, symbol: str) -> list[OhlcvBar]:
        path = self.path_for(symbol)
        if not path.exists():
            raise SymbolNotFoundError(symbol)
        with open(path, newline="") as f:
            rows = list(csv.DictReader(f))
        return parse_rows(rows, normalize_symbol(symbol), self._date_format)

    async def fetch_ohlcv(
        self,
        symbol: str,
        start: date,
        end: date,
        frequency: DataFrequency = DataFrequency.DAILY,
    ) -> pd.DataFrame:
        symbol = checked_symbol(symbol)
        check_date_range(start, end)
        bars = await asyncio.to_thread(self._load, symbol)
        in_range = [b for b in bars if start <= b.date <= end]
        if not in_range:
            raise DataNotAvailableError(symbol, start, end)
        logger.debug("%s: %d bars for %s", self.name, len(in_range), symbol)
        return bars_to_frame(in_range)
