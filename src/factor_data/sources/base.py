"""Capability protocols for upstream data sources.

Architecture
------------
A source declares what it can do by implementing one or more capability
protocols. The registry keeps one ordered list per capability and never
asks a source for anything outside the capability it was registered under:

    PriceSource       → OHLCV frames (single symbol and batch)
    FundamentalSource → financial statements and key metrics
    TickSource        → historical ticks and live subscriptions
    ReferenceSource   → company info, index universes, symbol support

Every source carries a stable ``name``. The registry uses it as the cache
namespace and reports it in logs, so two sources registered together must
not share a name.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from datetime import date, datetime
from typing import Protocol, runtime_checkable

import pandas as pd

from factor_data.core.exceptions import SymbolNotFoundError
from factor_data.core.frames import concat_frames, with_symbol
from factor_data.core.models import (
    CompanyInfo,
    DataFrequency,
    FinancialStatement,
    KeyMetrics,
    PeriodType,
    Tick,
)

logger = logging.getLogger(__name__)


@runtime_checkable
class DataSource(Protocol):
    """Anything with a stable source name."""

    @property
    def name(self) -> str: ...


@runtime_checkable
class PriceSource(DataSource, Protocol):
    """Historical OHLCV bars."""

    async def fetch_ohlcv(
        self,
        symbol: str,
        start: date,
        end: date,
        frequency: DataFrequency,
    ) -> pd.DataFrame:
        """Fetch bars for one symbol over ``[start, end]``.

        Returns
        -------
        pandas.DataFrame
            Canonical OHLCV frame sorted by date ascending.
        """
        ...

    async def fetch_ohlcv_batch(
        self,
        symbols: Sequence[str],
        start: date,
        end: date,
        frequency: DataFrequency,
    ) -> pd.DataFrame:
        """Fetch bars for several symbols, stacked into one frame with a
        ``symbol`` column."""
        ...


@runtime_checkable
class FundamentalSource(DataSource, Protocol):
    """Financial statements and valuation metrics."""

    async def fetch_financials(
        self,
        symbol: str,
        period_type: PeriodType,
        limit: int | None = None,
    ) -> list[FinancialStatement]: ...

    async def fetch_metrics(self, symbol: str, date: date) -> KeyMetrics: ...


@runtime_checkable
class TickSource(DataSource, Protocol):
    """Trade-level data, historical and streaming."""

    async def fetch_ticks(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[Tick]: ...

    async def subscribe(self, symbols: Sequence[str]) -> AsyncIterator[Tick]:
        """Open a live stream of ticks for ``symbols``.

        Raising from this coroutine means the subscription could not be
        opened; errors after that surface from the iterator itself.
        """
        ...


@runtime_checkable
class ReferenceSource(DataSource, Protocol):
    """Static reference data."""

    async def company_info(self, symbol: str) -> CompanyInfo: ...

    async def universe(self, universe_id: str) -> list[str]: ...

    async def supports_symbol(self, symbol: str) -> bool: ...


class BasePriceSource:
    """Convenience base for price sources.

    Subclasses implement ``fetch_ohlcv``; the batch call fetches each symbol
    in turn, skipping symbols the source does not know.
    """

    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"

    async def fetch_ohlcv(
        self,
        symbol: str,
        start: date,
        end: date,
        frequency: DataFrequency,
    ) -> pd.DataFrame:
        raise NotImplementedError

    async def fetch_ohlcv_batch(
        self,
        symbols: Sequence[str],
        start: date,
        end: date,
        frequency: DataFrequency,
    ) -> pd.DataFrame:
        frames: list[pd.DataFrame] = []
        for symbol in symbols:
            try:
                frame = await self.fetch_ohlcv(symbol, start, end, frequency)
            except SymbolNotFoundError:
                logger.debug("%s: skipping unknown symbol %s", self._name, symbol)
                continue
            frames.append(with_symbol(frame, symbol))
        return concat_frames(frames)
