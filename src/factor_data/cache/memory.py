"""Volatile in-process cache backend.

Three independent tables (OHLCV, financials, metrics), each guarded by its
own reader/writer lock. Readers of one table never block readers of the same
table, and no operation ever holds two table locks at once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Generic, TypeVar

import pandas as pd

from factor_data.cache.base import CacheEntry, Clock, split_by_period, utc_now
from factor_data.core.frames import date_extent
from factor_data.core.models import FinancialStatement, KeyMetrics, PeriodType

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

OhlcvKey = tuple[str, str, date, date]
FinancialsKey = tuple[str, str, PeriodType]
MetricsKey = tuple[str, str, date]


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer.

    Waiting writers take priority over new readers so a steady stream of
    reads cannot starve a sweep.
    """

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(
                lambda: not self._writer and self._waiting_writers == 0
            )
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(
                    lambda: not self._writer and self._readers == 0
                )
            finally:
                self._waiting_writers -= 1
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class _Table(Generic[K, V]):
    """A dict of cache entries plus the lock that guards it."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.lock = ReadWriteLock()
        self.entries: dict[K, CacheEntry[V]] = {}

    async def get(self, key: K) -> V | None:
        async with self.lock.read():
            entry = self.entries.get(key)
            return None if entry is None else entry.value

    async def put(self, key: K, entry: CacheEntry[V]) -> None:
        async with self.lock.write():
            self.entries[key] = entry

    async def put_many(self, entries: dict[K, CacheEntry[V]]) -> None:
        async with self.lock.write():
            self.entries.update(entries)

    async def sweep(self, ttl: timedelta, now: datetime) -> int:
        async with self.lock.write():
            stale = [k for k, e in self.entries.items() if e.is_stale(ttl, now)]
            for key in stale:
                del self.entries[key]
            return len(stale)

    async def clear(self) -> None:
        async with self.lock.write():
            self.entries.clear()

    def __len__(self) -> int:
        return len(self.entries)


class InMemoryCache:
    """Volatile cache backend; contents are lost when the process exits.

    OHLCV entries are keyed by the earliest and latest dates actually present
    in the stored frame, so a lookup only hits when the requested range
    matches that extent exactly.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._ohlcv: _Table[OhlcvKey, pd.DataFrame] = _Table("ohlcv")
        self._financials: _Table[FinancialsKey, list[FinancialStatement]] = _Table(
            "financials"
        )
        self._metrics: _Table[MetricsKey, KeyMetrics] = _Table("metrics")

    def __repr__(self) -> str:
        return (
            f"InMemoryCache(ohlcv={len(self._ohlcv)}, "
            f"financials={len(self._financials)}, metrics={len(self._metrics)})"
        )

    def _tables(self) -> tuple[_Table, ...]:
        return (self._ohlcv, self._financials, self._metrics)

    # --- OHLCV ---

    async def get_ohlcv(
        self, provider: str, symbol: str, start: date, end: date
    ) -> pd.DataFrame | None:
        frame = await self._ohlcv.get((provider, symbol, start, end))
        if frame is None:
            logger.debug("ohlcv miss %s/%s %s..%s", provider, symbol, start, end)
            return None
        logger.debug("ohlcv hit %s/%s %s..%s", provider, symbol, start, end)
        return frame.copy(deep=True)

    async def put_ohlcv(self, provider: str, symbol: str, data: pd.DataFrame) -> None:
        extent = date_extent(data)
        start, end = extent if extent is not None else (date.min, date.max)
        entry = CacheEntry(data.copy(deep=True), self._clock())
        await self._ohlcv.put((provider, symbol, start, end), entry)
        logger.debug(
            "ohlcv stored %s/%s %s..%s (%d rows)", provider, symbol, start, end, len(data)
        )

    # --- Financials ---

    async def get_financials(
        self, provider: str, symbol: str, period_type: PeriodType
    ) -> list[FinancialStatement] | None:
        statements = await self._financials.get((provider, symbol, period_type))
        if statements is None:
            return None
        return [s.model_copy() for s in statements]

    async def put_financials(
        self, provider: str, symbol: str, statements: Sequence[FinancialStatement]
    ) -> None:
        now = self._clock()
        groups = split_by_period(statements)
        if not groups:
            return
        # annual and quarterly groups land under one write lock
        await self._financials.put_many(
            {
                (provider, symbol, period_type): CacheEntry(list(group), now)
                for period_type, group in groups.items()
            }
        )
        logger.debug(
            "financials stored %s/%s (%s)",
            provider,
            symbol,
            ", ".join(f"{p}: {len(g)}" for p, g in groups.items()),
        )

    # --- Metrics ---

    async def get_metrics(
        self, provider: str, symbol: str, date: date
    ) -> KeyMetrics | None:
        metrics = await self._metrics.get((provider, symbol, date))
        return None if metrics is None else metrics.model_copy()

    async def put_metrics(self, provider: str, symbol: str, metrics: KeyMetrics) -> None:
        await self._metrics.put(
            (provider, symbol, metrics.date), CacheEntry(metrics, self._clock())
        )

    # --- Maintenance ---

    async def invalidate_stale(self, ttl: timedelta) -> int:
        now = self._clock()
        removed = 0
        for table in self._tables():
            count = await table.sweep(ttl, now)
            if count:
                logger.debug("Evicted %d stale %s entries", count, table.name)
            removed += count
        return removed

    async def clear(self) -> None:
        for table in self._tables():
            await table.clear()
        logger.debug("In-memory cache cleared")
