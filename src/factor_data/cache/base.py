"""The cache port every backend implements, plus shared entry bookkeeping.

Backends
--------
- ``InMemoryCache``: volatile, per-table reader/writer locks.
- ``SqliteCache``: persistent, one serialized aiosqlite connection.
- ``NoopCache``: always misses, never fails. Used when caching is disabled
  so that callers never branch on "is there a cache?".

Staleness is strict: an entry is stale only when its age is *greater* than
the TTL, so an entry aged exactly ``ttl`` survives ``invalidate_stale(ttl)``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Generic, Protocol, TypeVar, runtime_checkable

import pandas as pd

from factor_data.core.models import FinancialStatement, KeyMetrics, PeriodType

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry(Generic[T]):
    """A stored value and the moment it was captured."""

    value: T
    cached_at: datetime = field(default_factory=utc_now)

    def age(self, now: datetime) -> timedelta:
        return now - self.cached_at

    def is_stale(self, ttl: timedelta, now: datetime) -> bool:
        return self.age(now) > ttl


@runtime_checkable
class DataCache(Protocol):
    """Storage-agnostic cache for OHLCV frames, statements and metrics.

    Every ``get_*`` returns ``None`` on a miss. Backend failures raise
    ``CacheError``; a miss never does.
    """

    async def get_ohlcv(
        self, provider: str, symbol: str, start: date, end: date
    ) -> pd.DataFrame | None: ...

    async def put_ohlcv(self, provider: str, symbol: str, data: pd.DataFrame) -> None: ...

    async def get_financials(
        self, provider: str, symbol: str, period_type: PeriodType
    ) -> list[FinancialStatement] | None: ...

    async def put_financials(
        self, provider: str, symbol: str, statements: Sequence[FinancialStatement]
    ) -> None: ...

    async def get_metrics(
        self, provider: str, symbol: str, date: date
    ) -> KeyMetrics | None: ...

    async def put_metrics(self, provider: str, symbol: str, metrics: KeyMetrics) -> None: ...

    async def invalidate_stale(self, ttl: timedelta) -> int: ...

    async def clear(self) -> None: ...


def split_by_period(
    statements: Sequence[FinancialStatement],
) -> dict[PeriodType, list[FinancialStatement]]:
    """Group statements by period type, keeping input order, omitting empty groups."""
    groups: dict[PeriodType, list[FinancialStatement]] = {}
    for stmt in statements:
        groups.setdefault(stmt.period_type, []).append(stmt)
    return groups
