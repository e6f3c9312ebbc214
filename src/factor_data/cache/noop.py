"""Cache backend used when caching is disabled."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, timedelta

import pandas as pd

from factor_data.core.models import FinancialStatement, KeyMetrics, PeriodType

logger = logging.getLogger(__name__)


class NoopCache:
    """Always misses, never fails, stores nothing."""

    def __repr__(self) -> str:
        return "NoopCache()"

    async def get_ohlcv(
        self, provider: str, symbol: str, start: date, end: date
    ) -> pd.DataFrame | None:
        logger.debug("cache disabled, ohlcv miss %s/%s", provider, symbol)
        return None

    async def put_ohlcv(self, provider: str, symbol: str, data: pd.DataFrame) -> None:
        logger.debug("cache disabled, dropping ohlcv %s/%s", provider, symbol)

    async def get_financials(
        self, provider: str, symbol: str, period_type: PeriodType
    ) -> list[FinancialStatement] | None:
        return None

    async def put_financials(
        self, provider: str, symbol: str, statements: Sequence[FinancialStatement]
    ) -> None:
        pass

    async def get_metrics(
        self, provider: str, symbol: str, date: date
    ) -> KeyMetrics | None:
        return None

    async def put_metrics(self, provider: str, symbol: str, metrics: KeyMetrics) -> None:
        pass

    async def invalidate_stale(self, ttl: timedelta) -> int:
        return 0

    async def clear(self) -> None:
        pass
