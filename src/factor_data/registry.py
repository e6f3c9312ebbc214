"""Source registry: cache-first lookup with ordered fallback across sources.

Every ``fetch_*`` call follows the same shape:

1. No source registered for the capability → ``ProviderNotConfiguredError``
   immediately; the cache is not consulted.
2. If a cache is attached, look the key up under each source's name, in
   registration order, and return the first hit. Cache read failures are
   logged and treated as misses.
3. Otherwise call the sources in registration order. The first success is
   written through to the cache under that source's name (write failures
   are logged, never raised) and returned. A failing source is logged and
   the next one tried.
4. If every source failed, the last source's error is raised.

Operations without a cache namespace (batch OHLCV, ticks, reference data)
run step 1 and the fallback loop of step 3 only.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from datetime import date, datetime
from typing import TypeVar

import pandas as pd

from factor_data.cache.base import DataCache
from factor_data.cache.factory import create_cache
from factor_data.core.config import FactorDataConfig
from factor_data.core.exceptions import OtherError, ProviderNotConfiguredError
from factor_data.core.models import (
    CompanyInfo,
    DataFrequency,
    FinancialStatement,
    KeyMetrics,
    PeriodType,
    Tick,
    checked_symbol,
)
from factor_data.sources.base import (
    DataSource,
    FundamentalSource,
    PriceSource,
    ReferenceSource,
    TickSource,
)
from factor_data.sources.csv_source import CSVPriceSource
from factor_data.sources.yahoo import YahooPriceSource

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=DataSource)
R = TypeVar("R")


class DataSourceRegistry:
    """Aggregates data sources by capability and arbitrates between them.

    Registration order is fallback priority. Sources are never removed.
    """

    def __init__(self, cache: DataCache | None = None) -> None:
        self._price: list[PriceSource] = []
        self._fundamental: list[FundamentalSource] = []
        self._tick: list[TickSource] = []
        self._reference: list[ReferenceSource] = []
        self._cache = cache

    @classmethod
    def with_cache(cls, cache: DataCache) -> DataSourceRegistry:
        return cls(cache=cache)

    def set_cache(self, cache: DataCache | None) -> DataSourceRegistry:
        self._cache = cache
        return self

    @property
    def cache(self) -> DataCache | None:
        return self._cache

    def __repr__(self) -> str:
        def names(sources: Sequence[DataSource]) -> list[str]:
            return [s.name for s in sources]

        return (
            f"DataSourceRegistry(price={names(self._price)}, "
            f"fundamental={names(self._fundamental)}, "
            f"tick={names(self._tick)}, "
            f"reference={names(self._reference)}, "
            f"cache={self._cache!r})"
        )

    # --- Registration ---

    def register_price(self, source: PriceSource) -> None:
        logger.debug("Registering price source %s", source.name)
        self._price.append(source)

    def register_fundamental(self, source: FundamentalSource) -> None:
        logger.debug("Registering fundamental source %s", source.name)
        self._fundamental.append(source)

    def register_tick(self, source: TickSource) -> None:
        logger.debug("Registering tick source %s", source.name)
        self._tick.append(source)

    def register_reference(self, source: ReferenceSource) -> None:
        logger.debug("Registering reference source %s", source.name)
        self._reference.append(source)

    @property
    def price_sources(self) -> list[str]:
        return [s.name for s in self._price]

    @property
    def fundamental_sources(self) -> list[str]:
        return [s.name for s in self._fundamental]

    @property
    def tick_sources(self) -> list[str]:
        return [s.name for s in self._tick]

    @property
    def reference_sources(self) -> list[str]:
        return [s.name for s in self._reference]

    # --- Shared machinery ---

    @staticmethod
    def _require(sources: Sequence[S], kind: str) -> Sequence[S]:
        if not sources:
            raise ProviderNotConfiguredError(
                f"No {kind} providers registered", context={"capability": kind}
            )
        return sources

    async def _cache_lookup(
        self,
        sources: Sequence[DataSource],
        what: str,
        symbol: str,
        read: Callable[[DataCache, str], Awaitable[R | None]],
    ) -> R | None:
        """Return the first cache hit across the sources' namespaces."""
        if self._cache is None:
            return None
        for source in sources:
            try:
                hit = await read(self._cache, source.name)
            except Exception as e:
                logger.warning(
                    "Cache read failed for %s %s under %s: %s", what, symbol, source.name, e
                )
                continue
            if hit is not None:
                logger.debug("Cache hit for %s %s from %s", what, symbol, source.name)
                return hit
        return None

    async def _write_through(
        self,
        source: DataSource,
        what: str,
        symbol: str,
        write: Callable[[DataCache], Awaitable[None]],
    ) -> None:
        if self._cache is None:
            return
        try:
            await write(self._cache)
        except Exception as e:
            logger.warning(
                "Failed to cache %s for %s from %s: %s", what, symbol, source.name, e
            )

    async def _fallback(
        self,
        sources: Sequence[S],
        what: str,
        symbol: str,
        call: Callable[[S], Awaitable[R]],
        on_success: Callable[[S, R], Awaitable[None]] | None = None,
    ) -> R:
        last_error: Exception | None = None
        for source in sources:
            logger.debug("Fetching %s for %s from %s", what, symbol, source.name)
            try:
                result = await call(source)
            except Exception as e:
                logger.warning(
                    "Source %s failed to fetch %s for %s: %s", source.name, what, symbol, e
                )
                last_error = e
                continue
            if on_success is not None:
                await on_success(source, result)
            return result
        if last_error is not None:
            raise last_error
        raise OtherError("All providers failed with no error")

    # --- Cached operations ---

    async def fetch_ohlcv(
        self,
        symbol: str,
        start: date,
        end: date,
        frequency: DataFrequency = DataFrequency.DAILY,
    ) -> pd.DataFrame:
        """Fetch OHLCV bars for one symbol, cache first, then each price source."""
        sources = self._require(self._price, "price")
        symbol = checked_symbol(symbol)

        cached = await self._cache_lookup(
            sources,
            "OHLCV",
            symbol,
            lambda cache, name: cache.get_ohlcv(name, symbol, start, end),
        )
        if cached is not None:
            return cached

        async def store(source: PriceSource, data: pd.DataFrame) -> None:
            await self._write_through(
                source, "OHLCV", symbol, lambda cache: cache.put_ohlcv(source.name, symbol, data)
            )

        return await self._fallback(
            sources,
            "OHLCV",
            symbol,
            lambda source: source.fetch_ohlcv(symbol, start, end, frequency),
            store,
        )

    async def fetch_ohlcv_batch(
        self,
        symbols: Sequence[str],
        start: date,
        end: date,
        frequency: DataFrequency = DataFrequency.DAILY,
    ) -> pd.DataFrame:
        """Fetch OHLCV bars for several symbols; the cache is not involved."""
        sources = self._require(self._price, "price")
        symbols = [checked_symbol(s) for s in symbols]
        return await self._fallback(
            sources,
            "OHLCV batch",
            ",".join(symbols),
            lambda source: source.fetch_ohlcv_batch(symbols, start, end, frequency),
        )

    async def fetch_financials(
        self,
        symbol: str,
        period_type: PeriodType = PeriodType.ANNUAL,
        limit: int | None = None,
    ) -> list[FinancialStatement]:
        """Fetch financial statements; ``limit`` also trims a cache hit."""
        sources = self._require(self._fundamental, "fundamental")
        symbol = checked_symbol(symbol)

        cached = await self._cache_lookup(
            sources,
            "financials",
            symbol,
            lambda cache, name: cache.get_financials(name, symbol, period_type),
        )
        if cached is not None:
            return cached[:limit] if limit is not None else cached

        async def store(source: FundamentalSource, data: list[FinancialStatement]) -> None:
            await self._write_through(
                source,
                "financials",
                symbol,
                lambda cache: cache.put_financials(source.name, symbol, data),
            )

        return await self._fallback(
            sources,
            "financials",
            symbol,
            lambda source: source.fetch_financials(symbol, period_type, limit),
            store,
        )

    async def fetch_metrics(self, symbol: str, date: date) -> KeyMetrics:
        """Fetch key metrics as of ``date``."""
        sources = self._require(self._fundamental, "fundamental")
        symbol = checked_symbol(symbol)
        as_of = date

        cached = await self._cache_lookup(
            sources,
            "metrics",
            symbol,
            lambda cache, name: cache.get_metrics(name, symbol, as_of),
        )
        if cached is not None:
            return cached

        async def store(source: FundamentalSource, data: KeyMetrics) -> None:
            await self._write_through(
                source,
                "metrics",
                symbol,
                lambda cache: cache.put_metrics(source.name, symbol, data),
            )

        return await self._fallback(
            sources,
            "metrics",
            symbol,
            lambda source: source.fetch_metrics(symbol, as_of),
            store,
        )

    # --- Uncached operations ---

    async def fetch_ticks(self, symbol: str, start: datetime, end: datetime) -> list[Tick]:
        sources = self._require(self._tick, "tick")
        symbol = checked_symbol(symbol)
        return await self._fallback(
            sources, "ticks", symbol, lambda source: source.fetch_ticks(symbol, start, end)
        )

    async def subscribe(self, symbols: Sequence[str]) -> AsyncIterator[Tick]:
        """Open a tick stream from the first source that accepts the subscription."""
        sources = self._require(self._tick, "tick")
        symbols = [checked_symbol(s) for s in symbols]
        return await self._fallback(
            sources,
            "subscription",
            ",".join(symbols),
            lambda source: source.subscribe(symbols),
        )

    async def company_info(self, symbol: str) -> CompanyInfo:
        sources = self._require(self._reference, "reference")
        symbol = checked_symbol(symbol)
        return await self._fallback(
            sources, "company info", symbol, lambda source: source.company_info(symbol)
        )

    async def universe(self, universe_id: str) -> list[str]:
        sources = self._require(self._reference, "reference")
        return await self._fallback(
            sources, "universe", universe_id, lambda source: source.universe(universe_id)
        )

    async def supports_symbol(self, symbol: str) -> bool:
        """True if any reference source recognises the symbol.

        A source that errors is skipped; with no reference sources the
        answer is False.
        """
        symbol = checked_symbol(symbol)
        for source in self._reference:
            try:
                if await source.supports_symbol(symbol):
                    return True
            except Exception as e:
                logger.warning(
                    "Source %s failed symbol check for %s: %s", source.name, symbol, e
                )
        return False


async def create_registry(config: FactorDataConfig) -> DataSourceRegistry:
    """Build a registry with the configured cache and bundled price sources.

    Sources are registered CSV first, then Yahoo, so local files win.
    """
    cache = await create_cache(config.cache)
    registry = DataSourceRegistry(cache=cache)

    csv_cfg = config.sources.csv
    if csv_cfg.enabled:
        registry.register_price(CSVPriceSource(csv_cfg.directory, name=csv_cfg.name))

    yahoo_cfg = config.sources.yahoo
    if yahoo_cfg.enabled:
        registry.register_price(
            YahooPriceSource(
                name=yahoo_cfg.name,
                request_delay=yahoo_cfg.request_delay,
                timeout=yahoo_cfg.timeout,
            )
        )

    logger.info("Registry ready: %r", registry)
    return registry
