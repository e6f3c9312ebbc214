"""Integration tests for the registry over real cache backends.

Real SQLite and CSV I/O, no network calls.
"""

from __future__ import annotations

import asyncio
from datetime import date, timedelta

import pytest

from fakes import FakeFundamentalSource, FakePriceSource, make_metrics
from factor_data.cache.memory import InMemoryCache
from factor_data.core.config import (
    CacheConfig,
    CSVSourceConfig,
    FactorDataConfig,
    SourcesConfig,
    YahooSourceConfig,
)
from factor_data.core.exceptions import NetworkError, SymbolNotFoundError
from factor_data.core.models import CacheBackend, PeriodType
from factor_data.registry import DataSourceRegistry, create_registry
from factor_data.sources.csv_source import CSVPriceSource

pytestmark = pytest.mark.integration


class TestCsvThroughSqlite:
    async def test_fetch_populates_cache_and_serves_sub_ranges(self, integration_cache, price_dir):
        registry = DataSourceRegistry(cache=integration_cache)
        registry.register_price(CSVPriceSource(price_dir))

        full = await registry.fetch_ohlcv("AAPL", date(2024, 1, 2), date(2024, 1, 5))
        assert len(full) == 4

        # With the file gone, any sub-range must come from SQLite
        (price_dir / "AAPL.csv").unlink()
        part = await registry.fetch_ohlcv("AAPL", date(2024, 1, 3), date(2024, 1, 4))
        assert list(part["close"]) == [184.25, 181.91]
        assert list(part["adjusted_close"]) == [183.55, 181.22]

    async def test_fallback_cached_under_answering_source(self, integration_cache, price_dir):
        broken = FakePriceSource("primary", error=NetworkError("down"))
        registry = DataSourceRegistry(cache=integration_cache)
        registry.register_price(broken)
        registry.register_price(CSVPriceSource(price_dir, name="local"))

        await registry.fetch_ohlcv("MSFT", date(2024, 1, 2), date(2024, 1, 2))

        assert await integration_cache.get_ohlcv("local", "MSFT", date(2024, 1, 2), date(2024, 1, 2)) is not None
        assert await integration_cache.get_ohlcv("primary", "MSFT", date(2024, 1, 2), date(2024, 1, 2)) is None

        # Cached under "local", so the broken primary is not retried
        await registry.fetch_ohlcv("MSFT", date(2024, 1, 2), date(2024, 1, 2))
        assert len(broken.calls) == 1

    async def test_stale_entries_force_refetch(self, integration_cache, price_dir, clock):
        registry = DataSourceRegistry(cache=integration_cache)
        registry.register_price(CSVPriceSource(price_dir))

        await registry.fetch_ohlcv("AAPL", date(2024, 1, 2), date(2024, 1, 5))
        clock.advance(timedelta(days=2))
        assert await integration_cache.invalidate_stale(timedelta(days=1)) == 4

        (price_dir / "AAPL.csv").unlink()
        with pytest.raises(SymbolNotFoundError):
            await registry.fetch_ohlcv("AAPL", date(2024, 1, 2), date(2024, 1, 5))

    async def test_concurrent_fetches(self, integration_cache, price_dir):
        registry = DataSourceRegistry(cache=integration_cache)
        registry.register_price(CSVPriceSource(price_dir))

        results = await asyncio.gather(
            *(registry.fetch_ohlcv(s, date(2024, 1, 2), date(2024, 1, 5)) for s in ["AAPL", "MSFT"] * 5)
        )
        assert [len(r) for r in results] == [4, 1] * 5


class TestFundamentalsThroughSqlite:
    async def test_metrics_fallback_then_cache(self, integration_cache):
        failing = FakeFundamentalSource("edgar", error=NetworkError("timeout"))
        working = FakeFundamentalSource("fmp", metrics=make_metrics(market_cap=3e12))
        registry = DataSourceRegistry(cache=integration_cache)
        registry.register_fundamental(failing)
        registry.register_fundamental(working)

        first = await registry.fetch_metrics("AAPL", date(2024, 1, 15))
        second = await registry.fetch_metrics("AAPL", date(2024, 1, 15))

        assert first.market_cap == second.market_cap == 3e12
        assert (failing.metrics_calls, working.metrics_calls) == (1, 1)

    async def test_financials_limit_on_cached_rows(self, integration_cache, annual_statements, quarterly_statements):
        source = FakeFundamentalSource("fmp", annual_statements + quarterly_statements)
        registry = DataSourceRegistry(cache=integration_cache)
        registry.register_fundamental(source)

        await registry.fetch_financials("AAPL", PeriodType.ANNUAL)
        latest = await registry.fetch_financials("AAPL", PeriodType.ANNUAL, limit=1)

        assert [s.fiscal_year for s in latest] == [2023]
        assert source.financials_calls == 1


class TestCreateRegistry:
    async def test_sqlite_config_end_to_end(self, tmp_path, price_dir):
        config = FactorDataConfig(
            cache=CacheConfig(backend=CacheBackend.SQLITE, sqlite_path=str(tmp_path / "e2e.db")),
            sources=SourcesConfig(
                csv=CSVSourceConfig(enabled=True, directory=str(price_dir)),
                yahoo=YahooSourceConfig(enabled=False),
            ),
        )
        registry = await create_registry(config)
        try:
            frame = await registry.fetch_ohlcv("aapl", date(2024, 1, 2), date(2024, 1, 3))
            assert len(frame) == 2
            assert await registry.cache.health_check()
        finally:
            await registry.cache.close()

    async def test_memory_cache_requires_exact_extent(self, price_dir):
        registry = DataSourceRegistry(cache=InMemoryCache())
        source = CSVPriceSource(price_dir)
        registry.register_price(source)

        # Only Jan 2 exists for MSFT, so the stored key is (Jan 2, Jan 2)
        await registry.fetch_ohlcv("MSFT", date(2024, 1, 1), date(2024, 1, 3))
        assert await registry.cache.get_ohlcv("csv", "MSFT", date(2024, 1, 2), date(2024, 1, 2)) is not None
        assert await registry.cache.get_ohlcv("csv", "MSFT", date(2024, 1, 1), date(2024, 1, 3)) is None
