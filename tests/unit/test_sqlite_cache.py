"""Tests for the SQLite cache backend."""

from __future__ import annotations

import math
from datetime import date, timedelta

import pytest

from fakes import make_frame, make_metrics, make_statement
from factor_data.cache.base import DataCache
from factor_data.cache.sqlite import SqliteCache
from factor_data.core.exceptions import CacheError
from factor_data.core.models import PeriodType


@pytest.fixture
async def cache(clock):
    """An initialized in-memory SqliteCache."""
    c = SqliteCache.in_memory(clock=clock)
    await c.initialize()
    yield c
    await c.close()


async def _count(cache: SqliteCache, table: str) -> int:
    async with cache._db.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
        row = await cursor.fetchone()
    return row[0]


# --- Lifecycle ---


class TestLifecycle:
    def test_satisfies_cache_protocol(self):
        assert isinstance(SqliteCache(":memory:"), DataCache)

    async def test_initialize_creates_tables(self, cache):
        async with cache._db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ) as cursor:
            tables = [row[0] for row in await cursor.fetchall()]
        assert tables == ["financials_cache", "metrics_cache", "ohlcv_cache"]

    async def test_initialize_idempotent(self, cache, sample_frame):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        await cache.initialize()
        assert await _count(cache, "ohlcv_cache") == 5

    async def test_health_check(self, clock):
        c = SqliteCache.in_memory(clock=clock)
        assert await c.health_check() is False
        await c.initialize()
        assert await c.health_check() is True
        await c.close()
        assert await c.health_check() is False

    async def test_use_before_initialize_raises(self):
        c = SqliteCache.in_memory()
        with pytest.raises(CacheError) as exc_info:
            await c.get_metrics("fmp", "AAPL", date(2024, 1, 15))
        assert exc_info.value.context["table"] == "metrics_cache"

    async def test_file_backed_persists_across_connections(self, tmp_path, sample_frame):
        path = tmp_path / "nested" / "cache.db"
        first = SqliteCache(path)
        await first.initialize()
        await first.put_ohlcv("yahoo", "AAPL", sample_frame)
        await first.close()

        second = SqliteCache(path)
        await second.initialize()
        try:
            got = await second.get_ohlcv("yahoo", "AAPL", date(2024, 1, 1), date(2024, 1, 5))
            assert got is not None and len(got) == 5
        finally:
            await second.close()


# --- OHLCV ---


class TestOhlcv:
    async def test_roundtrip(self, cache, sample_frame):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        got = await cache.get_ohlcv("yahoo", "AAPL", date(2024, 1, 1), date(2024, 1, 5))
        assert list(got.columns) == list(sample_frame.columns)
        assert list(got["date"]) == list(sample_frame["date"])
        assert list(got["close"]) == list(sample_frame["close"])
        assert list(got["adjusted_close"]) == list(sample_frame["adjusted_close"])

    async def test_sub_range_is_a_hit(self, cache, sample_frame):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        got = await cache.get_ohlcv("yahoo", "AAPL", date(2024, 1, 2), date(2024, 1, 4))
        assert [d.day for d in got["date"]] == [2, 3, 4]

    async def test_range_without_rows_misses(self, cache, sample_frame):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        assert await cache.get_ohlcv("yahoo", "AAPL", date(2023, 1, 1), date(2023, 12, 31)) is None

    async def test_rows_ordered_by_date(self, cache, sample_frame):
        shuffled = sample_frame.iloc[::-1].reset_index(drop=True)
        await cache.put_ohlcv("yahoo", "AAPL", shuffled)
        got = await cache.get_ohlcv("yahoo", "AAPL", date(2024, 1, 1), date(2024, 1, 5))
        assert list(got["date"]) == sorted(got["date"])

    async def test_one_row_per_day_upsert(self, cache, sample_frame):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        overlapping = make_frame(start=date(2024, 1, 4), days=4)
        overlapping["close"] = 999.0
        await cache.put_ohlcv("yahoo", "AAPL", overlapping)

        assert await _count(cache, "ohlcv_cache") == 7
        got = await cache.get_ohlcv("yahoo", "AAPL", date(2024, 1, 1), date(2024, 1, 7))
        assert list(got["close"]) == [101.0, 102.0, 103.0, 999.0, 999.0, 999.0, 999.0]

    async def test_missing_adjusted_close_is_null(self, cache, sample_frame):
        sample_frame["adjusted_close"] = float("nan")
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        async with cache._db.execute(
            "SELECT COUNT(*) FROM ohlcv_cache WHERE adjusted_close IS NULL"
        ) as cursor:
            assert (await cursor.fetchone())[0] == 5
        got = await cache.get_ohlcv("yahoo", "AAPL", date(2024, 1, 1), date(2024, 1, 5))
        assert all(math.isnan(v) for v in got["adjusted_close"])

    async def test_empty_frame_is_noop(self, cache):
        await cache.put_ohlcv("yahoo", "AAPL", make_frame(days=0))
        assert await _count(cache, "ohlcv_cache") == 0

    async def test_bad_row_rolls_back_whole_put(self, cache, sample_frame):
        sample_frame.loc[3, "close"] = float("nan")
        with pytest.raises(CacheError) as exc_info:
            await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        assert exc_info.value.context["table"] == "ohlcv_cache"
        assert exc_info.value.__cause__ is not None
        assert await _count(cache, "ohlcv_cache") == 0

    async def test_providers_isolated(self, cache, sample_frame):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        assert await cache.get_ohlcv("csv", "AAPL", date(2024, 1, 1), date(2024, 1, 5)) is None


# --- Financials ---


class TestFinancials:
    async def test_roundtrip_most_recent_first(self, cache, annual_statements):
        await cache.put_financials("fmp", "AAPL", list(reversed(annual_statements)))
        got = await cache.get_financials("fmp", "AAPL", PeriodType.ANNUAL)
        assert got == annual_statements

    async def test_period_types_kept_apart(self, cache, annual_statements, quarterly_statements):
        await cache.put_financials("fmp", "AAPL", annual_statements + quarterly_statements)
        quarterly = await cache.get_financials("fmp", "AAPL", PeriodType.QUARTERLY)
        assert [s.fiscal_quarter for s in quarterly] == [1, 4]
        async with cache._db.execute(
            "SELECT DISTINCT period_type FROM financials_cache ORDER BY period_type"
        ) as cursor:
            codes = [row[0] for row in await cursor.fetchall()]
        assert codes == ["A", "Q"]

    async def test_same_period_end_different_type_coexist(self, cache):
        annual = make_statement(period_end=date(2023, 9, 30))
        q4 = make_statement(
            period_end=date(2023, 9, 30), period_type=PeriodType.QUARTERLY, fiscal_quarter=4
        )
        await cache.put_financials("fmp", "AAPL", [annual, q4])
        assert await _count(cache, "financials_cache") == 2

    async def test_miss(self, cache):
        assert await cache.get_financials("fmp", "AAPL", PeriodType.ANNUAL) is None

    async def test_non_finite_values_survive(self, cache):
        stmt = make_statement(eps_basic=float("-inf"), ebitda=float("nan"))
        await cache.put_financials("fmp", "AAPL", [stmt])
        [got] = await cache.get_financials("fmp", "AAPL", PeriodType.ANNUAL)
        assert got.eps_basic == float("-inf")
        assert math.isnan(got.ebitda)
        assert got.revenue == stmt.revenue

    async def test_corrupt_json_raises_cache_error(self, cache, annual_statements):
        await cache.put_financials("fmp", "AAPL", annual_statements)
        await cache._db.execute("UPDATE financials_cache SET data_json = 'not json'")
        await cache._db.commit()
        with pytest.raises(CacheError):
            await cache.get_financials("fmp", "AAPL", PeriodType.ANNUAL)


# --- Metrics ---


class TestMetrics:
    async def test_point_lookup(self, cache, sample_metrics):
        await cache.put_metrics("fmp", "AAPL", sample_metrics)
        assert await cache.get_metrics("fmp", "AAPL", date(2024, 1, 15)) == sample_metrics
        assert await cache.get_metrics("fmp", "AAPL", date(2024, 1, 14)) is None

    async def test_upsert(self, cache):
        await cache.put_metrics("fmp", "AAPL", make_metrics(pe_ratio=10.0))
        await cache.put_metrics("fmp", "AAPL", make_metrics(pe_ratio=20.0))
        assert await _count(cache, "metrics_cache") == 1
        got = await cache.get_metrics("fmp", "AAPL", date(2024, 1, 15))
        assert got.pe_ratio == 20.0

    async def test_non_finite_values_survive(self, cache):
        # zero earnings gives an infinite P/E
        await cache.put_metrics("fmp", "AAPL", make_metrics(pe_ratio=float("inf"), beta=float("nan")))
        got = await cache.get_metrics("fmp", "AAPL", date(2024, 1, 15))
        assert got.pe_ratio == float("inf")
        assert math.isnan(got.beta)
        assert got.market_cap == 3e12


# --- Maintenance ---


class TestInvalidateStale:
    async def test_counts_rows_across_tables(self, cache, clock, sample_frame, annual_statements, sample_metrics):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        await cache.put_financials("fmp", "AAPL", annual_statements)
        clock.advance(timedelta(hours=3))
        await cache.put_metrics("fmp", "AAPL", sample_metrics)

        removed = await cache.invalidate_stale(timedelta(hours=1))

        assert removed == 5 + 3
        assert await _count(cache, "metrics_cache") == 1

    async def test_entry_exactly_ttl_old_survives(self, cache, clock, sample_metrics):
        await cache.put_metrics("fmp", "AAPL", sample_metrics)
        clock.advance(timedelta(hours=1))
        assert await cache.invalidate_stale(timedelta(hours=1)) == 0
        clock.advance(timedelta(microseconds=1))
        assert await cache.invalidate_stale(timedelta(hours=1)) == 1

    async def test_nothing_stale(self, cache, sample_frame):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        assert await cache.invalidate_stale(timedelta(days=1)) == 0


class TestClear:
    async def test_clear_all_tables(self, cache, sample_frame, annual_statements, sample_metrics):
        await cache.put_ohlcv("yahoo", "AAPL", sample_frame)
        await cache.put_financials("fmp", "AAPL", annual_statements)
        await cache.put_metrics("fmp", "AAPL", sample_metrics)

        await cache.clear()

        for table in SqliteCache.TABLES:
            assert await _count(cache, table) == 0

    async def test_clear_idempotent(self, cache):
        await cache.clear()
        await cache.clear()

    async def test_clear_on_closed_cache_raises(self, clock):
        c = SqliteCache.in_memory(clock=clock)
        with pytest.raises(CacheError):
            await c.clear()
