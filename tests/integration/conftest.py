"""Integration test fixtures — real I/O but no network."""

from __future__ import annotations

from pathlib import Path

import pytest

from factor_data.cache.sqlite import SqliteCache


@pytest.fixture
async def integration_cache(tmp_path: Path, clock) -> SqliteCache:
    """An initialized file-backed SqliteCache for integration tests."""
    cache = SqliteCache(tmp_path / "integration.db", clock=clock)
    await cache.initialize()
    yield cache
    await cache.close()


@pytest.fixture
def price_dir(tmp_path: Path) -> Path:
    """Directory of CSV price files for AAPL (Jan 2-5, 2024) and MSFT (Jan 2)."""
    prices = tmp_path / "prices"
    prices.mkdir()
    (prices / "AAPL.csv").write_text(
        "Date,Open,High,Low,Close,Adj Close,Volume\n"
        "2024-01-02,187.15,188.44,183.89,185.64,184.94,82488700\n"
        "2024-01-03,184.22,185.88,183.43,184.25,183.55,58414500\n"
        "2024-01-04,182.15,183.09,180.88,181.91,181.22,71983600\n"
        "2024-01-05,181.99,182.76,180.17,181.18,180.49,62303300\n"
    )
    (prices / "MSFT.csv").write_text(
        "date,open,high,low,close,volume\n"
        "2024-01-02,373.86,375.90,366.77,370.87,25258600\n"
    )
    return prices
