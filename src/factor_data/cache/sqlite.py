"""Persistent cache backend on SQLite."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Sequence
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, ClassVar

import aiosqlite
import pandas as pd

from factor_data.cache.base import Clock, utc_now
from factor_data.core.exceptions import CacheError
from factor_data.core.frames import OHLCV_COLUMNS, empty_frame, to_date
from factor_data.core.models import FinancialStatement, KeyMetrics, PeriodType

logger = logging.getLogger(__name__)

_PERIOD_CODES: dict[PeriodType, str] = {
    PeriodType.ANNUAL: "A",
    PeriodType.QUARTERLY: "Q",
}


def _timestamp(moment: datetime) -> str:
    """Fixed-width ISO-8601 so that string order matches time order."""
    return moment.isoformat(timespec="microseconds")


def _nullable(value: Any) -> float | None:
    if value is None:
        return None
    value = float(value)
    return None if math.isnan(value) else value


class SqliteCache:
    """SQLite implementation of the cache port.

    One aiosqlite connection in WAL mode, serialized by a single
    ``asyncio.Lock``: reads and writes never overlap. OHLCV bars are stored
    one row per day, so any sub-range of a stored series is a hit.
    Financial statements and metrics are stored as JSON alongside their key
    columns.
    """

    TABLES: ClassVar[tuple[str, ...]] = ("ohlcv_cache", "financials_cache", "metrics_cache")

    _SCHEMA: ClassVar[list[str]] = [
        """CREATE TABLE IF NOT EXISTS ohlcv_cache (
            provider TEXT NOT NULL,
            symbol TEXT NOT NULL,
            date TEXT NOT NULL,
            open REAL NOT NULL,
            high REAL NOT NULL,
            low REAL NOT NULL,
            close REAL NOT NULL,
            volume REAL NOT NULL,
            adjusted_close REAL,
            cached_at TEXT NOT NULL,
            PRIMARY KEY (provider, symbol, date)
        )""",
        """CREATE TABLE IF NOT EXISTS financials_cache (
            provider TEXT NOT NULL,
            symbol TEXT NOT NULL,
            period_end TEXT NOT NULL,
            period_type TEXT NOT NULL,
            fiscal_year INTEGER,
            fiscal_quarter INTEGER,
            data_json TEXT NOT NULL,
            cached_at TEXT NOT NULL,
            PRIMARY KEY (provider, symbol, period_end, period_type)
        )""",
        """CREATE TABLE IF NOT EXISTS metrics_cache (
            provider TEXT NOT NULL,
            symbol TEXT NOT NULL,
            date TEXT NOT NULL,
            data_json TEXT NOT NULL,
            cached_at TEXT NOT NULL,
            PRIMARY KEY (provider, symbol, date)
        )""",
        "CREATE INDEX IF NOT EXISTS idx_ohlcv_cached_at ON ohlcv_cache(cached_at)",
        """CREATE INDEX IF NOT EXISTS idx_financials_lookup
            ON financials_cache(provider, symbol, period_type)""",
        "CREATE INDEX IF NOT EXISTS idx_financials_cached_at ON financials_cache(cached_at)",
        "CREATE INDEX IF NOT EXISTS idx_metrics_cached_at ON metrics_cache(cached_at)",
    ]

    def __init__(self, path: str | Path, clock: Clock = utc_now) -> None:
        self._path = str(path)
        self._clock = clock
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def in_memory(cls, clock: Clock = utc_now) -> SqliteCache:
        """A cache backed by a private in-memory database (call ``initialize``)."""
        return cls(":memory:", clock=clock)

    @property
    def path(self) -> str:
        return self._path

    def __repr__(self) -> str:
        return f"SqliteCache(path={self._path!r})"

    # --- Lifecycle ---

    async def initialize(self) -> None:
        """Open the connection, enable WAL and create the schema.

        Calling it again on an open cache only re-applies the (idempotent)
        schema statements.
        """
        try:
            async with self._lock:
                if self._db is None:
                    if self._path != ":memory:":
                        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
                    self._db = await aiosqlite.connect(self._path)
                    self._db.row_factory = aiosqlite.Row
                    await self._db.execute("PRAGMA journal_mode=WAL")
                for sql in self._SCHEMA:
                    await self._db.execute(sql)
                await self._db.commit()
            logger.debug("SQLite cache ready at %s", self._path)
        except Exception as e:
            raise CacheError(
                f"Failed to initialize SQLite cache: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        async with self._lock:
            if self._db is not None:
                await self._db.close()
                self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._lock:
                async with self._db.execute("SELECT 1") as cursor:
                    row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    def _conn(self, operation: str, table: str) -> aiosqlite.Connection:
        if self._db is None:
            raise CacheError(
                "SQLite cache is not initialized",
                context={"operation": operation, "table": table},
            )
        return self._db

    # --- OHLCV ---

    async def get_ohlcv(
        self, provider: str, symbol: str, start: date, end: date
    ) -> pd.DataFrame | None:
        try:
            async with self._lock:
                db = self._conn("query", "ohlcv_cache")
                async with db.execute(
                    """SELECT symbol, date, open, high, low, close, volume, adjusted_close
                       FROM ohlcv_cache
                       WHERE provider = ? AND symbol = ? AND date >= ? AND date <= ?
                       ORDER BY date ASC""",
                    (provider, symbol, start.isoformat(), end.isoformat()),
                ) as cursor:
                    rows = await cursor.fetchall()
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to read OHLCV: {e}",
                context={"operation": "query", "table": "ohlcv_cache", "symbol": symbol},
            ) from e

        if not rows:
            logger.debug("ohlcv miss %s/%s %s..%s", provider, symbol, start, end)
            return None
        logger.debug("ohlcv hit %s/%s (%d rows)", provider, symbol, len(rows))
        return self._rows_to_frame(rows)

    async def put_ohlcv(self, provider: str, symbol: str, data: pd.DataFrame) -> None:
        if data.empty:
            return
        try:
            cached_at = _timestamp(self._clock())
            params = [
                (
                    provider,
                    symbol,
                    to_date(row["date"]).isoformat(),
                    float(row["open"]),
                    float(row["high"]),
                    float(row["low"]),
                    float(row["close"]),
                    float(row["volume"]),
                    _nullable(row.get("adjusted_close")),
                    cached_at,
                )
                for row in data.to_dict("records")
            ]
            async with self._lock:
                db = self._conn("insert", "ohlcv_cache")
                try:
                    await db.executemany(
                        """INSERT OR REPLACE INTO ohlcv_cache
                           (provider, symbol, date, open, high, low, close,
                            volume, adjusted_close, cached_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                        params,
                    )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
            logger.debug("ohlcv stored %s/%s (%d rows)", provider, symbol, len(params))
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to write OHLCV: {e}",
                context={"operation": "insert", "table": "ohlcv_cache", "symbol": symbol},
            ) from e

    # --- Financials ---

    async def get_financials(
        self, provider: str, symbol: str, period_type: PeriodType
    ) -> list[FinancialStatement] | None:
        try:
            async with self._lock:
                db = self._conn("query", "financials_cache")
                async with db.execute(
                    """SELECT data_json FROM financials_cache
                       WHERE provider = ? AND symbol = ? AND period_type = ?
                       ORDER BY period_end DESC""",
                    (provider, symbol, _PERIOD_CODES[period_type]),
                ) as cursor:
                    rows = await cursor.fetchall()
            if not rows:
                return None
            return [FinancialStatement.model_validate_json(r["data_json"]) for r in rows]
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to read financials: {e}",
                context={
                    "operation": "query",
                    "table": "financials_cache",
                    "symbol": symbol,
                },
            ) from e

    async def put_financials(
        self, provider: str, symbol: str, statements: Sequence[FinancialStatement]
    ) -> None:
        if not statements:
            return
        try:
            cached_at = _timestamp(self._clock())
            params = [
                (
                    provider,
                    symbol,
                    stmt.period_end.isoformat(),
                    _PERIOD_CODES[stmt.period_type],
                    stmt.fiscal_year,
                    stmt.fiscal_quarter,
                    stmt.model_dump_json(),
                    cached_at,
                )
                for stmt in statements
            ]
            async with self._lock:
                db = self._conn("insert", "financials_cache")
                try:
                    await db.executemany(
                        """INSERT OR REPLACE INTO financials_cache
                           (provider, symbol, period_end, period_type, fiscal_year,
                            fiscal_quarter, data_json, cached_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                        params,
                    )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
            logger.debug(
                "financials stored %s/%s (%d statements)", provider, symbol, len(params)
            )
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to write financials: {e}",
                context={
                    "operation": "insert",
                    "table": "financials_cache",
                    "symbol": symbol,
                },
            ) from e

    # --- Metrics ---

    async def get_metrics(
        self, provider: str, symbol: str, date: date
    ) -> KeyMetrics | None:
        try:
            async with self._lock:
                db = self._conn("query", "metrics_cache")
                async with db.execute(
                    """SELECT data_json FROM metrics_cache
                       WHERE provider = ? AND symbol = ? AND date = ?""",
                    (provider, symbol, date.isoformat()),
                ) as cursor:
                    row = await cursor.fetchone()
            if row is None:
                return None
            return KeyMetrics.model_validate_json(row["data_json"])
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to read metrics: {e}",
                context={"operation": "query", "table": "metrics_cache", "symbol": symbol},
            ) from e

    async def put_metrics(self, provider: str, symbol: str, metrics: KeyMetrics) -> None:
        try:
            async with self._lock:
                db = self._conn("insert", "metrics_cache")
                await db.execute(
                    """INSERT OR REPLACE INTO metrics_cache
                       (provider, symbol, date, data_json, cached_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        provider,
                        symbol,
                        metrics.date.isoformat(),
                        metrics.model_dump_json(),
                        _timestamp(self._clock()),
                    ),
                )
                await db.commit()
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to write metrics: {e}",
                context={"operation": "insert", "table": "metrics_cache", "symbol": symbol},
            ) from e

    # --- Maintenance ---

    async def invalidate_stale(self, ttl: timedelta) -> int:
        cutoff = _timestamp(self._clock() - ttl)
        removed = 0
        table = ""
        try:
            async with self._lock:
                db = self._conn("delete", "*")
                for table in self.TABLES:
                    cursor = await db.execute(
                        f"DELETE FROM {table} WHERE cached_at < ?", (cutoff,)
                    )
                    removed += cursor.rowcount
                    await cursor.close()
                await db.commit()
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to invalidate stale entries: {e}",
                context={"operation": "delete", "table": table},
            ) from e
        logger.debug("Evicted %d stale rows older than %s", removed, cutoff)
        return removed

    async def clear(self) -> None:
        table = ""
        try:
            async with self._lock:
                db = self._conn("delete", "*")
                for table in self.TABLES:
                    await db.execute(f"DELETE FROM {table}")
                await db.commit()
        except Exception as e:
            if isinstance(e, CacheError):
                raise
            raise CacheError(
                f"Failed to clear cache: {e}",
                context={"operation": "delete", "table": table},
            ) from e
        logger.debug("SQLite cache cleared")

    # --- Row Mappers ---

    @staticmethod
    def _rows_to_frame(rows: Sequence[aiosqlite.Row]) -> pd.DataFrame:
        records = [
            {
                "symbol": row["symbol"],
                "date": date.fromisoformat(row["date"]),
                "open": row["open"],
                "high": row["high"],
                "low": row["low"],
                "close": row["close"],
                "volume": row["volume"],
                "adjusted_close": row["adjusted_close"],
            }
            for row in rows
        ]
        if not records:
            return empty_frame()
        frame = pd.DataFrame(records, columns=OHLCV_COLUMNS)
        frame["adjusted_close"] = frame["adjusted_close"].astype(float)
        return frame
