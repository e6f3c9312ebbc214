"""Yahoo Finance price source — direct HTTP implementation.

Uses the unauthenticated ``/v8/finance/chart/`` endpoint via httpx. The
endpoint serves daily, weekly and monthly bars with full history; intraday
and tick frequencies are not offered through this source.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any

import httpx
import pandas as pd

from factor_data.core.exceptions import (
    AuthenticationFailedError,
    DataNotAvailableError,
    NetworkError,
    NotSupportedError,
    ParseError,
    RateLimitedError,
    SymbolNotFoundError,
)
from factor_data.core.frames import bars_to_frame
from factor_data.core.models import (
    DataFrequency,
    OhlcvBar,
    check_date_range,
    checked_symbol,
)
from factor_data.sources.base import BasePriceSource

logger = logging.getLogger(__name__)

_BASE_URL = "https://query2.finance.yahoo.com"
_CHART_PATH = "/v8/finance/chart"
_USER_AGENT = "Mozilla/5.0 (compatible; factor-data/0.1)"

_INTERVAL_MAP: dict[DataFrequency, str] = {
    DataFrequency.DAILY: "1d",
    DataFrequency.WEEKLY: "1wk",
    DataFrequency.MONTHLY: "1mo",
}


def parse_chart(raw: dict[str, Any], symbol: str) -> list[OhlcvBar]:
    """Convert a ``chart.result[0]`` object into bars sorted by date.

    Bars with any null OHLC value (holidays, halted sessions) are skipped.
    """
    timestamps: list[int] = raw.get("timestamp") or []
    if not timestamps:
        return []

    indicators = raw.get("indicators", {})
    quotes = (indicators.get("quote") or [{}])[0]
    adjclose_data = indicators.get("adjclose") or [{}]
    adj_closes: list[float | None] = adjclose_data[0].get("adjclose", [])

    opens = quotes.get("open", [])
    highs = quotes.get("high", [])
    lows = quotes.get("low", [])
    closes = quotes.get("close", [])
    volumes = quotes.get("volume", [])

    def _at(values: list, i: int) -> Any:
        return values[i] if i < len(values) else None

    bars: list[OhlcvBar] = []
    for i, ts in enumerate(timestamps):
        o, h, lo, c = _at(opens, i), _at(highs, i), _at(lows, i), _at(closes, i)
        if any(x is None for x in (o, h, lo, c)):
            continue
        v = _at(volumes, i)
        ac = _at(adj_closes, i)
        bars.append(
            OhlcvBar(
                symbol=symbol,
                date=datetime.fromtimestamp(ts, tz=timezone.utc).date(),
                open=float(o),
                high=float(h),
                low=float(lo),
                close=float(c),
                volume=float(v) if v is not None else 0.0,
                adjusted_close=float(ac) if ac is not None else None,
            )
        )

    return sorted(bars, key=lambda b: b.date)


class YahooPriceSource(BasePriceSource):
    """Fetches OHLCV bars from Yahoo Finance's chart API.

    Parameters
    ----------
    name : str
        Source name used for cache namespacing. Default: ``"yahoo"``.
    request_delay : float
        Minimum seconds between HTTP requests. Default: 0.5.
    timeout : float
        HTTP request timeout in seconds. Default: 15.0.
    base_url : str
        Override base URL (useful for testing).
    """

    def __init__(
        self,
        name: str = "yahoo",
        request_delay: float = 0.5,
        timeout: float = 15.0,
        base_url: str = _BASE_URL,
    ) -> None:
        super().__init__(name)
        self._delay = request_delay
        self._timeout = timeout
        self._base_url = base_url
        self._last_request_time: float = 0.0

    async def _rate_limit(self) -> None:
        """Enforce minimum delay between requests."""
        elapsed = time.monotonic() - self._last_request_time
        if elapsed < self._delay:
            await asyncio.sleep(self._delay - elapsed)
        self._last_request_time = time.monotonic()

    async def _fetch_chart(
        self, symbol: str, start: date, end: date, interval: str
    ) -> dict[str, Any]:
        """Return the ``chart.result[0]`` object for one symbol."""
        await self._rate_limit()

        period1 = int(datetime.combine(start, datetime.min.time(), timezone.utc).timestamp())
        # period2 is exclusive on Yahoo's side
        period2 = int(
            datetime.combine(end + timedelta(days=1), datetime.min.time(), timezone.utc).timestamp()
        )

        url = f"{self._base_url}{_CHART_PATH}/{symbol}"
        params = {
            "interval": interval,
            "period1": str(period1),
            "period2": str(period2),
            "events": "div,split",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(
                    url, params=params, headers={"User-Agent": _USER_AGENT}
                )
        except httpx.RequestError as e:
            raise NetworkError(
                f"request to Yahoo Finance failed for {symbol}: {e}",
                context={"source": self.name, "symbol": symbol},
            ) from e

        if resp.status_code == 404:
            raise SymbolNotFoundError(symbol)
        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            raise RateLimitedError(
                self.name,
                timedelta(seconds=float(retry_after))
                if retry_after and retry_after.isdigit()
                else None,
            )
        if resp.status_code in (401, 403):
            raise AuthenticationFailedError(self.name)
        if resp.is_error:
            raise NetworkError(
                f"Yahoo Finance returned HTTP {resp.status_code} for {symbol}",
                context={"source": self.name, "status_code": resp.status_code},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError(
                f"invalid JSON from Yahoo Finance for {symbol}",
                context={"source": self.name, "symbol": symbol},
            ) from e

        chart = data.get("chart") if isinstance(data, dict) else None
        if not isinstance(chart, dict):
            raise ParseError(
                f"unexpected Yahoo Finance payload for {symbol}",
                context={"source": self.name, "symbol": symbol},
            )
        if chart.get("error"):
            err = chart["error"]
            raise ParseError(
                f"Yahoo Finance API error for {symbol}: "
                f"{err.get('code')} {err.get('description')}",
                context={"source": self.name, "symbol": symbol},
            )

        results = chart.get("result")
        if not results:
            raise DataNotAvailableError(symbol, start, end)
        return results[0]

    async def fetch_ohlcv(
        self,
        symbol: str,
        start: date,
        end: date,
        frequency: DataFrequency = DataFrequency.DAILY,
    ) -> pd.DataFrame:
        interval = _INTERVAL_MAP.get(frequency)
        if interval is None:
            raise NotSupportedError(
                f"{self.name} does not serve {frequency} bars",
                context={"source": self.name, "frequency": str(frequency)},
            )

        symbol = checked_symbol(symbol)
        check_date_range(start, end)
        raw = await self._fetch_chart(symbol, start, end, interval)
        bars = [b for b in parse_chart(raw, symbol) if start <= b.date <= end]
        if not bars:
            raise DataNotAvailableError(symbol, start, end)
        logger.debug("%s: %d bars for %s", self.name, len(bars), symbol)
        return bars_to_frame(bars)
