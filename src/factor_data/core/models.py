"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from factor_data.core.exceptions import InvalidParameterError

# --- Type Aliases ---

Symbol = str
SourceName = str
UniverseId = str


def normalize_symbol(symbol: str) -> Symbol:
    """Canonical form of a ticker: stripped and upper-cased."""
    normalized = symbol.strip().upper()
    if not normalized:
        raise ValueError("symbol must not be empty")
    return normalized


def checked_symbol(symbol: str) -> Symbol:
    """Normalize a caller-supplied symbol, rejecting blanks with InvalidParameterError."""
    try:
        return normalize_symbol(symbol)
    except ValueError as e:
        raise InvalidParameterError(str(e), context={"symbol": symbol}) from e


def check_date_range(start: date, end: date) -> None:
    if start > end:
        raise InvalidParameterError(
            f"start {start} is after end {end}",
            context={"start": str(start), "end": str(end)},
        )


# --- Enumerations ---


class DataFrequency(StrEnum):
    """Granularity of time series data."""

    TICK = "tick"
    SECOND = "1s"
    MINUTE = "1m"
    FIVE_MINUTE = "5m"
    FIFTEEN_MINUTE = "15m"
    THIRTY_MINUTE = "30m"
    HOURLY = "1h"
    DAILY = "1d"
    WEEKLY = "1wk"
    MONTHLY = "1mo"
    QUARTERLY = "3mo"
    ANNUAL = "1y"

    @property
    def is_intraday(self) -> bool:
        """True for tick through hourly."""
        return self in _INTRADAY

    @property
    def is_fundamental(self) -> bool:
        """True for the reporting frequencies used by fundamentals."""
        return self in (DataFrequency.QUARTERLY, DataFrequency.ANNUAL)


_INTRADAY = frozenset(
    {
        DataFrequency.TICK,
        DataFrequency.SECOND,
        DataFrequency.MINUTE,
        DataFrequency.FIVE_MINUTE,
        DataFrequency.FIFTEEN_MINUTE,
        DataFrequency.THIRTY_MINUTE,
        DataFrequency.HOURLY,
    }
)


class PeriodType(StrEnum):
    """Reporting period of a financial statement."""

    ANNUAL = "annual"
    QUARTERLY = "quarterly"


class CacheBackend(StrEnum):
    """Supported cache backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    DISABLED = "disabled"


# --- Price Models ---


class OhlcvBar(BaseModel):
    """A single OHLCV price bar."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float
    adjusted_close: float | None = None

    @field_validator("symbol")
    @classmethod
    def symbol_upper(cls, v: str) -> str:
        return normalize_symbol(v)

    @field_validator("volume")
    @classmethod
    def volume_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"volume must be >= 0, got {v}")
        return v

    @model_validator(mode="after")
    def high_gte_low(self) -> OhlcvBar:
        if self.high < self.low:
            raise ValueError(f"high ({self.high}) must be >= low ({self.low})")
        return self


# --- Tick Models ---


class Tick(BaseModel):
    """A single trade or quote."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    timestamp: datetime
    price: float
    size: float
    exchange: str | None = None
    conditions: tuple[str, ...] = ()

    @field_validator("symbol")
    @classmethod
    def symbol_upper(cls, v: str) -> str:
        return normalize_symbol(v)


class TickData(BaseModel):
    """Collection of ticks with a few aggregate helpers."""

    model_config = ConfigDict(frozen=True)

    ticks: tuple[Tick, ...] = ()

    def __len__(self) -> int:
        return len(self.ticks)

    def filter_by_symbol(self, symbol: str) -> TickData:
        wanted = normalize_symbol(symbol)
        return TickData(ticks=tuple(t for t in self.ticks if t.symbol == wanted))

    def time_range(self) -> tuple[datetime, datetime] | None:
        """Earliest and latest tick timestamps, or None when empty."""
        if not self.ticks:
            return None
        stamps = [t.timestamp for t in self.ticks]
        return min(stamps), max(stamps)

    def vwap(self) -> float | None:
        """Volume-weighted average price; None when empty or zero volume."""
        total_volume = sum(t.size for t in self.ticks)
        if not self.ticks or total_volume == 0:
            return None
        return sum(t.price * t.size for t in self.ticks) / total_volume


# --- Fundamental Models ---


class FinancialStatement(BaseModel):
    """Balance sheet, income statement and cash flow items for one period."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    symbol: Symbol
    period_end: date
    period_type: PeriodType = PeriodType.ANNUAL
    fiscal_year: int | None = None
    fiscal_quarter: int | None = Field(default=None, ge=1, le=4)

    # Balance sheet: assets
    total_assets: float | None = None
    current_assets: float | None = None
    cash_and_equivalents: float | None = None
    inventory: float | None = None
    accounts_receivable: float | None = None

    # Balance sheet: liabilities
    total_liabilities: float | None = None
    current_liabilities: float | None = None
    long_term_debt: float | None = None
    short_term_debt: float | None = None
    total_debt: float | None = None
    accounts_payable: float | None = None

    # Balance sheet: equity
    stockholders_equity: float | None = None

    # Income statement
    revenue: float | None = None
    cost_of_revenue: float | None = None
    gross_profit: float | None = None
    operating_expenses: float | None = None
    operating_income: float | None = None
    net_income: float | None = None
    ebitda: float | None = None
    eps_basic: float | None = None
    eps_diluted: float | None = None
    interest_expense: float | None = None

    # Cash flow statement
    operating_cash_flow: float | None = None
    investing_cash_flow: float | None = None
    financing_cash_flow: float | None = None
    capital_expenditures: float | None = None
    free_cash_flow: float | None = None
    dividends_paid: float | None = None

    # Shares
    shares_outstanding: float | None = None
    shares_outstanding_diluted: float | None = None

    @field_validator("symbol")
    @classmethod
    def symbol_upper(cls, v: str) -> str:
        return normalize_symbol(v)


class KeyMetrics(BaseModel):
    """Valuation, profitability and risk ratios as of one date."""

    model_config = ConfigDict(frozen=True, ser_json_inf_nan="constants")

    symbol: Symbol
    date: date

    # Valuation
    market_cap: float | None = None
    enterprise_value: float | None = None
    pe_ratio: float | None = None
    forward_pe: float | None = None
    pb_ratio: float | None = None
    ps_ratio: float | None = None
    peg_ratio: float | None = None
    ev_to_ebitda: float | None = None

    # Profitability
    roe: float | None = None
    roa: float | None = None
    roic: float | None = None
    gross_margin: float | None = None
    operating_margin: float | None = None
    net_margin: float | None = None

    # Liquidity & solvency
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    quick_ratio: float | None = None

    # Dividends
    dividend_yield: float | None = None
    payout_ratio: float | None = None

    # Risk & price
    beta: float | None = None
    week_52_high: float | None = None
    week_52_low: float | None = None

    @field_validator("symbol")
    @classmethod
    def symbol_upper(cls, v: str) -> str:
        return normalize_symbol(v)


# --- Reference Models ---


class CompanyInfo(BaseModel):
    """Company reference information."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    name: str
    exchange: str
    sector: str
    industry: str
    country: str
    currency: str
    cik: str | None = None
    description: str | None = None

    @field_validator("symbol")
    @classmethod
    def symbol_upper(cls, v: str) -> str:
        return normalize_symbol(v)
