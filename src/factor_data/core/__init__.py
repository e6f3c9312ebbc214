"""factor_data.core — Foundation types, config, and exceptions."""

from factor_data.core.config import (
    CacheConfig,
    CSVSourceConfig,
    FactorDataConfig,
    SourcesConfig,
    YahooSourceConfig,
    load_config,
)
from factor_data.core.exceptions import (
    AuthenticationFailedError,
    CacheError,
    ConfigError,
    DataError,
    DataNotAvailableError,
    InvalidParameterError,
    NetworkError,
    NotSupportedError,
    OtherError,
    ParseError,
    ProviderNotConfiguredError,
    RateLimitedError,
    SymbolNotFoundError,
)
from factor_data.core.frames import (
    OHLCV_COLUMNS,
    bars_to_frame,
    concat_frames,
    date_extent,
    empty_frame,
    with_symbol,
)
from factor_data.core.models import (
    CacheBackend,
    CompanyInfo,
    DataFrequency,
    FinancialStatement,
    KeyMetrics,
    OhlcvBar,
    PeriodType,
    SourceName,
    Symbol,
    Tick,
    TickData,
    UniverseId,
    check_date_range,
    checked_symbol,
    normalize_symbol,
)

__all__ = [
    # Type aliases
    "Symbol",
    "SourceName",
    "UniverseId",
    "normalize_symbol",
    "checked_symbol",
    "check_date_range",
    # Enums
    "CacheBackend",
    "DataFrequency",
    "PeriodType",
    # Models
    "CompanyInfo",
    "FinancialStatement",
    "KeyMetrics",
    "OhlcvBar",
    "Tick",
    "TickData",
    # Frames
    "OHLCV_COLUMNS",
    "bars_to_frame",
    "concat_frames",
    "date_extent",
    "empty_frame",
    "with_symbol",
    # Config
    "FactorDataConfig",
    "CacheConfig",
    "SourcesConfig",
    "CSVSourceConfig",
    "YahooSourceConfig",
    "load_config",
    # Exceptions
    "DataError",
    "ConfigError",
    "NetworkError",
    "RateLimitedError",
    "SymbolNotFoundError",
    "DataNotAvailableError",
    "ParseError",
    "CacheError",
    "ProviderNotConfiguredError",
    "InvalidParameterError",
    "AuthenticationFailedError",
    "NotSupportedError",
    "OtherError",
]
