"""factor_data.sources — Capability protocols and bundled price sources."""

from factor_data.sources.base import (
    BasePriceSource,
    DataSource,
    FundamentalSource,
    PriceSource,
    ReferenceSource,
    TickSource,
)
from factor_data.sources.csv_source import CSVPriceSource
from factor_data.sources.yahoo import YahooPriceSource

__all__ = [
    "BasePriceSource",
    "DataSource",
    "FundamentalSource",
    "PriceSource",
    "ReferenceSource",
    "TickSource",
    "CSVPriceSource",
    "YahooPriceSource",
]
