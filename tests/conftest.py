"""Shared pytest fixtures for factor-data."""

from __future__ import annotations

from datetime import date

import pandas as pd
import pytest

from factor_data.core.models import FinancialStatement, KeyMetrics, PeriodType
from fakes import FakeClock, make_frame, make_metrics, make_statement


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sample_frame() -> pd.DataFrame:
    return make_frame()


@pytest.fixture
def annual_statements() -> list[FinancialStatement]:
    return [
        make_statement(period_end=date(2023, 9, 30), fiscal_year=2023),
        make_statement(period_end=date(2022, 9, 24), fiscal_year=2022, revenue=394_328_000_000.0),
        make_statement(period_end=date(2021, 9, 25), fiscal_year=2021, revenue=365_817_000_000.0),
    ]


@pytest.fixture
def quarterly_statements() -> list[FinancialStatement]:
    return [
        make_statement(
            period_end=date(2023, 12, 30),
            period_type=PeriodType.QUARTERLY,
            fiscal_year=2024,
            fiscal_quarter=1,
            revenue=119_575_000_000.0,
        ),
        make_statement(
            period_end=date(2023, 9, 30),
            period_type=PeriodType.QUARTERLY,
            fiscal_year=2023,
            fiscal_quarter=4,
            revenue=89_498_000_000.0,
        ),
    ]


@pytest.fixture
def sample_metrics() -> KeyMetrics:
    return make_metrics()
