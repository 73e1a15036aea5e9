"""
Test Support Module

- Mock exchange rate provider with date schedules
- Builders for portfolios, transactions, dividends, live prices and engines
"""

from tests.support.mock_providers import MockExchangeRateProvider
from tests.support.builders import (
    make_portfolio,
    buy,
    sell,
    fee,
    dividend,
    live_price,
    run_events,
)

__all__ = [
    "MockExchangeRateProvider",
    "make_portfolio",
    "buy",
    "sell",
    "fee",
    "dividend",
    "live_price",
    "run_events",
]
