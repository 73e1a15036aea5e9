# tests/support/builders.py
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from portfolio_tax_engine.domain.models import DividendEvent, LivePrice, Portfolio, Transaction
from portfolio_tax_engine.engine.finance_engine import FinanceEngine
from portfolio_tax_engine.utils.cpi import CpiSeries
from portfolio_tax_engine.utils.exchange_rate_provider import ExchangeRateProvider

AS_OF = date(2024, 1, 1)


def make_portfolio(template: str = "std_us", pid: str = "p1", **overrides: Any) -> Portfolio:
    """Template portfolio with commissions zeroed unless given."""
    overrides.setdefault("comm_rate", Decimal(0))
    overrides.setdefault("comm_min", Decimal(0))
    return Portfolio.from_template(template, pid, **overrides)


def _txn(txn_type: str, ticker: str, on: date, qty, price, portfolio_id: str,
         currency: Optional[str], exchange: Optional[str], **extra: Any) -> Transaction:
    return Transaction(
        date=on, portfolio_id=portfolio_id, ticker=ticker, exchange=exchange, type=txn_type,
        qty=Decimal(str(qty)), price=Decimal(str(price)), currency=currency, **extra,
    )


def buy(ticker: str, on: date, qty, price, portfolio_id: str = "p1", currency: Optional[str] = "USD",
        exchange: Optional[str] = "NASDAQ", **extra: Any) -> Transaction:
    return _txn("BUY", ticker, on, qty, price, portfolio_id, currency, exchange, **extra)


def sell(ticker: str, on: date, qty, price, portfolio_id: str = "p1", currency: Optional[str] = "USD",
         exchange: Optional[str] = "NASDAQ", **extra: Any) -> Transaction:
    return _txn("SELL", ticker, on, qty, price, portfolio_id, currency, exchange, **extra)


def fee(ticker: str, on: date, price, portfolio_id: str = "p1", qty=0, currency: Optional[str] = "USD",
        exchange: Optional[str] = "NASDAQ", **extra: Any) -> Transaction:
    return _txn("FEE", ticker, on, qty, price, portfolio_id, currency, exchange, **extra)


def dividend(ticker: str, on: date, amount, exchange: Optional[str] = "NASDAQ") -> DividendEvent:
    return DividendEvent(ticker=ticker, exchange=exchange, date=on, amount=Decimal(str(amount)))


def live_price(price, currency: Optional[str] = "USD", **extra: Any) -> LivePrice:
    return LivePrice(price=Decimal(str(price)), currency=currency, **extra)


def run_events(portfolios: Iterable[Portfolio],
               provider: ExchangeRateProvider,
               transactions: List[Transaction],
               dividends: Iterable[DividendEvent] = (),
               cpi_series: Optional[CpiSeries] = None,
               as_of: date = AS_OF) -> FinanceEngine:
    engine = FinanceEngine(portfolios, provider, cpi_series=cpi_series, as_of=as_of)
    engine.process_events(transactions, dividends)
    return engine
