# portfolio_tax_engine/engine/event_processors/transaction_processor.py
import logging
from typing import TYPE_CHECKING, Optional

from portfolio_tax_engine.domain.enums import DEFAULT_EXCHANGE, Currency, Exchange
from portfolio_tax_engine.domain.models import Portfolio, Transaction
from portfolio_tax_engine.engine.holding import Holding
from .base_processor import EventProcessor

if TYPE_CHECKING:
    from portfolio_tax_engine.engine.finance_engine import FinanceEngine

logger = logging.getLogger(__name__)


def resolve_stock_currency(portfolio: Portfolio, ticker: str, exchange: Exchange, txn_currency: Optional[Currency]) -> Currency:
    """
    Quote currency of an instrument: the portfolio's holding metadata, else the
    transaction's currency, else agorot for TASE listings and USD elsewhere.
    """
    info = portfolio.holding_info(ticker, exchange)
    if info is not None and info.currency is not None:
        return info.currency
    if txn_currency is not None:
        return txn_currency
    return Currency.ILA if exchange == Exchange.TASE else Currency.USD


class TransactionProcessor(EventProcessor):
    """Routes BUY/SELL/DIVIDEND/FEE transactions to their (portfolio, ticker) holding."""

    def process(self, event: Transaction, engine: "FinanceEngine") -> None:
        portfolio = engine.portfolios.get(event.portfolio_id)
        if portfolio is None:
            logger.warning(f"Transaction {event.type.value} {event.ticker} on {event.date} references unknown portfolio '{event.portfolio_id}'. Skipping.")
            return

        holding = self._get_or_create_holding(event, portfolio, engine)
        holding.add_transaction(event, engine.converter, engine.cpi_series, portfolio, engine.as_of)

    def _get_or_create_holding(self, txn: Transaction, portfolio: Portfolio, engine: "FinanceEngine") -> Holding:
        holding_id = f"{portfolio.id}_{txn.ticker}"
        holding = engine.holdings.get(holding_id)
        if holding is not None:
            return holding

        exchange = txn.exchange or DEFAULT_EXCHANGE
        info = portfolio.holding_info(txn.ticker, exchange)
        holding = Holding(
            portfolio_id=portfolio.id,
            ticker=txn.ticker,
            exchange=exchange,
            stock_currency=resolve_stock_currency(portfolio, txn.ticker, exchange, txn.currency),
            portfolio_currency=portfolio.currency,
            display_name=info.name if info is not None else None,
        )
        if info is not None:
            holding.name_he = info.name_he
            holding.sector = info.sector
            holding.instrument_type = info.type
        engine.holdings[holding_id] = holding
        logger.debug(f"Created holding {holding!r}")
        return holding
