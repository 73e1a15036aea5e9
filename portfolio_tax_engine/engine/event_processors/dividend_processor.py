# portfolio_tax_engine/engine/event_processors/dividend_processor.py
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from portfolio_tax_engine.domain.enums import DEFAULT_EXCHANGE, Currency, InstrumentType
from portfolio_tax_engine.domain.models import DividendEvent, Portfolio
from portfolio_tax_engine.domain.money import Money
from portfolio_tax_engine.domain.results import DividendRecord
from portfolio_tax_engine.engine.holding import Holding
from portfolio_tax_engine.engine.tax_policy import dividend_tax_rate, reinvested_dividend_tax_rate
from portfolio_tax_engine.utils.currency_converter import RateSet, convert_currency, try_convert_currency
from portfolio_tax_engine.utils.tax_utils import get_fee_rates_for_date, get_tax_rates_for_date
from .base_processor import EventProcessor

if TYPE_CHECKING:
    from portfolio_tax_engine.engine.finance_engine import FinanceEngine

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)


def build_dividend_record(holding: Holding,
                          portfolio: Portfolio,
                          event: DividendEvent,
                          qty_vested: Decimal,
                          qty_unvested: Decimal,
                          rate_set: Optional[RateSet]) -> DividendRecord:
    """
    Splits a per-unit dividend into its cashed (vested) and reinvested (unvested) shares.
    Tax is computed on the gross amount in ILS at the dividend date and converted to
    the portfolio currency. The fee rate and the tax rates are those effective on that date.
    """
    units = qty_vested + qty_unvested
    sc = holding.stock_currency
    pc = holding.portfolio_currency

    gross_sc = units * event.amount
    gross_pc = convert_currency(gross_sc, sc, pc, rate_set)
    gross_ils = convert_currency(gross_sc, sc, Currency.ILS, rate_set)

    cashed_share = qty_vested / units
    reinvested_share = qty_unvested / units

    fee_rates = get_fee_rates_for_date(portfolio, event.date)
    fee_pc = gross_pc * fee_rates.div_comm_rate

    tax_rates = get_tax_rates_for_date(portfolio, event.date)
    is_reit = holding.instrument_type == InstrumentType.STOCK_REIT
    base_rate = dividend_tax_rate(portfolio.tax_policy, tax_rates.cgt, tax_rates.inc_tax, is_reit)
    reinvested_rate = reinvested_dividend_tax_rate(portfolio.div_policy, base_rate)

    tax_cashed_pc = convert_currency(gross_ils * cashed_share * base_rate, Currency.ILS, pc, rate_set)
    tax_reinvested_pc = convert_currency(gross_ils * reinvested_share * reinvested_rate, Currency.ILS, pc, rate_set)
    fee_cashed_pc = fee_pc * cashed_share
    fee_reinvested_pc = fee_pc * reinvested_share
    tax_pc = tax_cashed_pc + tax_reinvested_pc

    gross_money = Money(
        amount=gross_sc,
        currency=sc,
        rate_to_portfolio=gross_pc / gross_sc if gross_sc else Decimal(1),
        val_usd=try_convert_currency(gross_sc, sc, Currency.USD, rate_set),
        val_ils=try_convert_currency(gross_sc, sc, Currency.ILS, rate_set),
    )

    return DividendRecord(
        event.date,
        gross_money,
        gross_pc - fee_pc - tax_pc,
        tax_pc,
        fee_pc,
        is_taxable=base_rate > 0,
        units_held=units,
        price_per_unit=event.amount,
        cashed_amount=gross_pc * cashed_share - fee_cashed_pc - tax_cashed_pc,
        reinvested_amount=gross_pc * reinvested_share - fee_reinvested_pc - tax_reinvested_pc,
        is_reinvested=qty_unvested > 0,
        tax_cashed_pc=tax_cashed_pc,
        tax_reinvested_pc=tax_reinvested_pc,
        fee_cashed_pc=fee_cashed_pc,
        fee_reinvested_pc=fee_reinvested_pc,
        source=event.source,
    )


class DividendProcessor(EventProcessor):
    """
    Fans a dividend event out to every holding, across all portfolios, listed under the
    same ticker and exchange that held units on the dividend date.
    """

    def process(self, event: DividendEvent, engine: "FinanceEngine") -> None:
        if event.amount <= 0:
            logger.debug(f"Dividend {event.ticker} on {event.date} has no amount. Skipping.")
            return

        exchange = event.exchange or DEFAULT_EXCHANGE
        rate_set = engine.converter.rate_set(event.date)
        applied = 0
        for holding in engine.holdings.values():
            if holding.ticker != event.ticker or holding.exchange != exchange:
                continue
            qty_vested, qty_unvested = holding.quantity_breakdown_at(event.date)
            if qty_vested + qty_unvested <= 0:
                continue
            portfolio = engine.portfolios.get(holding.portfolio_id)
            if portfolio is None:
                logger.warning(f"Holding {holding.id} has no portfolio, dividend on {event.date} not applied.")
                continue

            holding.add_dividend(build_dividend_record(holding, portfolio, event, qty_vested, qty_unvested, rate_set))
            applied += 1

        if applied == 0:
            logger.debug(f"Dividend {exchange.value}:{event.ticker} on {event.date} matched no holding with units.")
