# portfolio_tax_engine/engine/recurring_fees.py
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from portfolio_tax_engine.domain.enums import Exchange, FeeFrequency, MgmtFeeType
from portfolio_tax_engine.domain.models import Portfolio
from portfolio_tax_engine.domain.results import FeeCharge
from portfolio_tax_engine.engine.holding import Holding
from portfolio_tax_engine.utils.currency_converter import CurrencyConverter
from portfolio_tax_engine.utils.tax_utils import get_fee_rates_for_date, has_percentage_mgmt_fee

logger = logging.getLogger(__name__)

# (ticker, exchange, date) -> price in the instrument's currency, None when unknown
PriceProvider = Callable[[str, Exchange, date], Optional[Decimal]]

PERIODS_PER_YEAR: Dict[FeeFrequency, int] = {
    FeeFrequency.MONTHLY: 12,
    FeeFrequency.QUARTERLY: 4,
    FeeFrequency.YEARLY: 1,
}


def is_fee_due(frequency: FeeFrequency, month: int) -> bool:
    """Monthly fees are due every month, quarterly ones in Jan/Apr/Jul/Oct, yearly ones in January."""
    if frequency == FeeFrequency.MONTHLY:
        return True
    if frequency == FeeFrequency.QUARTERLY:
        return (month - 1) % 3 == 0
    return month == 1


def generate_recurring_fees(holdings: Iterable[Holding],
                            portfolios: Dict[str, Portfolio],
                            price_provider: PriceProvider,
                            converter: CurrencyConverter,
                            as_of: date) -> List[FeeCharge]:
    """
    Synthesizes percentage management fee charges and accrues them on each holding.
    Walks the first of every month after the holding's first transaction up to `as_of`,
    using the fee schedule in force on that day and the quantity held at that day.
    """
    charges: List[FeeCharge] = []
    for holding in holdings:
        portfolio = portfolios.get(holding.portfolio_id)
        if portfolio is None or not has_percentage_mgmt_fee(portfolio):
            continue
        transactions = holding.transactions
        if not transactions:
            continue

        first_date = min(t.date for t in transactions)
        current = date(first_date.year, first_date.month, 1) + relativedelta(months=1)
        while current <= as_of:
            charge = _charge_for_month(holding, portfolio, price_provider, converter, current)
            if charge is not None:
                holding.add_fee_charge(charge)
                charges.append(charge)
            current = current + relativedelta(months=1)

    logger.info(f"Generated {len(charges)} recurring management fee charges up to {as_of}.")
    return charges


def _charge_for_month(holding: Holding,
                      portfolio: Portfolio,
                      price_provider: PriceProvider,
                      converter: CurrencyConverter,
                      on_date: date) -> Optional[FeeCharge]:
    rates = get_fee_rates_for_date(portfolio, on_date)
    if rates.mgmt_type != MgmtFeeType.PERCENTAGE or rates.mgmt_val <= 0:
        return None
    if not is_fee_due(rates.mgmt_freq, on_date.month):
        return None

    qty = holding.quantity_at(on_date)
    if qty <= 0:
        return None
    price = price_provider(holding.ticker, holding.exchange, on_date)
    if price is None or price <= 0:
        logger.debug(f"{holding.id}: no price on {on_date}, management fee skipped.")
        return None

    periodic_rate = rates.mgmt_val / PERIODS_PER_YEAR[rates.mgmt_freq]
    fee_sc = qty * price * periodic_rate
    fee_pc = converter.convert(fee_sc, holding.stock_currency, holding.portfolio_currency, on_date=on_date)
    return FeeCharge(date=on_date, amount_pc=fee_pc, quantity=qty, price_sc=price, rate=periodic_rate)
