# portfolio_tax_engine/engine/performance.py
"""
Personal period returns.

A holding's return over a window is the simple (not time-weighted) ratio of the
period gain to the value held at the window's start, computed lot by lot in
`Holding.generate_gain_for_period`. When the start value is too small to divide by,
or the calculation fails, the market's own move for the window is used instead.
"""
import bisect
import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, List, Optional

from dateutil.relativedelta import relativedelta

from portfolio_tax_engine.domain.enums import Currency, PerfPeriod
from portfolio_tax_engine.domain.models import PricePoint
from portfolio_tax_engine.domain.money import MultiCurrencyValue
from portfolio_tax_engine.utils.currency_converter import CurrencyConverter
import portfolio_tax_engine.config as global_config

if TYPE_CHECKING:
    from .holding import Holding, HistoryProvider

logger = logging.getLogger(__name__)

_PERIOD_OFFSETS = {
    PerfPeriod.ONE_WEEK: relativedelta(weeks=1),
    PerfPeriod.ONE_MONTH: relativedelta(months=1),
    PerfPeriod.THREE_MONTHS: relativedelta(months=3),
    PerfPeriod.ONE_YEAR: relativedelta(years=1),
    PerfPeriod.THREE_YEARS: relativedelta(years=3),
    PerfPeriod.FIVE_YEARS: relativedelta(years=5),
}


class PriceHistory:
    """Daily closes of one instrument in its own currency."""

    def __init__(self, points: Iterable[PricePoint]):
        ordered = sorted(points, key=lambda p: p.date)
        self._dates: List[date] = [p.date for p in ordered]
        self._prices: List[Decimal] = [p.price for p in ordered]

    def __len__(self) -> int:
        return len(self._dates)

    def __bool__(self) -> bool:
        return bool(self._dates)

    def price_at(self, on_date: date) -> Decimal:
        """Last close on or before `on_date`; the first close when the date precedes the history."""
        if not self._dates:
            return Decimal(0)
        idx = bisect.bisect_right(self._dates, on_date)
        if idx == 0:
            return self._prices[0]
        return self._prices[idx - 1]


def period_start_date(period: PerfPeriod, as_of: date, inception: Optional[date] = None) -> date:
    """
    First day of a look-back window ending at `as_of`.
    YTD starts on January 1st. ALL starts at `inception` (the first transaction), else `as_of`.
    """
    if period == PerfPeriod.YTD:
        return date(as_of.year, 1, 1)
    if period == PerfPeriod.ALL:
        return inception if inception is not None else as_of
    return as_of - _PERIOD_OFFSETS[period]


def value_in_currency(value: MultiCurrencyValue, currency: Currency, converter: CurrencyConverter) -> Decimal:
    """Reads a USD/ILS pair in `currency`. Other currencies are derived from the USD leg at current rates."""
    if currency in (Currency.USD, Currency.ILS, Currency.ILA):
        return value.get(currency)
    return converter.convert(value.val_usd, Currency.USD, currency)


def compute_personal_performance(holding: "Holding",
                                 period: PerfPeriod,
                                 history_provider: "HistoryProvider",
                                 converter: CurrencyConverter,
                                 as_of: date,
                                 fallback_pct: Optional[Decimal] = None) -> Optional[Decimal]:
    """Return of `holding` over `period` in its portfolio currency, or `fallback_pct`."""
    inception = min((t.date for t in holding.transactions), default=None)
    start = period_start_date(period, as_of, inception)
    try:
        result = holding.generate_gain_for_period(
            start, history_provider, converter, initial_rate_set=converter.historical_rate_set(period),
        )
        initial = value_in_currency(result.initial_value, holding.portfolio_currency, converter)
        if initial < global_config.GAIN_PCT_EPSILON:
            return fallback_pct
        result.gain_pct = value_in_currency(result.gain, holding.portfolio_currency, converter) / initial
        return result.gain_pct
    except (ArithmeticError, ValueError) as e:
        logger.warning(f"Performance {period.value} for {holding.id} failed: {e}. Using market performance {fallback_pct}.")
        return fallback_pct
