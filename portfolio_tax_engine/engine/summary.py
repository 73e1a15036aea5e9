# portfolio_tax_engine/engine/summary.py
import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable

from dateutil.relativedelta import relativedelta

from portfolio_tax_engine.domain.enums import Currency, PerfPeriod
from portfolio_tax_engine.domain.results import DashboardSummary
from portfolio_tax_engine.engine.holding import Holding
from portfolio_tax_engine.utils.currency_converter import (
    CurrencyConverter, calculate_performance_in_display_currency, convert_currency,
)
import portfolio_tax_engine.config as global_config

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if abs(denominator) < global_config.GAIN_PCT_EPSILON:
        return _ZERO
    return numerator / denominator


def build_global_summary(holdings: Iterable[Holding],
                         converter: CurrencyConverter,
                         display_currency: Currency,
                         as_of: date) -> DashboardSummary:
    """
    Folds holdings into one summary in `display_currency` at current rates.

    Net figures are net of fees and dividend tax. Realized and unrealized tax are floored
    at zero here and only here. Performance windows are market-value weighted
    (sum(perf * MV) / sum(MV)) and flagged incomplete when the holdings reporting a
    window cover less than PERF_COMPLETENESS_THRESHOLD of AUM.
    """
    rates = converter.rate_set()
    summary = DashboardSummary()
    disp = display_currency

    total_cost_basis = _ZERO
    realized_tax = _ZERO
    unvested_cost = _ZERO
    trailing_dividends = _ZERO
    day_change_covered = _ZERO
    perf_weighted: Dict[PerfPeriod, Decimal] = {p: _ZERO for p in PerfPeriod}
    perf_covered: Dict[PerfPeriod, Decimal] = {p: _ZERO for p in PerfPeriod}
    yield_start = as_of - relativedelta(years=1)

    for h in holdings:
        pc, sc = h.portfolio_currency, h.stock_currency

        def to_disp(amount: Decimal, currency: Currency = pc) -> Decimal:
            return convert_currency(amount, currency, disp, rates)

        mv_vested = to_disp(h.market_value_vested, sc)
        mv_unvested = to_disp(h.market_value_unvested, sc)
        summary.aum += mv_vested
        summary.total_unrealized += to_disp(h.unrealized_gain)
        summary.total_realized += to_disp(h.realized_gain_net)
        summary.total_cost_of_sold += to_disp(h.cost_of_sold_total)
        summary.total_dividends += to_disp(sum((d.gross_amount_pc for d in h.dividends), _ZERO))
        summary.total_dividends_net += to_disp(h.dividends_total)
        summary.total_tax_paid += to_disp(h.total_tax_paid_pc)
        summary.total_unrealized_tax += to_disp(h.unrealized_tax_liability_ils, Currency.ILS)
        summary.total_fees += to_disp(h.fees_total)
        summary.total_mgmt_fees += to_disp(h.mgmt_fees_total)
        total_cost_basis += to_disp(h.cost_basis_vested)
        realized_tax += to_disp(h.realized_capital_gains_tax + h.realized_income_tax)
        trailing_dividends += to_disp(sum((d.gross_amount_pc for d in h.dividends if d.date > yield_start), _ZERO))

        summary.total_unvested_value += mv_unvested
        unvested_cost += to_disp(sum((l.cost_total.amount for l in h.active_lots if not l.is_vested), _ZERO))

        if h.day_change_pct is not None and h.qty_vested > 0:
            change_per_unit, _ = calculate_performance_in_display_currency(h.current_price, sc, h.day_change_pct, disp, rates)
            if change_per_unit is not None:
                summary.total_day_change += change_per_unit * h.qty_vested
                day_change_covered += mv_vested

        for period in PerfPeriod:
            pct = h.perf.get(period)
            if pct is None or mv_vested <= 0:
                continue
            perf_weighted[period] += pct * mv_vested
            perf_covered[period] += mv_vested

    threshold = summary.aum * global_config.PERF_COMPLETENESS_THRESHOLD
    for period in PerfPeriod:
        summary.perf[period] = _ratio(perf_weighted[period], perf_covered[period])
        summary.perf_incomplete[period] = summary.aum > 0 and perf_covered[period] < threshold

    summary.total_day_change_pct = _ratio(summary.total_day_change, summary.aum - summary.total_day_change)
    summary.total_day_change_is_incomplete = summary.aum > 0 and day_change_covered < threshold

    summary.total_unrealized_gain_pct = _ratio(summary.total_unrealized, total_cost_basis)
    summary.total_realized_gain_pct = _ratio(summary.total_realized, summary.total_cost_of_sold)
    summary.total_return = summary.total_unrealized + summary.total_realized + summary.total_dividends_net
    # Dividend tax is already out of total_dividends_net
    summary.realized_gain_after_tax = summary.total_realized + summary.total_dividends_net - max(_ZERO, realized_tax)
    summary.value_after_tax = summary.aum - max(_ZERO, summary.total_unrealized_tax)
    summary.div_yield = _ratio(trailing_dividends, summary.aum)

    summary.total_unvested_gain = summary.total_unvested_value - unvested_cost
    summary.total_unvested_gain_pct = _ratio(summary.total_unvested_gain, unvested_cost)

    logger.debug(f"Summary in {disp.value}: AUM {summary.aum}, unrealized {summary.total_unrealized}, realized {summary.total_realized}.")
    return summary
