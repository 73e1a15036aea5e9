# portfolio_tax_engine/reporting/console_reporter.py
import logging
from decimal import Decimal

from portfolio_tax_engine.domain.enums import Currency, PerfPeriod
from portfolio_tax_engine.domain.results import DashboardSummary
from portfolio_tax_engine.engine.finance_engine import FinanceEngine
from portfolio_tax_engine.reporting.reporting_utils import _pct, _q, _q_price, _q_qty

logger = logging.getLogger(__name__)


def generate_console_summary(summary: DashboardSummary, display_currency: Currency) -> None:
    cur = display_currency.value
    logger.info(f"Generating console summary in {cur}...")
    print(f"\n--- Portfolio Summary (All amounts in {cur}) ---")
    print(f"  Assets under management:     {_q(summary.aum)}")
    print(f"  Value after unrealized tax:  {_q(summary.value_after_tax)}")
    print(f"  Unrealized gain:             {_q(summary.total_unrealized)} ({_pct(summary.total_unrealized_gain_pct)})")
    print(f"  Unrealized tax liability:    {_q(summary.total_unrealized_tax)}")
    print(f"  Realized gain (net of fees): {_q(summary.total_realized)} ({_pct(summary.total_realized_gain_pct)})")
    print(f"  Cost of sold positions:      {_q(summary.total_cost_of_sold)}")
    print(f"  Dividends gross / net:       {_q(summary.total_dividends)} / {_q(summary.total_dividends_net)}")
    print(f"  Realized gain after tax:     {_q(summary.realized_gain_after_tax)}")
    print(f"  Total return:                {_q(summary.total_return)}")
    print(f"  Tax paid:                    {_q(summary.total_tax_paid)}")
    print(f"  Commissions / mgmt fees:     {_q(summary.total_fees)} / {_q(summary.total_mgmt_fees)}")
    print(f"  Dividend yield (12m):        {_pct(summary.div_yield)}")

    day_flag = " (incomplete)" if summary.total_day_change_is_incomplete else ""
    print(f"  Day change:                  {_q(summary.total_day_change)} ({_pct(summary.total_day_change_pct)}){day_flag}")

    if summary.total_unvested_value:
        print(f"  Unvested value / gain:       {_q(summary.total_unvested_value)} / {_q(summary.total_unvested_gain)} ({_pct(summary.total_unvested_gain_pct)})")

    print("\n  Performance (value weighted):")
    for period in PerfPeriod:
        flag = " (incomplete)" if summary.perf_incomplete.get(period) else ""
        print(f"    {period.value:>4}: {_pct(summary.perf.get(period, Decimal(0)))}{flag}")


def generate_console_holdings_report(engine: FinanceEngine, display_currency: Currency) -> None:
    rates = engine.converter.rate_set()
    print(f"\n--- Holdings (market value and gains in {display_currency.value}) ---")
    header = f"{'Holding':<28}{'Qty':>16}{'Price':>16}{'Value':>14}{'Unrealized':>14}{'Realized':>14}{'Unreal. tax':>14}"
    print(header)
    print("-" * len(header))
    for holding in sorted(engine.holdings.values(), key=lambda h: h.id):
        value = engine.converter.convert(holding.market_value_vested, holding.stock_currency, display_currency, rate_set=rates)
        unrealized = engine.converter.convert(holding.unrealized_gain, holding.portfolio_currency, display_currency, rate_set=rates)
        realized = engine.converter.convert(holding.realized_gain_net, holding.portfolio_currency, display_currency, rate_set=rates)
        tax = engine.converter.convert(holding.unrealized_tax_liability_ils, Currency.ILS, display_currency, rate_set=rates)
        print(f"{holding.id:<28}{_q_qty(holding.qty_total).normalize():>16}{_q_price(holding.current_price):>16}"
              f"{_q(value):>14}{_q(unrealized):>14}{_q(realized):>14}{_q(tax):>14}")
        if holding.qty_unvested:
            print(f"{'':<4}unvested: {_q_qty(holding.qty_unvested).normalize()}")
