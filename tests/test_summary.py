# tests/test_summary.py
from datetime import date
from decimal import Decimal

import pytest

from portfolio_tax_engine.domain.enums import Currency, PerfPeriod
from tests.support.builders import buy, dividend, fee, live_price, make_portfolio, run_events, sell

D = Decimal


@pytest.fixture
def engine(usd_ils_provider):
    engine = run_events(
        [make_portfolio("std_us")],
        usd_ils_provider,
        [
            buy("AAPL", date(2023, 1, 10), 10, 100),
            sell("AAPL", date(2023, 6, 1), 5, 120),
        ],
        dividends=[dividend("AAPL", date(2023, 3, 1), 1)],
    )
    engine.hydrate_live_prices({"NASDAQ:AAPL": live_price(130, change_pct_1d="0.3")})
    engine.calculate_snapshot()
    return engine


# =============================================================================
# Totals
# =============================================================================

class TestTotals:

    def test_value_and_gains(self, engine):
        summary = engine.get_global_summary(Currency.USD)
        assert summary.aum == D(650)
        assert summary.total_unrealized == D(150)
        assert summary.total_unrealized_gain_pct == D("0.3")
        assert summary.total_realized == D(100)
        assert summary.total_cost_of_sold == D(500)
        assert summary.total_realized_gain_pct == D("0.2")

    def test_dividends_gross_and_net(self, engine):
        summary = engine.get_global_summary(Currency.USD)
        assert summary.total_dividends == D(10)
        assert summary.total_dividends_net == D("7.5")
        assert summary.div_yield == D(10) / D(650)

    def test_total_return_and_taxes(self, engine):
        summary = engine.get_global_summary(Currency.USD)
        assert summary.total_return == D("257.5")
        # 25 on the sale, 2.5 on the dividend
        assert summary.total_tax_paid == D("27.5")
        assert summary.realized_gain_after_tax == D("82.5")
        assert summary.total_unrealized_tax == D("37.5")
        assert summary.value_after_tax == D("612.5")

    def test_display_currency_conversion(self, engine):
        summary = engine.get_global_summary("ILS")
        assert summary.aum == D("2275.0")
        assert summary.total_unrealized == D("525.0")
        assert summary.total_unrealized_tax == D("131.25")

    def test_agorot_display(self, engine):
        assert engine.get_global_summary(Currency.ILA).aum == D(227500)

    def test_day_change(self, engine):
        summary = engine.get_global_summary(Currency.USD)
        assert summary.total_day_change == D(150)
        assert summary.total_day_change_pct == D("0.3")
        assert not summary.total_day_change_is_incomplete

    def test_unknown_day_change_is_incomplete(self, engine):
        engine.get_holding("p1", "AAPL").day_change_pct = None
        summary = engine.get_global_summary(Currency.USD)
        assert summary.total_day_change == D(0)
        assert summary.total_day_change_is_incomplete

    def test_empty_engine(self, usd_ils_provider):
        summary = run_events([make_portfolio("std_us")], usd_ils_provider, []).get_global_summary()
        assert summary.aum == D(0)
        assert summary.total_unrealized_gain_pct == D(0)
        assert summary.div_yield == D(0)
        assert not summary.perf_incomplete[PerfPeriod.ONE_YEAR]

    def test_fees(self, usd_ils_provider):
        engine = run_events(
            [make_portfolio("std_us")],
            usd_ils_provider,
            [buy("AAPL", date(2023, 1, 10), 10, 100, commission=D(2)), fee("AAPL", date(2023, 2, 1), 4)],
        )
        summary = engine.get_global_summary(Currency.USD)
        assert summary.total_fees == D(2)
        assert summary.total_mgmt_fees == D(4)


# =============================================================================
# Weighted performance
# =============================================================================

def _two_holdings(provider, price_b=100, qty_c=0):
    transactions = [
        buy("AAA", date(2023, 1, 10), 6, 100),
        buy("BBB", date(2023, 1, 10), 4, 100),
    ]
    if qty_c:
        transactions.append(buy("CCC", date(2023, 1, 10), qty_c, 100))
    engine = run_events([make_portfolio("std_us")], provider, transactions)
    for holding in engine.holdings.values():
        holding.current_price = D(100)
    engine.get_holding("p1", "BBB").current_price = D(str(price_b))
    return engine


class TestWeightedPerformance:

    def test_market_value_weighted(self, usd_ils_provider):
        engine = _two_holdings(usd_ils_provider)
        engine.get_holding("p1", "AAA").perf = {PerfPeriod.ONE_YEAR: D("0.10")}
        engine.get_holding("p1", "BBB").perf = {PerfPeriod.ONE_YEAR: D("0.20")}
        engine.calculate_snapshot()
        summary = engine.get_global_summary(Currency.USD)
        assert summary.perf[PerfPeriod.ONE_YEAR] == D("0.14")
        assert not summary.perf_incomplete[PerfPeriod.ONE_YEAR]
        assert summary.perf_incomplete[PerfPeriod.ONE_MONTH]
        assert summary.perf[PerfPeriod.ONE_MONTH] == D(0)

    def test_incomplete_when_coverage_below_threshold(self, usd_ils_provider):
        # AUM 1100, only 900 of it reports the window
        engine = _two_holdings(usd_ils_provider, price_b=75, qty_c=2)
        engine.get_holding("p1", "AAA").perf = {PerfPeriod.ONE_YEAR: D("0.10")}
        engine.get_holding("p1", "BBB").perf = {PerfPeriod.ONE_YEAR: D("0.10")}
        engine.get_holding("p1", "CCC").current_price = D(100)
        engine.calculate_snapshot()
        summary = engine.get_global_summary(Currency.USD)
        assert summary.aum == D(1100)
        assert summary.perf[PerfPeriod.ONE_YEAR] == D("0.10")
        assert summary.perf_incomplete[PerfPeriod.ONE_YEAR]


# =============================================================================
# Vesting and filtering
# =============================================================================

class TestScope:

    def test_unvested_value_is_outside_aum(self, usd_ils_provider):
        engine = run_events(
            [make_portfolio("rsu")],
            usd_ils_provider,
            [
                buy("GOOG", date(2022, 1, 10), 10, 100, vest_date=date(2022, 6, 1)),
                buy("GOOG", date(2022, 1, 10), 10, 100, vest_date=date(2025, 1, 1)),
            ],
        )
        engine.hydrate_live_prices({"NASDAQ:GOOG": live_price(150)})
        engine.calculate_snapshot()
        summary = engine.get_global_summary(Currency.USD)
        assert summary.aum == D(1500)
        assert summary.total_unvested_value == D(1500)
        assert summary.total_unvested_gain == D(500)
        assert summary.total_unvested_gain_pct == D("0.5")

    def test_filter_by_portfolio(self, usd_ils_provider):
        engine = run_events(
            [make_portfolio("std_us", pid="p1"), make_portfolio("std_us", pid="p2")],
            usd_ils_provider,
            [
                buy("AAPL", date(2023, 1, 10), 10, 100, portfolio_id="p1"),
                buy("AAPL", date(2023, 1, 10), 3, 100, portfolio_id="p2"),
            ],
        )
        engine.hydrate_live_prices({"NASDAQ:AAPL": live_price(100)})
        engine.calculate_snapshot()
        assert engine.get_global_summary(Currency.USD).aum == D(1300)
        assert engine.get_global_summary(Currency.USD, filter_ids=["p2"]).aum == D(300)
        assert engine.get_global_summary(Currency.USD, filter_ids=[]).aum == D(0)

    def test_unknown_display_currency(self, engine):
        with pytest.raises(ValueError, match="Unknown currency"):
            engine.get_global_summary("XYZ")
