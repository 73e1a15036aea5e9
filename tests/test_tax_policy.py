# tests/test_tax_policy.py
from datetime import date
from decimal import Decimal

import pytest

from portfolio_tax_engine.domain.enums import Currency, DividendPolicy, MgmtFeeType, TaxPolicy
from portfolio_tax_engine.domain.models import FeeHistoryEntry, TaxHistoryEntry
from portfolio_tax_engine.engine.tax_policy import (
    TaxableGainInputs,
    apply_never_lose_rule,
    compute_real_taxable_gain,
    compute_taxable_gain,
    dividend_tax_rate,
    income_tax_for_sale,
    inflation_adjustment,
    reinvested_dividend_tax_rate,
)
from portfolio_tax_engine.utils.tax_utils import get_fee_rates_for_date, get_tax_rates_for_date, has_percentage_mgmt_fee
from tests.support.builders import make_portfolio

D = Decimal
RATES = {Currency.USD: D(1), Currency.ILS: D(4)}


# =============================================================================
# Never-lose rule
# =============================================================================

class TestNeverLoseRule:

    @pytest.mark.parametrize("nominal,real,expected", [
        (D(500), D(300), D(300)), # both gains, smaller one
        (D(300), D(500), D(300)),
        (D(100), D(-50), D(0)), # mixed signs are neutral
        (D(-100), D(50), D(0)),
        (D(-100), D(-300), D(-100)), # losses are reported nominally
        (D(-300), D(-100), D(-300)),
        (D(0), D(0), D(0)),
        (D(0), D(-5), D(0)),
    ])
    def test_quadrants(self, nominal, real, expected):
        assert apply_never_lose_rule(nominal, real) == expected


class TestInflationAdjustment:

    def test_inflation(self):
        assert inflation_adjustment(D(1000), D(100), D(105)) == D(50)

    def test_deflation_adds_nothing(self):
        assert inflation_adjustment(D(1000), D(100), D(95)) == D(0)

    def test_invalid_start(self):
        assert inflation_adjustment(D(1000), D(0), D(105)) == D(0)


# =============================================================================
# Real gain
# =============================================================================

class TestRealTaxableGain:

    def test_domestic_inflation_reduces_gain(self):
        # 100000 cost, 120000 proceeds, CPI 100 -> 105
        assert compute_real_taxable_gain(D(20000), D(0), D(100000), Currency.ILS, D(100), D(105), RATES) == D(15000)

    def test_domestic_agorot_instrument(self):
        assert compute_real_taxable_gain(D(200), D(0), D(1000), Currency.ILA, D(100), D(105), RATES) == D(150)

    def test_domestic_deflation_taxes_nominal(self):
        assert compute_real_taxable_gain(D(200), D(0), D(1000), Currency.ILS, D(100), D(95), RATES) == D(200)

    def test_foreign_uses_stock_currency_gain(self):
        # nominal ILS gain 520 driven partly by FX, real gain 80 USD at 4.0 = 320
        assert compute_real_taxable_gain(D(520), D(80), D(1400), Currency.USD, D(100), D(100), RATES) == D(320)

    def test_foreign_explicit_rate_wins(self):
        assert compute_real_taxable_gain(D(520), D(80), D(1400), Currency.USD, D(100), D(100), RATES, sc_to_ils_rate=D("3.5")) == D(280)

    def test_foreign_fx_loss_with_stock_gain_is_neutral(self):
        assert compute_real_taxable_gain(D(-100), D(50), D(1400), Currency.USD, D(100), D(100), RATES) == D(0)


# =============================================================================
# Policy dispatch
# =============================================================================

def _inputs(**overrides) -> TaxableGainInputs:
    values = dict(
        nominal_gain_ils=D(520), gain_sc=D(80), cost_ils=D(1400), stock_currency=Currency.USD,
        cpi_start=D(100), cpi_end=D(100), rate_set=RATES,
    )
    values.update(overrides)
    return TaxableGainInputs(**values)


class TestComputeTaxableGain:

    @pytest.mark.parametrize("policy,expected", [
        (TaxPolicy.TAX_FREE, D(0)),
        (TaxPolicy.REAL_GAIN, D(320)),
        (TaxPolicy.RSU_ACCOUNT, D(320)),
        (TaxPolicy.NOMINAL_GAIN, D(320)),
        (TaxPolicy.PENSION, D(520)),
    ])
    def test_each_policy(self, policy, expected):
        assert compute_taxable_gain(policy, _inputs()) == expected

    def test_nominal_gain_loss_is_a_credit(self):
        assert compute_taxable_gain(TaxPolicy.NOMINAL_GAIN, _inputs(nominal_gain_ils=D(100), gain_sc=D(-10))) == D(-40)

    def test_real_gain_never_lose(self):
        # FX gain but stock loss: neutral under REAL_GAIN, taxed nominally under PENSION
        inputs = _inputs(nominal_gain_ils=D(100), gain_sc=D(-10))
        assert compute_taxable_gain(TaxPolicy.REAL_GAIN, inputs) == D(0)
        assert compute_taxable_gain(TaxPolicy.PENSION, inputs) == D(100)

    def test_tax_on_base_taxes_market_value(self):
        assert compute_taxable_gain(TaxPolicy.PENSION, _inputs(tax_on_base=True, market_value_ils=D(5000))) == D(5000)

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="No taxable gain rule"):
            compute_taxable_gain("BOGUS", _inputs())


class TestIncomeAndDividendRates:

    def test_income_tax_only_for_rsu(self):
        assert income_tax_for_sale(TaxPolicy.RSU_ACCOUNT, D(1000), D("0.47")) == D(470)
        assert income_tax_for_sale(TaxPolicy.REAL_GAIN, D(1000), D("0.47")) == D(0)
        assert income_tax_for_sale(TaxPolicy.RSU_ACCOUNT, D(1000), D(0)) == D(0)

    @pytest.mark.parametrize("policy,is_reit,inc,expected", [
        (TaxPolicy.REAL_GAIN, False, D("0.47"), D("0.25")),
        (TaxPolicy.REAL_GAIN, True, D("0.47"), D("0.47")),
        (TaxPolicy.REAL_GAIN, True, D(0), D("0.25")),
        (TaxPolicy.TAX_FREE, True, D("0.47"), D(0)),
    ])
    def test_dividend_tax_rate(self, policy, is_reit, inc, expected):
        assert dividend_tax_rate(policy, D("0.25"), inc, is_reit) == expected

    @pytest.mark.parametrize("div_policy,expected", [
        (DividendPolicy.CASH_TAXED, D("0.25")),
        (DividendPolicy.ACCUMULATE_TAX_FREE, D(0)),
        (DividendPolicy.HYBRID_RSU, D(0)),
    ])
    def test_reinvested_rate(self, div_policy, expected):
        assert reinvested_dividend_tax_rate(div_policy, D("0.25")) == expected


# =============================================================================
# Dated rate schedules
# =============================================================================

class TestRateHistory:

    def test_tax_history_picks_latest_effective_entry(self):
        portfolio = make_portfolio(tax_history=[
            TaxHistoryEntry(start_date=date(2025, 1, 1), cgt=D("0.28"), inc_tax=D(0)),
            TaxHistoryEntry(start_date=date(2020, 1, 1), cgt=D("0.25"), inc_tax=D(0)),
        ])
        assert get_tax_rates_for_date(portfolio, date(2024, 6, 1)).cgt == D("0.25")
        assert get_tax_rates_for_date(portfolio, date(2025, 6, 1)).cgt == D("0.28")

    def test_tax_history_before_first_entry_uses_current(self):
        portfolio = make_portfolio(cgt=D("0.3"), tax_history=[
            TaxHistoryEntry(start_date=date(2020, 1, 1), cgt=D("0.25"), inc_tax=D(0)),
        ])
        assert get_tax_rates_for_date(portfolio, date(2019, 1, 1)).cgt == D("0.3")

    def test_fee_history_falls_back_for_commission_fields(self):
        portfolio = make_portfolio(comm_rate=D("0.001"), fee_history=[
            FeeHistoryEntry(start_date=date(2022, 1, 1), mgmt_val=D("0.01"), mgmt_type=MgmtFeeType.PERCENTAGE),
        ])
        rates = get_fee_rates_for_date(portfolio, date(2023, 1, 1))
        assert rates.mgmt_val == D("0.01")
        assert rates.comm_rate == D("0.001")

    def test_percentage_fee_detection(self):
        assert not has_percentage_mgmt_fee(make_portfolio(mgmt_val=D(0)))
        assert has_percentage_mgmt_fee(make_portfolio(fee_history=[
            FeeHistoryEntry(start_date=date(2022, 1, 1), mgmt_val=D("0.01"), mgmt_type=MgmtFeeType.PERCENTAGE),
        ]))
