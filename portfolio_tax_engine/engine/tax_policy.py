# portfolio_tax_engine/engine/tax_policy.py
"""
Taxable gain under each portfolio tax regime.

All functions are pure. Gains and taxable amounts are in the tax currency (ILS)
unless the name says otherwise; `gain_sc` is a gain in the instrument's own currency.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Optional

from portfolio_tax_engine.domain.enums import Currency, DividendPolicy, TaxPolicy
from portfolio_tax_engine.utils.currency_converter import RateSet, convert_currency

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)

DOMESTIC_CURRENCIES = (Currency.ILS, Currency.ILA)


def apply_never_lose_rule(nominal: Decimal, real: Decimal) -> Decimal:
    """
    Composes nominal and real gain into the taxable gain.
    Mixed signs are tax neutral (0), two gains are taxed on the smaller one,
    and losses are always reported nominally.
    """
    if (nominal > 0 and real < 0) or (nominal < 0 and real > 0):
        return _ZERO
    if nominal >= 0 and real >= 0:
        return min(nominal, real)
    return nominal


def inflation_adjustment(cost: Decimal, cpi_start: Decimal, cpi_end: Decimal) -> Decimal:
    """Inflation share of `cost` between two CPI readings. Deflation never adds taxable gain."""
    if cpi_start <= 0:
        return _ZERO
    return max(_ZERO, cost * (cpi_end / cpi_start - Decimal(1)))


def compute_real_taxable_gain(nominal_gain_ils: Decimal,
                              gain_sc: Decimal,
                              cost_ils: Decimal,
                              stock_currency: Currency,
                              cpi_start: Decimal,
                              cpi_end: Decimal,
                              rate_set: Optional[RateSet],
                              sc_to_ils_rate: Optional[Decimal] = None) -> Decimal:
    """
    Domestic instruments: real gain is the nominal gain less the inflation adjustment of cost.
    Foreign instruments: real gain is the gain in the instrument's currency expressed in ILS,
    at `sc_to_ils_rate` when given (e.g. the effective rate of a sale), else via `rate_set`.
    The never-lose rule then picks the taxable figure.
    """
    if stock_currency in DOMESTIC_CURRENCIES:
        real_gain = nominal_gain_ils - inflation_adjustment(cost_ils, cpi_start, cpi_end)
    else:
        real_gain = _gain_sc_in_ils(gain_sc, stock_currency, rate_set, sc_to_ils_rate)
    return apply_never_lose_rule(nominal_gain_ils, real_gain)


def _gain_sc_in_ils(gain_sc: Decimal, stock_currency: Currency,
                    rate_set: Optional[RateSet], sc_to_ils_rate: Optional[Decimal]) -> Decimal:
    if sc_to_ils_rate is not None and sc_to_ils_rate > 0:
        return gain_sc * sc_to_ils_rate
    return convert_currency(gain_sc, stock_currency, Currency.ILS, rate_set)


@dataclass(frozen=True)
class TaxableGainInputs:
    nominal_gain_ils: Decimal
    gain_sc: Decimal
    cost_ils: Decimal
    stock_currency: Currency
    cpi_start: Decimal
    cpi_end: Decimal
    rate_set: Optional[RateSet]
    sc_to_ils_rate: Optional[Decimal] = None
    # Unrealized valuation only: tax the whole market value instead of the gain
    tax_on_base: bool = False
    market_value_ils: Decimal = _ZERO


def _tax_free(inputs: TaxableGainInputs) -> Decimal:
    return _ZERO


def _real_gain(inputs: TaxableGainInputs) -> Decimal:
    return compute_real_taxable_gain(
        inputs.nominal_gain_ils, inputs.gain_sc, inputs.cost_ils, inputs.stock_currency,
        inputs.cpi_start, inputs.cpi_end, inputs.rate_set, inputs.sc_to_ils_rate,
    )


def _nominal_gain(inputs: TaxableGainInputs) -> Decimal:
    # FX movement against the portfolio currency is ignored, a negative result is a credit
    return _gain_sc_in_ils(inputs.gain_sc, inputs.stock_currency, inputs.rate_set, inputs.sc_to_ils_rate)


def _pension(inputs: TaxableGainInputs) -> Decimal:
    return inputs.nominal_gain_ils


_TAXABLE_GAIN_HANDLERS: Dict[TaxPolicy, Callable[[TaxableGainInputs], Decimal]] = {
    TaxPolicy.TAX_FREE: _tax_free,
    TaxPolicy.REAL_GAIN: _real_gain,
    TaxPolicy.RSU_ACCOUNT: _real_gain,
    TaxPolicy.NOMINAL_GAIN: _nominal_gain,
    TaxPolicy.PENSION: _pension,
}


def compute_taxable_gain(policy: TaxPolicy, inputs: TaxableGainInputs) -> Decimal:
    handler = _TAXABLE_GAIN_HANDLERS.get(policy)
    if handler is None:
        raise ValueError(f"No taxable gain rule for tax policy {policy!r}.")
    if inputs.tax_on_base:
        return inputs.market_value_ils
    return handler(inputs)


def income_tax_for_sale(policy: TaxPolicy, cost_pc: Decimal, income_tax_rate: Decimal) -> Decimal:
    """Income tax on the grant value of the sold portion. Only RSU accounts levy it."""
    if policy != TaxPolicy.RSU_ACCOUNT or income_tax_rate <= 0:
        return _ZERO
    return cost_pc * income_tax_rate


def dividend_tax_rate(policy: TaxPolicy, cgt: Decimal, income_tax_rate: Decimal, is_reit: bool) -> Decimal:
    if policy == TaxPolicy.TAX_FREE:
        return _ZERO
    if is_reit and income_tax_rate > 0:
        return income_tax_rate
    return cgt


def reinvested_dividend_tax_rate(div_policy: DividendPolicy, base_rate: Decimal) -> Decimal:
    if div_policy in (DividendPolicy.ACCUMULATE_TAX_FREE, DividendPolicy.HYBRID_RSU):
        return _ZERO
    return base_rate
