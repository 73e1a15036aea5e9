# portfolio_tax_engine/domain/results.py
from dataclasses import dataclass, field, KW_ONLY
from datetime import date
from decimal import Decimal
from typing import Dict

from .enums import PerfPeriod
from .money import Money, MultiCurrencyValue

_ZERO = Decimal(0)


@dataclass
class DividendRecord:
    date: date
    gross_amount: Money # Stock currency, USD/ILS projections captured at the dividend date
    net_amount_pc: Decimal # Gross - fee - tax
    tax_amount_pc: Decimal
    fee_amount_pc: Decimal

    _: KW_ONLY
    is_taxable: bool = True
    units_held: Decimal = _ZERO
    price_per_unit: Decimal = _ZERO # Gross dividend per unit
    cashed_amount: Decimal = _ZERO # Net PC
    reinvested_amount: Decimal = _ZERO # Net PC
    is_reinvested: bool = False
    tax_cashed_pc: Decimal = _ZERO
    tax_reinvested_pc: Decimal = _ZERO
    fee_cashed_pc: Decimal = _ZERO
    fee_reinvested_pc: Decimal = _ZERO
    source: str = ""

    def __post_init__(self):
        if not isinstance(self.units_held, Decimal) or self.units_held < _ZERO:
            raise ValueError(f"DividendRecord.units_held must be a non-negative Decimal, got {self.units_held}")

    @property
    def gross_amount_pc(self) -> Decimal:
        return self.net_amount_pc + self.fee_amount_pc + self.tax_amount_pc


@dataclass
class FeeCharge:
    """A synthesized recurring management fee charge."""
    date: date
    amount_pc: Decimal
    quantity: Decimal
    price_sc: Decimal
    rate: Decimal # Periodic rate actually applied (annual rate / periods per year)


@dataclass
class PeriodGain:
    gain: MultiCurrencyValue
    initial_value: MultiCurrencyValue
    final_value: MultiCurrencyValue
    gain_pct: Decimal = _ZERO # Left for the caller: gain / initial in the wanted currency


@dataclass
class DashboardSummary:
    aum: Decimal = _ZERO
    total_unrealized: Decimal = _ZERO
    total_unrealized_gain_pct: Decimal = _ZERO
    total_realized: Decimal = _ZERO
    total_realized_gain_pct: Decimal = _ZERO
    total_cost_of_sold: Decimal = _ZERO
    total_dividends: Decimal = _ZERO # Gross of dividend tax, net of nothing else
    total_dividends_net: Decimal = _ZERO # Net of fees and dividend tax
    total_return: Decimal = _ZERO
    realized_gain_after_tax: Decimal = _ZERO
    total_tax_paid: Decimal = _ZERO
    total_unrealized_tax: Decimal = _ZERO
    value_after_tax: Decimal = _ZERO
    total_day_change: Decimal = _ZERO
    total_day_change_pct: Decimal = _ZERO
    total_day_change_is_incomplete: bool = False
    perf: Dict[PerfPeriod, Decimal] = field(default_factory=lambda: {p: _ZERO for p in PerfPeriod})
    perf_incomplete: Dict[PerfPeriod, bool] = field(default_factory=lambda: {p: False for p in PerfPeriod})
    div_yield: Decimal = _ZERO
    total_unvested_value: Decimal = _ZERO
    total_unvested_gain: Decimal = _ZERO
    total_unvested_gain_pct: Decimal = _ZERO
    total_fees: Decimal = _ZERO
    total_mgmt_fees: Decimal = _ZERO
