# portfolio_tax_engine/utils/tax_utils.py
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence, TypeVar

from portfolio_tax_engine.domain.enums import FeeFrequency, MgmtFeeType
from portfolio_tax_engine.domain.models import FeeHistoryEntry, Portfolio, TaxHistoryEntry

_Entry = TypeVar("_Entry", FeeHistoryEntry, TaxHistoryEntry)


@dataclass(frozen=True)
class TaxRates:
    cgt: Decimal
    inc_tax: Decimal


@dataclass(frozen=True)
class FeeRates:
    mgmt_val: Decimal
    mgmt_type: MgmtFeeType
    mgmt_freq: FeeFrequency
    div_comm_rate: Decimal
    comm_rate: Decimal
    comm_min: Decimal
    comm_max: Decimal


def _effective_entry(history: Sequence[_Entry], on_date: date) -> Optional[_Entry]:
    """Latest entry whose start_date is on or before on_date."""
    effective = None
    for entry in sorted(history, key=lambda e: e.start_date):
        if entry.start_date <= on_date:
            effective = entry
        else:
            break
    return effective


def get_tax_rates_for_date(portfolio: Portfolio, on_date: date) -> TaxRates:
    """
    Capital gains and income tax rates in force on `on_date`.
    Falls back to the portfolio's current rates when no history entry applies.
    """
    entry = _effective_entry(portfolio.tax_history, on_date)
    if entry is None:
        return TaxRates(cgt=portfolio.cgt, inc_tax=portfolio.inc_tax)
    return TaxRates(cgt=entry.cgt, inc_tax=entry.inc_tax)


def get_fee_rates_for_date(portfolio: Portfolio, on_date: date) -> FeeRates:
    """
    Fee schedule in force on `on_date`. Commission fields missing from the
    effective history entry fall back to the portfolio's current values.
    """
    entry = _effective_entry(portfolio.fee_history, on_date)
    if entry is None:
        return FeeRates(
            mgmt_val=portfolio.mgmt_val, mgmt_type=portfolio.mgmt_type, mgmt_freq=portfolio.mgmt_freq,
            div_comm_rate=portfolio.div_comm_rate,
            comm_rate=portfolio.comm_rate, comm_min=portfolio.comm_min, comm_max=portfolio.comm_max,
        )
    return FeeRates(
        mgmt_val=entry.mgmt_val, mgmt_type=entry.mgmt_type, mgmt_freq=entry.mgmt_freq,
        div_comm_rate=entry.div_comm_rate,
        comm_rate=entry.comm_rate if entry.comm_rate is not None else portfolio.comm_rate,
        comm_min=entry.comm_min if entry.comm_min is not None else portfolio.comm_min,
        comm_max=entry.comm_max if entry.comm_max is not None else portfolio.comm_max,
    )


def has_percentage_mgmt_fee(portfolio: Portfolio) -> bool:
    """True when the current schedule or any history entry charges a positive percentage fee."""
    if portfolio.mgmt_type == MgmtFeeType.PERCENTAGE and portfolio.mgmt_val > 0:
        return True
    return any(e.mgmt_type == MgmtFeeType.PERCENTAGE and e.mgmt_val > 0 for e in portfolio.fee_history)
