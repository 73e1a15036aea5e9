# portfolio_tax_engine/engine/fifo_manager.py
import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Tuple

from portfolio_tax_engine.domain.money import Money
import portfolio_tax_engine.config as global_config

logger = logging.getLogger(__name__)


@dataclass
class Lot:
    id: str
    ticker: str

    # Origin (buy)
    date: date
    qty: Decimal # Quantity of this lot, active or sold
    cost_per_unit: Money # Portfolio currency
    cost_total: Money # Portfolio currency
    fees_buy: Money # Portfolio currency, pro-rated on split
    cpi_at_buy: Decimal

    vesting_date: Optional[date] = None
    is_vested: bool = True
    original_txn_id: str = ""
    notes: Optional[str] = None

    # Realization, set once the lot (or a split chunk of it) is sold
    sold_date: Optional[date] = None
    sold_price_per_unit: Optional[Money] = None
    sold_fees: Optional[Money] = None
    realized_gain_net: Optional[Decimal] = None # Portfolio currency
    realized_tax: Optional[Decimal] = None # Capital gains tax in ILS
    realized_tax_pc: Optional[Decimal] = None
    realized_income_tax_pc: Optional[Decimal] = None
    total_realized_tax_pc: Optional[Decimal] = None
    realized_taxable_gain_ils: Optional[Decimal] = None

    # Valuation of active lots, refreshed by every snapshot
    unrealized_tax: Optional[Decimal] = None # Portfolio currency, may be negative
    adjusted_cost: Optional[Decimal] = None # Portfolio currency
    adjusted_cost_ils: Optional[Decimal] = None # Tax basis after the gain rules
    real_cost_ils: Optional[Decimal] = None # Pure inflation/currency adjusted cost
    unrealized_taxable_gain_ils: Optional[Decimal] = None
    current_value_ils: Optional[Decimal] = None
    adjustment_label: Optional[str] = None
    adjustment_pct: Optional[Decimal] = None

    def __post_init__(self):
        if not isinstance(self.qty, Decimal) or not self.qty.is_finite() or self.qty <= Decimal(0):
            raise ValueError(f"Lot quantity must be a positive finite Decimal: {self.qty} (type: {type(self.qty)})")
        if not isinstance(self.cpi_at_buy, Decimal):
            raise ValueError(f"Lot cpi_at_buy must be a Decimal: {self.cpi_at_buy}")

    @property
    def is_sold(self) -> bool:
        return self.sold_date is not None

    @property
    def is_active(self) -> bool:
        return self.sold_date is None and self.qty > 0

    @property
    def proceeds_pc(self) -> Decimal:
        """Sale proceeds in portfolio currency (zero for active lots)."""
        if self.sold_price_per_unit is None:
            return Decimal(0)
        return self.qty * self.sold_price_per_unit.amount


def allocate_pro_rata(total: Decimal, portion: Decimal, whole: Decimal) -> Decimal:
    """Share of `total` proportional to portion/whole. A zero whole allocates nothing."""
    if whole == 0:
        return Decimal(0)
    return (portion / whole) * total


def split_lot(lot: Lot, portion: Decimal, chunk_id: str) -> Lot:
    """
    Splits `portion` units off `lot` and returns them as a new lot.
    Cost and fee amounts, including every captured USD/ILS projection, are scaled by
    portion/qty and the original is decremented by exactly the chunk's amounts,
    so nothing is ever re-derived through a fresh conversion.
    """
    if not (Decimal(0) < portion < lot.qty):
        raise ValueError(f"Cannot split {portion} units off lot {lot.id} holding {lot.qty}.")

    ratio = portion / lot.qty
    chunk = replace(
        lot,
        id=chunk_id,
        qty=portion,
        cost_total=lot.cost_total.scaled(ratio),
        fees_buy=lot.fees_buy.scaled(ratio),
    )

    lot.qty = lot.qty - portion
    lot.cost_total = lot.cost_total.minus(chunk.cost_total)
    lot.fees_buy = lot.fees_buy.minus(chunk.fees_buy)
    return chunk


class FifoManager:
    """Owns the lot list of one holding and consumes it first-in-first-out."""

    def __init__(self, ticker: str):
        self.ticker = ticker
        self.lots: List[Lot] = []
        self._split_counter = 0

    def add_lot(self, lot: Lot) -> None:
        # Lots are never merged
        self.lots.append(lot)

    def active_lots(self) -> List[Lot]:
        return [lot for lot in self.lots if lot.is_active]

    def consume(self, quantity: Decimal, on_date: date) -> List[Tuple[Lot, Decimal]]:
        """
        Marks `quantity` units as sold on `on_date`, oldest buy first.
        Returns (sold lot, portion) pairs; partially consumed lots are split
        beforehand so each returned lot carries exactly `portion` units.
        Quantity beyond the open position is logged and ignored.
        """
        consumed: List[Tuple[Lot, Decimal]] = []
        remaining = quantity
        if remaining <= 0:
            return consumed

        for lot in sorted(self.active_lots(), key=lambda l: l.date): # sorted() is stable, same-day lots keep buy order
            if remaining <= 0:
                break
            portion = min(lot.qty, remaining)
            if portion < lot.qty:
                self._split_counter += 1
                target = split_lot(lot, portion, chunk_id=f"{lot.id}_sold_{self._split_counter}")
                self.lots.append(target)
            else:
                target = lot
            target.sold_date = on_date
            consumed.append((target, portion))
            remaining -= portion

        if remaining > global_config.QUANTITY_EPSILON:
            logger.warning(f"{self.ticker}: sell of {quantity} on {on_date} exceeds the open position by {remaining}. Excess ignored.")
        return consumed
