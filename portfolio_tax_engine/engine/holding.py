# portfolio_tax_engine/engine/holding.py
import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from portfolio_tax_engine.domain.enums import Currency, Exchange, InstrumentType, PerfPeriod, TaxPolicy, TransactionType
from portfolio_tax_engine.domain.models import Portfolio, Transaction
from portfolio_tax_engine.domain.money import Money, MultiCurrencyValue
from portfolio_tax_engine.domain.results import DividendRecord, FeeCharge, PeriodGain
from portfolio_tax_engine.engine.fifo_manager import FifoManager, Lot, allocate_pro_rata
from portfolio_tax_engine.engine.tax_policy import (
    DOMESTIC_CURRENCIES, TaxableGainInputs, apply_never_lose_rule, compute_taxable_gain, income_tax_for_sale,
)
from portfolio_tax_engine.utils.cpi import CpiSeries
from portfolio_tax_engine.utils.currency_converter import CurrencyConverter, RateSet, convert_currency, try_convert_currency
from portfolio_tax_engine.utils.tax_utils import get_tax_rates_for_date
import portfolio_tax_engine.config as global_config

if TYPE_CHECKING:
    from .performance import PriceHistory

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_AGOROT_PER_SHEKEL = Decimal(100)

HistoryProvider = Callable[[str], Optional["PriceHistory"]]


class Holding:
    """
    Per (portfolio, instrument) aggregate. Owns the lot list and the raw event
    history; every derived figure is rebuilt from the lots by `recalculate`.
    Stock currency (SC) is the instrument's quote currency, portfolio currency (PC)
    the portfolio's reporting currency.
    """

    def __init__(self,
                 portfolio_id: str,
                 ticker: str,
                 exchange: Exchange,
                 stock_currency: Currency,
                 portfolio_currency: Currency,
                 display_name: Optional[str] = None):
        self.id = f"{portfolio_id}_{ticker}"
        self.portfolio_id = portfolio_id
        self.ticker = ticker
        self.exchange = exchange
        self.stock_currency = stock_currency
        self.portfolio_currency = portfolio_currency

        self.fifo = FifoManager(ticker)
        self._transactions: List[Transaction] = []
        self._dividends: List[DividendRecord] = []
        self._fee_charges: List[FeeCharge] = []
        self._mgmt_fees_total = _ZERO # Lifetime, portfolio currency
        self.open_position_fees = _ZERO # Fees accrued since the position was last closed
        self._lot_seq = 0

        # Metadata
        self.display_name = display_name or ticker
        self.market_name: Optional[str] = None
        self.name_he: Optional[str] = None
        self.sector: Optional[str] = None
        self.instrument_type: Optional[InstrumentType] = None

        # Market data
        self.current_price = _ZERO # Stock currency
        self.day_change_pct: Optional[Decimal] = None # None until a live quote reports it
        self.perf: Dict[PerfPeriod, Decimal] = {}

        self.qty_vested = _ZERO
        self.qty_unvested = _ZERO
        self.qty_total = _ZERO

        # Snapshot figures
        self.market_value_vested = _ZERO # SC
        self.market_value_unvested = _ZERO # SC
        self.cost_basis_vested = _ZERO # PC
        self.unrealized_gain = _ZERO # PC, gross (market value - cost)
        self.realized_gain_net = _ZERO # PC, net of buy and sell fees
        self.proceeds_total = _ZERO # PC
        self.dividends_total = _ZERO # PC, net of fee and tax
        self.fees_total = _ZERO # PC, buy and sell commissions
        self.cost_of_sold_total = _ZERO # PC
        self.adjusted_cost: Optional[Decimal] = None # PC, tax basis of active lots
        self.real_cost_ils = _ZERO

        self.realized_capital_gains_tax = _ZERO # PC
        self.realized_capital_gains_tax_ils = _ZERO
        self.realized_income_tax = _ZERO # PC
        self.unrealized_tax_liability_ils = _ZERO # May be negative (credit)
        self.unrealized_taxable_gain_ils = _ZERO

    # --- Event application ---

    def add_transaction(self,
                        txn: Transaction,
                        converter: CurrencyConverter,
                        cpi_series: CpiSeries,
                        portfolio: Portfolio,
                        as_of: date) -> None:
        self._transactions.append(txn)
        rate_set = converter.rate_set(txn.date)
        cpi = cpi_series.get_cpi(txn.date)
        fee_pc = self._commission_in_pc(txn, rate_set)

        if txn.type == TransactionType.BUY:
            self._handle_buy(txn, rate_set, cpi, fee_pc, as_of)
        elif txn.type == TransactionType.SELL:
            self._handle_sell(txn, rate_set, cpi, fee_pc, portfolio)
        elif txn.type == TransactionType.DIVIDEND:
            logger.debug(f"{self.id}: DIVIDEND transaction on {txn.date} ignored, dividends arrive as events.")
        elif txn.type == TransactionType.FEE:
            self.add_mgmt_fee(fee_pc, txn.date)
            fee_qty = txn.qty if txn.qty > 0 else Decimal(1)
            self.add_mgmt_fee(convert_currency(txn.price * fee_qty, txn.currency or self.stock_currency,
                                               self.portfolio_currency, rate_set), txn.date)

    def add_dividend(self, record: DividendRecord) -> None:
        self._dividends.append(record)

    def add_mgmt_fee(self, amount_pc: Decimal, on_date: Optional[date] = None) -> None:
        self._mgmt_fees_total += amount_pc
        self.open_position_fees += amount_pc

    def add_fee_charge(self, charge: FeeCharge) -> None:
        self._fee_charges.append(charge)
        self.add_mgmt_fee(charge.amount_pc, charge.date)

    def _commission_in_pc(self, txn: Transaction, rate_set: Optional[RateSet]) -> Decimal:
        if not txn.commission:
            return _ZERO
        comm_currency = txn.currency or self.stock_currency
        return convert_currency(txn.commission, comm_currency, self.portfolio_currency, rate_set)

    def _handle_buy(self, txn: Transaction, rate_set: Optional[RateSet], cpi: Decimal, fee_pc: Decimal, as_of: date) -> None:
        qty = txn.qty
        if qty <= 0:
            logger.debug(f"{self.id}: zero-quantity BUY on {txn.date} ignored.")
            return

        price_pc = self._resolve_buy_price_pc(txn, rate_set)
        original_price = txn.original_price or txn.price
        rate_to_pc = price_pc / original_price if original_price > 0 else Decimal(1)

        cost_per_unit = Money(
            amount=price_pc,
            currency=self.portfolio_currency,
            rate_to_portfolio=rate_to_pc,
            val_usd=self._unit_value_usd(txn, price_pc, rate_set),
            val_ils=self._unit_value_ils(txn, price_pc, rate_set),
        )
        fees_buy = Money(
            amount=fee_pc,
            currency=self.portfolio_currency,
            val_usd=try_convert_currency(fee_pc, self.portfolio_currency, Currency.USD, rate_set),
            val_ils=try_convert_currency(fee_pc, self.portfolio_currency, Currency.ILS, rate_set),
        )

        self._lot_seq += 1
        lot = Lot(
            id=f"lot_{txn.numeric_id}" if txn.numeric_id is not None else f"lot_{self.id}_{self._lot_seq}",
            ticker=self.ticker,
            date=txn.date,
            qty=qty,
            cost_per_unit=cost_per_unit,
            cost_total=cost_per_unit.scaled(qty),
            fees_buy=fees_buy,
            cpi_at_buy=cpi,
            vesting_date=txn.vest_date,
            is_vested=txn.vest_date is None or txn.vest_date <= as_of,
            original_txn_id=str(txn.numeric_id) if txn.numeric_id is not None else "",
            notes=txn.comment,
        )
        self.fifo.add_lot(lot)
        self._recalculate_quantities()

    def _resolve_buy_price_pc(self, txn: Transaction, rate_set: Optional[RateSet]) -> Decimal:
        """
        Per-unit price in portfolio currency. A price already in the portfolio currency is
        used directly, then the loader's historical conversion, then a conversion at the
        transaction-date rates.
        """
        txn_currency = txn.currency
        source_currency = txn_currency or self.stock_currency
        if self.portfolio_currency == Currency.ILS:
            if txn_currency in DOMESTIC_CURRENCIES:
                return convert_currency(txn.price, txn_currency, Currency.ILS, rate_set)
            if txn.original_price_ila:
                return txn.original_price_ila / _AGOROT_PER_SHEKEL
        elif self.portfolio_currency == Currency.USD:
            if txn_currency == Currency.USD:
                return txn.price
            if txn.original_price_usd:
                return txn.original_price_usd
        return convert_currency(txn.price, source_currency, self.portfolio_currency, rate_set)

    def _unit_value_usd(self, txn: Transaction, price_pc: Decimal, rate_set: Optional[RateSet]) -> Optional[Decimal]:
        if txn.original_price_usd:
            return txn.original_price_usd
        if txn.currency == Currency.USD and txn.price:
            return txn.price
        return try_convert_currency(price_pc, self.portfolio_currency, Currency.USD, rate_set)

    def _unit_value_ils(self, txn: Transaction, price_pc: Decimal, rate_set: Optional[RateSet]) -> Optional[Decimal]:
        if self.portfolio_currency == Currency.ILS:
            return price_pc
        if txn.original_price_ila:
            return txn.original_price_ila / _AGOROT_PER_SHEKEL
        if txn.currency in DOMESTIC_CURRENCIES and txn.price:
            return try_convert_currency(txn.price, txn.currency, Currency.ILS, rate_set)
        return try_convert_currency(price_pc, self.portfolio_currency, Currency.ILS, rate_set)

    def _resolve_sell_price_pc(self, txn: Transaction, rate_set: Optional[RateSet]) -> Decimal:
        if self.portfolio_currency == Currency.ILS and txn.original_price_ila:
            return txn.original_price_ila / _AGOROT_PER_SHEKEL
        if self.portfolio_currency == Currency.USD and txn.original_price_usd:
            return txn.original_price_usd
        return convert_currency(txn.price, txn.currency or self.stock_currency, self.portfolio_currency, rate_set)

    def _handle_sell(self, txn: Transaction, rate_set: Optional[RateSet], cpi: Decimal, fee_pc: Decimal, portfolio: Portfolio) -> None:
        total_sell_qty = txn.qty
        if total_sell_qty <= 0:
            logger.debug(f"{self.id}: zero-quantity SELL on {txn.date} ignored.")
            return

        sell_price_pc = self._resolve_sell_price_pc(txn, rate_set)
        sell_price_sc = convert_currency(txn.price, txn.currency or self.stock_currency, self.stock_currency, rate_set)
        original_price = txn.original_price or txn.price
        tax_rates = get_tax_rates_for_date(portfolio, txn.date)

        consumed = self.fifo.consume(total_sell_qty, txn.date)
        # An oversell charges its whole commission to the units actually sold
        consumed_qty = sum((portion for _, portion in consumed), _ZERO)
        for lot, portion in consumed:
            sell_fee_pc = allocate_pro_rata(fee_pc, portion, consumed_qty)
            lot.sold_fees = Money(
                amount=sell_fee_pc,
                currency=self.portfolio_currency,
                val_usd=try_convert_currency(sell_fee_pc, self.portfolio_currency, Currency.USD, rate_set),
                val_ils=try_convert_currency(sell_fee_pc, self.portfolio_currency, Currency.ILS, rate_set),
            )
            lot.sold_price_per_unit = Money(
                amount=sell_price_pc,
                currency=self.portfolio_currency,
                rate_to_portfolio=sell_price_pc / original_price if original_price > 0 else Decimal(1),
            )

            proceeds_pc = portion * sell_price_pc
            proceeds_sc = portion * sell_price_sc
            cost_pc = lot.cost_total.amount
            buy_fee_pc = lot.fees_buy.amount
            lot.realized_gain_net = proceeds_pc - cost_pc - buy_fee_pc - sell_fee_pc

            # Tax authority view (ILS), preferring values captured at the historical dates
            if txn.original_price_ila:
                proceeds_ils = portion * (txn.original_price_ila / _AGOROT_PER_SHEKEL)
            else:
                proceeds_ils = convert_currency(proceeds_pc, self.portfolio_currency, Currency.ILS, rate_set)
            sell_fee_ils = convert_currency(sell_fee_pc, self.portfolio_currency, Currency.ILS, rate_set)
            cost_ils, buy_fee_ils = self._lot_cost_and_fees_ils(lot, rate_set)
            nominal_gain_ils = (proceeds_ils - sell_fee_ils) - (cost_ils + buy_fee_ils)

            sell_fee_sc = convert_currency(sell_fee_pc, self.portfolio_currency, self.stock_currency, rate_set)
            buy_fee_sc = convert_currency(buy_fee_pc, self.portfolio_currency, self.stock_currency, rate_set)
            gain_sc = proceeds_sc - sell_fee_sc - buy_fee_sc - self.cost_in_stock_currency(lot)

            # Rate implied by the sale itself, so the real gain uses the sale-date rate
            effective_rate = proceeds_ils / proceeds_sc if proceeds_sc > 0 and proceeds_ils > 0 else None

            taxable_ils = compute_taxable_gain(portfolio.tax_policy, TaxableGainInputs(
                nominal_gain_ils=nominal_gain_ils,
                gain_sc=gain_sc,
                cost_ils=cost_ils + buy_fee_ils,
                stock_currency=self.stock_currency,
                cpi_start=lot.cpi_at_buy,
                cpi_end=cpi,
                rate_set=rate_set,
                sc_to_ils_rate=effective_rate,
            ))
            lot.realized_taxable_gain_ils = taxable_ils

            tax_ils = max(_ZERO, taxable_ils) * tax_rates.cgt
            lot.realized_tax = tax_ils
            lot.realized_tax_pc = convert_currency(tax_ils, Currency.ILS, self.portfolio_currency, rate_set)
            lot.realized_income_tax_pc = income_tax_for_sale(portfolio.tax_policy, cost_pc, tax_rates.inc_tax)
            lot.total_realized_tax_pc = lot.realized_tax_pc + lot.realized_income_tax_pc

        self._recalculate_quantities()
        if self.qty_total <= global_config.QUANTITY_EPSILON:
            if self.open_position_fees:
                logger.debug(f"{self.id}: position closed on {txn.date}, resetting {self.open_position_fees} unallocated fees.")
            self.open_position_fees = _ZERO

    # --- Helpers shared by sale and valuation ---

    def cost_in_stock_currency(self, lot: Lot) -> Decimal:
        """Lot cost in stock currency from the captured projections, else via the buy-time rate."""
        if self.stock_currency == Currency.USD and lot.cost_total.val_usd is not None:
            return lot.cost_total.val_usd
        if self.stock_currency == Currency.ILS and lot.cost_total.val_ils is not None:
            return lot.cost_total.val_ils
        rate = lot.cost_total.rate_to_portfolio or Decimal(1)
        return lot.cost_total.amount / rate

    def _lot_cost_and_fees_ils(self, lot: Lot, rate_set: Optional[RateSet]) -> Tuple[Decimal, Decimal]:
        cost_ils = lot.cost_total.val_ils
        if cost_ils is None:
            cost_ils = convert_currency(lot.cost_total.amount, lot.cost_total.currency, Currency.ILS, rate_set)
        fees_ils = lot.fees_buy.val_ils
        if fees_ils is None:
            fees_ils = convert_currency(lot.fees_buy.amount, lot.fees_buy.currency, Currency.ILS, rate_set)
        return cost_ils, fees_ils

    def _recalculate_quantities(self) -> None:
        active = self.active_lots
        self.qty_vested = sum((l.qty for l in active if l.is_vested), _ZERO)
        self.qty_unvested = sum((l.qty for l in active if not l.is_vested), _ZERO)
        self.qty_total = self.qty_vested + self.qty_unvested

    # --- Snapshot ---

    def recalculate(self, converter: CurrencyConverter, cpi_series: CpiSeries,
                    portfolio: Optional[Portfolio], as_of: date) -> None:
        """Rebuilds every derived figure from the lot list. Safe to call repeatedly."""
        rate_set = converter.rate_set()
        active = self.active_lots
        realized = self.realized_lots

        self._recalculate_quantities()
        self.market_value_vested = self.qty_vested * self.current_price
        self.market_value_unvested = self.qty_unvested * self.current_price
        self.cost_basis_vested = sum((l.cost_total.amount for l in active if l.is_vested), _ZERO)

        self.realized_gain_net = sum((l.realized_gain_net or _ZERO for l in realized), _ZERO)
        self.proceeds_total = sum((l.proceeds_pc for l in realized), _ZERO)
        self.cost_of_sold_total = sum((l.cost_total.amount for l in realized), _ZERO)
        active_buy_fees = sum((l.fees_buy.amount for l in active), _ZERO)
        realized_fees = sum((l.fees_buy.amount + (l.sold_fees.amount if l.sold_fees else _ZERO) for l in realized), _ZERO)
        self.fees_total = active_buy_fees + realized_fees
        self.dividends_total = sum((d.net_amount_pc for d in self._dividends), _ZERO)

        mv_vested_pc = convert_currency(self.market_value_vested, self.stock_currency, self.portfolio_currency, rate_set)
        self.unrealized_gain = mv_vested_pc - self.cost_basis_vested

        cpi_now = cpi_series.get_cpi(as_of)
        self._recalculate_adjusted_costs(active, rate_set, cpi_now)

        self.realized_capital_gains_tax = sum((l.realized_tax_pc or _ZERO for l in realized), _ZERO)
        self.realized_capital_gains_tax_ils = sum((l.realized_tax or _ZERO for l in realized), _ZERO)
        self.realized_income_tax = sum((l.realized_income_tax_pc or _ZERO for l in realized), _ZERO)

        if portfolio is None:
            logger.warning(f"{self.id}: portfolio {self.portfolio_id} not found, unrealized tax not computed.")
            return
        self._recalculate_unrealized_tax(active, portfolio, rate_set, cpi_now, as_of)

    def _recalculate_adjusted_costs(self, active: List[Lot], rate_set: Optional[RateSet], cpi_now: Decimal) -> None:
        total_adjusted_pc = _ZERO
        total_real_cost_ils = _ZERO
        price_ils = convert_currency(self.current_price, self.stock_currency, Currency.ILS, rate_set)

        for lot in active:
            nominal_cost_ils, _ = self._lot_cost_and_fees_ils(lot, rate_set)
            value_ils = lot.qty * price_ils
            lot.current_value_ils = value_ils

            if self.stock_currency in DOMESTIC_CURRENCIES:
                cpi_ratio = cpi_now / lot.cpi_at_buy if lot.cpi_at_buy > 0 else Decimal(1)
                real_cost_ils = nominal_cost_ils * cpi_ratio
                basis_ils = nominal_cost_ils * max(Decimal(1), cpi_ratio)
                lot.adjustment_label = "Change in CPI"
                lot.adjustment_pct = cpi_ratio - Decimal(1)
            else:
                real_cost_ils = convert_currency(self.cost_in_stock_currency(lot), self.stock_currency, Currency.ILS, rate_set)
                gain_nominal = value_ils - nominal_cost_ils
                gain_real = value_ils - real_cost_ils
                allowable_gain = apply_never_lose_rule(gain_nominal, gain_real)
                basis_ils = value_ils - allowable_gain
                lot.adjustment_label = f"Tax Rule: {self._rule_label(gain_nominal, gain_real)}"
                lot.adjustment_pct = basis_ils / nominal_cost_ils - Decimal(1) if nominal_cost_ils else _ZERO

            lot.real_cost_ils = real_cost_ils
            lot.adjusted_cost_ils = basis_ils
            lot.adjusted_cost = convert_currency(basis_ils, Currency.ILS, self.portfolio_currency, rate_set)
            total_adjusted_pc += lot.adjusted_cost
            total_real_cost_ils += real_cost_ils

        self.adjusted_cost = total_adjusted_pc if active else None
        self.real_cost_ils = total_real_cost_ils

    @staticmethod
    def _rule_label(gain_nominal: Decimal, gain_real: Decimal) -> str:
        if (gain_nominal > 0 and gain_real < 0) or (gain_nominal < 0 and gain_real > 0):
            return "Mixed (Exempt)"
        if gain_nominal >= 0 and gain_real >= 0:
            return "Lower Nominal Gain" if gain_nominal <= gain_real else "Lower Real Gain"
        return "Nominal Loss"

    def _recalculate_unrealized_tax(self, active: List[Lot], portfolio: Portfolio,
                                    rate_set: Optional[RateSet], cpi_now: Decimal, as_of: date) -> None:
        tax_rates = get_tax_rates_for_date(portfolio, as_of)
        cgt, inc_tax = tax_rates.cgt, tax_rates.inc_tax
        if portfolio.tax_policy == TaxPolicy.TAX_FREE:
            cgt, inc_tax = _ZERO, _ZERO

        price_ils = convert_currency(self.current_price, self.stock_currency, Currency.ILS, rate_set)
        total_taxable_ils = _ZERO
        total_liability_ils = _ZERO

        for lot in active:
            if not lot.is_vested:
                # Unvested grants carry no current liability
                lot.unrealized_tax = _ZERO
                lot.unrealized_taxable_gain_ils = _ZERO
                continue

            mv_ils = lot.qty * price_ils
            mv_sc = lot.qty * self.current_price
            cost_ils, fees_ils = self._lot_cost_and_fees_ils(lot, rate_set)
            fees_sc = convert_currency(lot.fees_buy.amount, lot.fees_buy.currency, self.stock_currency, rate_set)
            gain_sc = mv_sc - self.cost_in_stock_currency(lot) - fees_sc

            taxable_ils = compute_taxable_gain(portfolio.tax_policy, TaxableGainInputs(
                nominal_gain_ils=mv_ils - (cost_ils + fees_ils),
                gain_sc=gain_sc,
                cost_ils=cost_ils + fees_ils,
                stock_currency=self.stock_currency,
                cpi_start=lot.cpi_at_buy,
                cpi_end=cpi_now,
                rate_set=rate_set,
                tax_on_base=portfolio.tax_on_base,
                market_value_ils=mv_ils,
            ))
            liability_ils = taxable_ils * cgt + income_tax_for_sale(portfolio.tax_policy, cost_ils + fees_ils, inc_tax)

            lot.unrealized_taxable_gain_ils = taxable_ils
            lot.unrealized_tax = convert_currency(liability_ils, Currency.ILS, self.portfolio_currency, rate_set)
            total_taxable_ils += taxable_ils
            total_liability_ils += liability_ils

        self.unrealized_taxable_gain_ils = total_taxable_ils
        self.unrealized_tax_liability_ils = total_liability_ils

    # --- Quantity history ---

    def quantity_breakdown_at(self, on_date: date) -> Tuple[Decimal, Decimal]:
        """
        (vested, unvested) quantity held on `on_date`, replayed from the raw transactions.
        Sells are taken from vested units. Both figures are clamped at zero.
        """
        vested = _ZERO
        unvested = _ZERO
        for txn in self._transactions:
            if txn.date > on_date:
                continue
            if txn.type == TransactionType.BUY:
                if txn.vest_date is None or txn.vest_date <= on_date:
                    vested += txn.qty
                else:
                    unvested += txn.qty
            elif txn.type == TransactionType.SELL:
                vested -= txn.qty
        return max(_ZERO, vested), max(_ZERO, unvested)

    def quantity_at(self, on_date: date) -> Decimal:
        vested, unvested = self.quantity_breakdown_at(on_date)
        return vested + unvested

    # --- Period return ---

    def generate_gain_for_period(self,
                                 start_date: date,
                                 history_provider: HistoryProvider,
                                 converter: CurrencyConverter,
                                 initial_rate_set: Optional[RateSet] = None) -> PeriodGain:
        """
        Simple (not time-weighted) return of the vested lots over [start_date, now].
        Initial value is cost for lots bought in the period, else quantity times the
        historical price at start_date. Final value is sale proceeds for lots sold in the
        period, else quantity times the current price. Dividends from start_date on are
        added to final value and gain. The percentage is left to the caller.
        """
        current_rates = converter.rate_set()
        start_rates = initial_rate_set if initial_rate_set is not None else current_rates
        initial_value = MultiCurrencyValue.zero()
        final_value = MultiCurrencyValue.zero()
        price_at_start: Optional[Decimal] = None

        for lot in self.fifo.lots:
            if not lot.is_vested:
                continue
            if lot.sold_date is not None and lot.sold_date < start_date:
                continue

            if lot.date >= start_date:
                usd = lot.cost_total.val_usd
                if usd is None:
                    usd = convert_currency(lot.cost_total.amount, lot.cost_total.currency, Currency.USD, current_rates)
                ils = lot.cost_total.val_ils
                if ils is None:
                    ils = convert_currency(lot.cost_total.amount, lot.cost_total.currency, Currency.ILS, current_rates)
                lot_initial = MultiCurrencyValue(usd, ils)
            else:
                if price_at_start is None:
                    history = history_provider(self.ticker)
                    price_at_start = history.price_at(start_date) if history is not None else _ZERO
                if price_at_start <= 0:
                    continue # No history to value the lot at the start
                value_sc = lot.qty * price_at_start
                lot_initial = MultiCurrencyValue(
                    convert_currency(value_sc, self.stock_currency, Currency.USD, start_rates),
                    convert_currency(value_sc, self.stock_currency, Currency.ILS, start_rates),
                )
            initial_value = initial_value + lot_initial

            if lot.sold_date is not None:
                proceeds_pc = lot.proceeds_pc
                lot_final = MultiCurrencyValue(
                    convert_currency(proceeds_pc, self.portfolio_currency, Currency.USD, current_rates),
                    convert_currency(proceeds_pc, self.portfolio_currency, Currency.ILS, current_rates),
                )
            else:
                value_sc = lot.qty * self.current_price
                lot_final = MultiCurrencyValue(
                    convert_currency(value_sc, self.stock_currency, Currency.USD, current_rates),
                    convert_currency(value_sc, self.stock_currency, Currency.ILS, current_rates),
                )
            final_value = final_value + lot_final

        gain = final_value - initial_value
        for dividend in self._dividends:
            if dividend.date >= start_date:
                dividend_value = MultiCurrencyValue(
                    convert_currency(dividend.net_amount_pc, self.portfolio_currency, Currency.USD, current_rates),
                    convert_currency(dividend.net_amount_pc, self.portfolio_currency, Currency.ILS, current_rates),
                )
                final_value = final_value + dividend_value
                gain = gain + dividend_value

        return PeriodGain(gain=gain, initial_value=initial_value, final_value=final_value)

    # --- Views ---

    @property
    def lots(self) -> List[Lot]:
        return list(self.fifo.lots)

    @property
    def transactions(self) -> List[Transaction]:
        return list(self._transactions)

    @property
    def dividends(self) -> List[DividendRecord]:
        return list(self._dividends)

    @property
    def fee_charges(self) -> List[FeeCharge]:
        return list(self._fee_charges)

    @property
    def active_lots(self) -> List[Lot]:
        return self.fifo.active_lots()

    @property
    def vested_lots(self) -> List[Lot]:
        return [l for l in self.fifo.lots if l.is_active and l.is_vested]

    @property
    def realized_lots(self) -> List[Lot]:
        return [l for l in self.fifo.lots if l.is_sold]

    @property
    def market_value_total(self) -> Decimal:
        return self.market_value_vested + self.market_value_unvested

    @property
    def unrealized_gain_pct(self) -> Decimal:
        if self.cost_basis_vested == 0:
            return _ZERO
        return self.unrealized_gain / self.cost_basis_vested

    @property
    def total_tax_paid_pc(self) -> Decimal:
        """Realized capital gains tax, income tax on sales, and dividend tax."""
        sales_tax = sum((l.realized_tax_pc or _ZERO for l in self.realized_lots), _ZERO)
        income_tax = sum((l.realized_income_tax_pc or _ZERO for l in self.realized_lots), _ZERO)
        dividend_tax = sum((d.tax_amount_pc for d in self._dividends), _ZERO)
        return sales_tax + income_tax + dividend_tax

    @property
    def mgmt_fees_total(self) -> Decimal:
        return self._mgmt_fees_total

    @property
    def name(self) -> str:
        return self.market_name or self.display_name

    def __repr__(self) -> str:
        return f"Holding({self.id}, {self.exchange.value}, qty={self.qty_total}, sc={self.stock_currency.value}, pc={self.portfolio_currency.value})"
