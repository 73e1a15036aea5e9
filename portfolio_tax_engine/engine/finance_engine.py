# portfolio_tax_engine/engine/finance_engine.py
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from portfolio_tax_engine.domain.enums import Currency, EventKind, Exchange, PerfPeriod
from portfolio_tax_engine.domain.models import DividendEvent, LivePrice, Portfolio, Transaction
from portfolio_tax_engine.domain.results import DashboardSummary, FeeCharge
from portfolio_tax_engine.engine.event_processors.base_processor import EventProcessor
from portfolio_tax_engine.engine.event_processors.dividend_processor import DividendProcessor
from portfolio_tax_engine.engine.event_processors.transaction_processor import TransactionProcessor
from portfolio_tax_engine.engine.holding import Holding
from portfolio_tax_engine.engine.performance import PriceHistory, compute_personal_performance
from portfolio_tax_engine.engine.recurring_fees import PriceProvider, generate_recurring_fees
from portfolio_tax_engine.engine.summary import build_global_summary
from portfolio_tax_engine.utils.cpi import CpiSeries
from portfolio_tax_engine.utils.currency_converter import CurrencyConverter, UnknownCurrencyError, normalize_currency
from portfolio_tax_engine.utils.exchange_rate_provider import ExchangeRateProvider, SnapshotExchangeRateProvider
from portfolio_tax_engine.utils.sorting_utils import sort_events

logger = logging.getLogger(__name__)


def price_key(exchange: Exchange, ticker: str) -> str:
    return f"{exchange.value}:{ticker}"


class FinanceEngine:
    """
    Builds holdings from the full event history and derives their valuation.

    Typical run: process_events -> hydrate_live_prices -> generate_recurring_fees ->
    calculate_snapshot -> get_global_summary. The snapshot step is idempotent and may be
    repeated after any price update. A fresh engine is built per refresh.
    """

    def __init__(self,
                 portfolios: Iterable[Portfolio],
                 exchange_rates: Union[ExchangeRateProvider, Mapping[str, Mapping[str, Any]]],
                 cpi_series: Optional[CpiSeries] = None,
                 as_of: Optional[date] = None):
        self.portfolios: Dict[str, Portfolio] = {p.id: p for p in portfolios}
        if isinstance(exchange_rates, ExchangeRateProvider):
            self.rate_provider = exchange_rates
        else:
            self.rate_provider = SnapshotExchangeRateProvider.from_mapping(exchange_rates)
        self.converter = CurrencyConverter(self.rate_provider)
        self.cpi_series = cpi_series if cpi_series is not None else CpiSeries()
        self.as_of = as_of or date.today()

        self.holdings: Dict[str, Holding] = {}
        self.price_history: Dict[str, PriceHistory] = {} # Keyed "EXCHANGE:TICKER"
        self.processors: Dict[EventKind, EventProcessor] = {
            EventKind.TXN: TransactionProcessor(),
            EventKind.DIV: DividendProcessor(),
        }
        self._recurring_fees_generated = False

        if not self.cpi_series:
            logger.info("No CPI series supplied. Domestic cost basis will not be inflation adjusted.")

    # --- Pipeline ---

    def process_events(self, transactions: Iterable[Transaction], dividends: Iterable[DividendEvent] = ()) -> None:
        events = sort_events(transactions, dividends)
        logger.info(f"Processing {len(events)} events across {len(self.portfolios)} portfolios...")
        for entry in events:
            processor = self.processors.get(entry.kind)
            if processor is None:
                logger.error(f"No processor registered for event kind {entry.kind}. Skipping.")
                continue
            processor.process(entry.event, self)
        logger.info(f"Event processing complete. {len(self.holdings)} holdings.")
        self.calculate_snapshot()

    def calculate_snapshot(self) -> None:
        for holding in self.holdings.values():
            holding.recalculate(self.converter, self.cpi_series, self.portfolios.get(holding.portfolio_id), self.as_of)

    def hydrate_live_prices(self, price_map: Mapping[str, LivePrice]) -> None:
        """
        Applies live quotes keyed "EXCHANGE:TICKER": current price in the stock's currency,
        day change, personal performance per window (the quote's market move as fallback),
        metadata and price history.
        """
        for key, live in price_map.items():
            if live.historical:
                self.price_history[key] = PriceHistory(live.historical)

        missing = 0
        for holding in self.holdings.values():
            live = price_map.get(price_key(holding.exchange, holding.ticker))
            if live is None:
                missing += 1
                continue
            quote_currency = self._quote_currency(holding, live)
            holding.current_price = self.converter.convert(live.price, quote_currency, holding.stock_currency)
            holding.day_change_pct = live.change_pct_1d
            holding.market_name = live.name or holding.market_name
            holding.name_he = live.name_he or holding.name_he
            holding.sector = live.sector or holding.sector
            holding.instrument_type = live.type or holding.instrument_type

        # Personal performance needs every holding's current price
        for holding in self.holdings.values():
            live = price_map.get(price_key(holding.exchange, holding.ticker))
            if live is None:
                continue
            history_provider = self._history_provider(holding.exchange)
            for period in PerfPeriod:
                pct = compute_personal_performance(
                    holding, period, history_provider, self.converter, self.as_of, fallback_pct=live.perf_for(period.value),
                )
                if pct is not None:
                    holding.perf[period] = pct

        if missing:
            logger.warning(f"No live price for {missing} of {len(self.holdings)} holdings.")

    def _quote_currency(self, holding: Holding, live: LivePrice) -> Currency:
        # TASE quotes are in agorot, including those labelled ILS
        if holding.exchange == Exchange.TASE:
            if not live.currency:
                return Currency.ILA
            try:
                currency = normalize_currency(live.currency)
            except UnknownCurrencyError:
                logger.warning(f"{holding.id}: unknown quote currency '{live.currency}', assuming agorot.")
                return Currency.ILA
            return Currency.ILA if currency == Currency.ILS else currency
        if not live.currency:
            return holding.stock_currency
        try:
            return normalize_currency(live.currency)
        except UnknownCurrencyError:
            logger.warning(f"{holding.id}: unknown quote currency '{live.currency}', assuming {holding.stock_currency.value}.")
            return holding.stock_currency

    def _history_provider(self, exchange: Exchange):
        return lambda ticker: self.price_history.get(price_key(exchange, ticker))

    def historical_price(self, ticker: str, exchange: Exchange, on_date: date) -> Optional[Decimal]:
        history = self.price_history.get(price_key(exchange, ticker))
        if not history:
            return None
        return history.price_at(on_date)

    def generate_recurring_fees(self, price_provider: Optional[PriceProvider] = None) -> List[FeeCharge]:
        """Synthesizes management fee charges once per engine. Defaults to the hydrated price history."""
        if self._recurring_fees_generated:
            logger.warning("Recurring fees were already generated for this engine. Skipping.")
            return []
        self._recurring_fees_generated = True
        return generate_recurring_fees(
            self.holdings.values(), self.portfolios, price_provider or self.historical_price, self.converter, self.as_of,
        )

    # --- Views ---

    def get_global_summary(self, display_currency: Union[Currency, str] = Currency.ILS,
                           filter_ids: Optional[Iterable[str]] = None) -> DashboardSummary:
        currency = normalize_currency(display_currency)
        selected = self.holdings.values()
        if filter_ids is not None:
            wanted = set(filter_ids)
            selected = [h for h in selected if h.portfolio_id in wanted]
        return build_global_summary(selected, self.converter, currency, self.as_of)

    def get_holding(self, portfolio_id: str, ticker: str) -> Optional[Holding]:
        return self.holdings.get(f"{portfolio_id}_{ticker}")

    @property
    def transactions(self) -> List[Transaction]:
        return [txn for holding in self.holdings.values() for txn in holding.transactions]
