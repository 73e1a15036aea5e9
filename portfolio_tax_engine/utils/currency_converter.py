# portfolio_tax_engine/utils/currency_converter.py
import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Tuple, Union

from portfolio_tax_engine.domain.enums import Currency
from portfolio_tax_engine.utils.type_utils import safe_decimal

if TYPE_CHECKING:
    from portfolio_tax_engine.domain.enums import PerfPeriod
    from .exchange_rate_provider import ExchangeRateProvider

logger = logging.getLogger(__name__)

RateSet = Mapping[Currency, Decimal]
CurrencyLike = Union[Currency, str]

_AGOROT_PER_SHEKEL = Decimal(100)


class UnknownCurrencyError(ValueError):
    """Raised when a currency string matches none of the known aliases."""


_CURRENCY_ALIASES: Dict[str, Currency] = {
    # ILS
    'ש"ח': Currency.ILS,
    "₪": Currency.ILS,
    "NIS": Currency.ILS,
    "ILS": Currency.ILS,
    "SHEKEL": Currency.ILS,
    # ILA (agorot)
    "אג": Currency.ILA,
    "אג'": Currency.ILA,
    "ILA": Currency.ILA,
    "ILAG": Currency.ILA,
    "AGOROT": Currency.ILA,
    "AG": Currency.ILA,
    "GBX_ILA": Currency.ILA,
    # USD
    "דולר": Currency.USD,
    "$": Currency.USD,
    "DOLLAR": Currency.USD,
    "USD": Currency.USD,
    # EUR
    "אירו": Currency.EUR,
    "€": Currency.EUR,
    "EUR": Currency.EUR,
    "EURO": Currency.EUR,
    # GBP
    'ליש"ט': Currency.GBP,
    "£": Currency.GBP,
    "LIRA": Currency.GBP,
    "GBP": Currency.GBP,
}


def normalize_currency(value: Any) -> Currency:
    """
    Maps currency aliases (ISO codes, symbols, Hebrew names) to a Currency.
    Raises UnknownCurrencyError for anything unrecognized, including empty input;
    callers at the ingestion boundary decide whether to default or propagate.
    """
    if isinstance(value, Currency):
        return value
    if value is None or not str(value).strip():
        raise UnknownCurrencyError("Currency is missing.")
    key = str(value).strip().upper()
    currency = _CURRENCY_ALIASES.get(key)
    if currency is None:
        raise UnknownCurrencyError(f"Unknown currency '{value}'.")
    return currency


def _rate_for(currency: Currency, rate_set: RateSet) -> Optional[Decimal]:
    """Units of `currency` per 1 USD. ILA is resolved through ILS by the caller."""
    if currency == Currency.USD:
        return Decimal(1)
    return rate_set.get(currency) # str-valued enum, so plain "ILS" keys match too


def try_convert_currency(amount: Any,
                         from_currency: CurrencyLike,
                         to_currency: CurrencyLike,
                         rate_set: Optional[RateSet]) -> Optional[Decimal]:
    """
    Converts `amount` between currencies, pivoting through USD.
    Returns None ("conversion unavailable") when a required rate is missing
    or non-positive, or a currency cannot be normalized.
    ILA <-> ILS never needs a rate table.
    """
    value = safe_decimal(amount, default=Decimal(0))
    if value is None or value.is_nan():
        value = Decimal(0)

    try:
        source = normalize_currency(from_currency)
        target = normalize_currency(to_currency)
    except UnknownCurrencyError as e:
        logger.warning(f"Cannot convert {value}: {e}")
        return None

    if source == target:
        return value

    # Fixed minor-unit relation
    if source == Currency.ILA and target == Currency.ILS:
        return value / _AGOROT_PER_SHEKEL
    if source == Currency.ILS and target == Currency.ILA:
        return value * _AGOROT_PER_SHEKEL

    effective_source = Currency.ILS if source == Currency.ILA else source
    effective_target = Currency.ILS if target == Currency.ILA else target
    if source == Currency.ILA:
        value = value / _AGOROT_PER_SHEKEL

    if effective_source == effective_target:
        result = value
    else:
        if rate_set is None:
            logger.warning(f"Cannot convert {value} {effective_source.value} to {effective_target.value}: no rate set available.")
            return None
        from_rate = _rate_for(effective_source, rate_set)
        to_rate = _rate_for(effective_target, rate_set)
        if from_rate is None or to_rate is None:
            missing = effective_source if from_rate is None else effective_target
            logger.warning(f"Cannot convert {value} {effective_source.value} to {effective_target.value}: missing rate for {missing.value}.")
            return None
        if from_rate <= Decimal(0) or to_rate <= Decimal(0):
            logger.error(f"Cannot convert {value} {effective_source.value} to {effective_target.value}: non-positive rate ({from_rate}, {to_rate}).")
            return None
        result = (value / from_rate) * to_rate

    if target == Currency.ILA:
        result = result * _AGOROT_PER_SHEKEL
    return result


def convert_currency(amount: Any,
                     from_currency: CurrencyLike,
                     to_currency: CurrencyLike,
                     rate_set: Optional[RateSet]) -> Decimal:
    """Total variant of try_convert_currency: an unavailable conversion yields 0."""
    result = try_convert_currency(amount, from_currency, to_currency, rate_set)
    if result is None:
        return Decimal(0)
    return result


def calculate_performance_in_display_currency(current_price: Decimal,
                                              stock_currency: CurrencyLike,
                                              perf_pct: Optional[Decimal],
                                              display_currency: CurrencyLike,
                                              rate_set: Optional[RateSet]) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    """
    Translates a percentage move of a stock-currency price into a per-unit
    change value and percentage in the display currency.
    Returns (None, None) when the percentage is unknown.
    """
    if perf_pct is None or perf_pct.is_nan():
        return None, None

    # -100%: the previous price cannot be derived by division
    if abs(Decimal(1) + perf_pct) < Decimal("1e-9"):
        price_now_display = convert_currency(current_price, stock_currency, display_currency, rate_set)
        return -price_now_display, Decimal(-1)

    prev_price_stock = current_price / (Decimal(1) + perf_pct)
    change_stock = current_price - prev_price_stock

    change_display = convert_currency(change_stock, stock_currency, display_currency, rate_set)
    prev_price_display = convert_currency(prev_price_stock, stock_currency, display_currency, rate_set)
    change_pct_display = change_display / prev_price_display if prev_price_display != 0 else Decimal(0)
    return change_display, change_pct_display


class CurrencyConverter:
    def __init__(self, rate_provider: "ExchangeRateProvider"):
        self.rate_provider = rate_provider

    def rate_set(self, on_date: Optional[date] = None) -> Optional[RateSet]:
        """Rate set for a date under the provider's fallback policy; None means the current set."""
        return self.rate_provider.get_rate_set(on_date)

    def try_convert(self, amount: Any, from_currency: CurrencyLike, to_currency: CurrencyLike,
                    on_date: Optional[date] = None, rate_set: Optional[RateSet] = None) -> Optional[Decimal]:
        rates = rate_set if rate_set is not None else self.rate_set(on_date)
        return try_convert_currency(amount, from_currency, to_currency, rates)

    def convert(self, amount: Any, from_currency: CurrencyLike, to_currency: CurrencyLike,
                on_date: Optional[date] = None, rate_set: Optional[RateSet] = None) -> Decimal:
        """
        Converts with the rate set of `on_date` (current rates when omitted),
        or an explicitly supplied rate set. Unavailable conversions yield 0.
        """
        result = self.try_convert(amount, from_currency, to_currency, on_date=on_date, rate_set=rate_set)
        if result is None:
            when = on_date.isoformat() if on_date else "current"
            logger.warning(f"Conversion of {amount} {from_currency} to {to_currency} ({when}) unavailable. Using 0.")
            return Decimal(0)
        return result

    def historical_rate_set(self, period: "PerfPeriod") -> Optional[RateSet]:
        """Look-back rate set shipped for a performance window, None when the snapshot has none."""
        from .exchange_rate_provider import get_historical_rates
        return get_historical_rates(self.rate_provider, period)
