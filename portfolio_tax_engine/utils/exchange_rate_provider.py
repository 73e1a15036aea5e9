# portfolio_tax_engine/utils/exchange_rate_provider.py
import datetime
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from portfolio_tax_engine import config
from portfolio_tax_engine.domain.enums import Currency, PerfPeriod
from portfolio_tax_engine.utils.currency_converter import RateSet, UnknownCurrencyError, normalize_currency
from portfolio_tax_engine.utils.type_utils import parse_date, safe_decimal

logger = logging.getLogger(__name__)

CURRENT_RATES_KEY = "current"

# Named look-back rate sets shipped alongside the current one
PERIOD_RATE_KEYS: Dict[PerfPeriod, str] = {
    PerfPeriod.ONE_WEEK: "ago1w",
    PerfPeriod.ONE_MONTH: "ago1m",
    PerfPeriod.THREE_MONTHS: "ago3m",
    PerfPeriod.YTD: "ytd",
    PerfPeriod.ONE_YEAR: "ago1y",
    PerfPeriod.FIVE_YEARS: "ago5y",
    PerfPeriod.ALL: "agoMax",
}


class RateFallbackPolicy(Enum):
    CURRENT = "CURRENT" # Exact date, else the current set
    PREVIOUS_AVAILABLE = "PREVIOUS_AVAILABLE" # Exact date, else nearest earlier date within max fallback days, else current
    STRICT = "STRICT" # Exact date only


class ExchangeRateProvider:
    """
    Abstract base class for exchange rate providers.
    A rate set maps each currency to its units per 1 USD (USD itself is 1).
    """
    def get_rate_set(self, on_date: Optional[datetime.date] = None) -> Optional[RateSet]:
        """
        Returns the rate set to use for a conversion on `on_date`, or the
        current rate set when `on_date` is None. None means no rates apply.
        """
        raise NotImplementedError("Subclasses must implement get_rate_set")

    def get_named_rate_set(self, key: str) -> Optional[RateSet]:
        """Returns a named rate set (e.g. a look-back snapshot) or None."""
        raise NotImplementedError("Subclasses must implement get_named_rate_set")

    def get_max_fallback_days(self) -> int:
        """Returns the maximum number of fallback days configured for the provider."""
        raise NotImplementedError("Subclasses must implement get_max_fallback_days")

    def get_rate(self, currency: Currency, on_date: Optional[datetime.date] = None) -> Optional[Decimal]:
        rate_set = self.get_rate_set(on_date)
        if currency == Currency.USD:
            return Decimal(1)
        if rate_set is None:
            return None
        return rate_set.get(Currency.ILS if currency == Currency.ILA else currency)


def normalize_rate_set(raw_rates: Mapping[Any, Any], label: str = "") -> Dict[Currency, Decimal]:
    """
    Normalizes a raw {currency: rate} mapping. Unknown currencies and
    unparseable or non-positive rates are dropped with a warning.
    ILA entries are ignored (agorot always derive from ILS) and USD is pinned to 1.
    """
    normalized: Dict[Currency, Decimal] = {}
    for raw_currency, raw_rate in raw_rates.items():
        try:
            currency = normalize_currency(raw_currency)
        except UnknownCurrencyError:
            logger.warning(f"Rate set '{label}': ignoring unknown currency '{raw_currency}'.")
            continue
        if currency == Currency.ILA:
            continue
        rate = safe_decimal(raw_rate)
        if rate is None or not rate.is_finite() or rate <= Decimal(0):
            logger.warning(f"Rate set '{label}': ignoring invalid rate {raw_rate!r} for {currency.value}.")
            continue
        normalized[currency] = rate
    if normalized.get(Currency.USD, Decimal(1)) != Decimal(1):
        logger.warning(f"Rate set '{label}': USD rate {normalized[Currency.USD]} is not 1. Forcing 1 (USD is the pivot).")
    normalized[Currency.USD] = Decimal(1)
    return normalized


class SnapshotExchangeRateProvider(ExchangeRateProvider):
    """
    In-memory provider over a rates snapshot of the form
    {"current": {...}, "2024-01-31": {...}, "ago1y": {...}}.
    Historical lookups follow an explicit RateFallbackPolicy.
    """
    def __init__(self,
                 current: Optional[Mapping[Currency, Decimal]] = None,
                 dated: Optional[Mapping[datetime.date, Mapping[Currency, Decimal]]] = None,
                 named: Optional[Mapping[str, Mapping[Currency, Decimal]]] = None,
                 fallback_policy: Optional[RateFallbackPolicy] = None,
                 max_fallback_days_override: Optional[int] = None):
        self.current: Optional[Dict[Currency, Decimal]] = dict(current) if current is not None else None
        self.dated: Dict[datetime.date, Dict[Currency, Decimal]] = {d: dict(r) for d, r in (dated or {}).items()}
        self.named: Dict[str, Dict[Currency, Decimal]] = {k: dict(r) for k, r in (named or {}).items()}
        self.fallback_policy = fallback_policy or RateFallbackPolicy(config.DEFAULT_RATE_FALLBACK_POLICY)
        self.max_fallback_days = max_fallback_days_override if max_fallback_days_override is not None else config.MAX_FALLBACK_DAYS_EXCHANGE_RATES

    @classmethod
    def from_mapping(cls,
                     raw: Mapping[str, Mapping[Any, Any]],
                     fallback_policy: Optional[RateFallbackPolicy] = None,
                     max_fallback_days_override: Optional[int] = None) -> "SnapshotExchangeRateProvider":
        current = None
        dated: Dict[datetime.date, Dict[Currency, Decimal]] = {}
        named: Dict[str, Dict[Currency, Decimal]] = {}
        for key, raw_rates in (raw or {}).items():
            if not isinstance(raw_rates, Mapping):
                logger.warning(f"Ignoring rate entry '{key}': expected a mapping, got {type(raw_rates).__name__}.")
                continue
            rate_set = normalize_rate_set(raw_rates, label=str(key))
            if key == CURRENT_RATES_KEY:
                current = rate_set
                continue
            key_date = parse_date(key) if isinstance(key, (datetime.date, datetime.datetime)) or str(key)[:1].isdigit() else None
            if key_date is not None:
                dated[key_date] = rate_set
            else:
                named[str(key)] = rate_set
        if current is None:
            logger.warning("Exchange rate snapshot has no 'current' rate set. Current-rate conversions will be unavailable.")
        return cls(current=current, dated=dated, named=named,
                   fallback_policy=fallback_policy, max_fallback_days_override=max_fallback_days_override)

    def get_rate_set(self, on_date: Optional[datetime.date] = None) -> Optional[RateSet]:
        if on_date is None:
            return self.current

        exact = self.dated.get(on_date)
        if exact is not None:
            return exact

        if self.fallback_policy == RateFallbackPolicy.STRICT:
            logger.debug(f"No rate set for {on_date} and fallback policy is STRICT.")
            return None

        if self.fallback_policy == RateFallbackPolicy.PREVIOUS_AVAILABLE:
            for i in range(1, self.max_fallback_days + 1):
                candidate = on_date - datetime.timedelta(days=i)
                rate_set = self.dated.get(candidate)
                if rate_set is not None:
                    logger.debug(f"Using rate set of {candidate} for {on_date} (fallback {i} day(s)).")
                    return rate_set

        if self.current is not None:
            logger.debug(f"No dated rate set for {on_date}. Falling back to current rates.")
        return self.current

    def get_named_rate_set(self, key: str) -> Optional[RateSet]:
        return self.named.get(key)

    def get_max_fallback_days(self) -> int:
        return self.max_fallback_days


def get_historical_rates(provider: ExchangeRateProvider, period: PerfPeriod) -> Optional[RateSet]:
    """Look-back rate set shipped for a performance window, or None when absent."""
    key = PERIOD_RATE_KEYS.get(period)
    if key is None:
        return None
    return provider.get_named_rate_set(key)
