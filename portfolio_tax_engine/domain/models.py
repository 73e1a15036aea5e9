# portfolio_tax_engine/domain/models.py
import logging
from datetime import date as date_obj
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from portfolio_tax_engine.domain.enums import (
    Currency, DividendPolicy, Exchange, FeeFrequency, InstrumentType, MgmtFeeType,
    TaxPolicy, TransactionType, parse_exchange, parse_tax_policy,
)
from portfolio_tax_engine.utils.currency_converter import UnknownCurrencyError, normalize_currency
from portfolio_tax_engine.utils.type_utils import clamp_non_negative, parse_date, safe_decimal

logger = logging.getLogger(__name__)


class InputRecord(BaseModel):
    # Field names are snake_case; aliases accept the camelCase and sheet spellings
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _required_date(v: Any, info: ValidationInfo) -> date_obj:
    parsed = parse_date(v)
    if parsed is None:
        raise ValueError(f"Invalid {info.field_name}: {v!r}")
    return parsed


def _optional_date(v: Any) -> Optional[date_obj]:
    if v is None or str(v).strip() == "":
        return None
    parsed = parse_date(v)
    if parsed is None:
        logger.warning(f"Ignoring unparseable date {v!r}.")
    return parsed


def _optional_currency(v: Any) -> Optional[Currency]:
    if v is None or str(v).strip() == "":
        return None
    try:
        return normalize_currency(v)
    except UnknownCurrencyError as e:
        logger.warning(f"{e} Falling back to the instrument default.")
        return None


def _clamp_optional(v: Any, field_name: str) -> Optional[Decimal]:
    if v is None or str(v).strip() == "":
        return None
    return clamp_non_negative(v, field_name=field_name)


# --- Portfolio ---

class FeeHistoryEntry(InputRecord):
    start_date: date_obj = Field(validation_alias=AliasChoices("start_date", "startDate"))
    mgmt_val: Decimal = Field(Decimal(0), validation_alias=AliasChoices("mgmt_val", "mgmtVal"))
    mgmt_type: MgmtFeeType = Field(MgmtFeeType.PERCENTAGE, validation_alias=AliasChoices("mgmt_type", "mgmtType"))
    mgmt_freq: FeeFrequency = Field(FeeFrequency.YEARLY, validation_alias=AliasChoices("mgmt_freq", "mgmtFreq"))
    div_comm_rate: Decimal = Field(Decimal(0), validation_alias=AliasChoices("div_comm_rate", "divCommRate"))
    # Missing commission fields fall back to the portfolio's current values
    comm_rate: Optional[Decimal] = Field(None, validation_alias=AliasChoices("comm_rate", "commRate"))
    comm_min: Optional[Decimal] = Field(None, validation_alias=AliasChoices("comm_min", "commMin"))
    comm_max: Optional[Decimal] = Field(None, validation_alias=AliasChoices("comm_max", "commMax"))

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start_date(cls, v: Any, info: ValidationInfo) -> date_obj:
        return _required_date(v, info)

    @field_validator("mgmt_val", "div_comm_rate", mode="before")
    @classmethod
    def clamp_rates(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)

    @field_validator("comm_rate", "comm_min", "comm_max", mode="before")
    @classmethod
    def clamp_optional_commissions(cls, v: Any, info: ValidationInfo) -> Optional[Decimal]:
        return _clamp_optional(v, info.field_name)


class TaxHistoryEntry(InputRecord):
    start_date: date_obj = Field(validation_alias=AliasChoices("start_date", "startDate"))
    cgt: Decimal = Decimal(0)
    inc_tax: Decimal = Field(Decimal(0), validation_alias=AliasChoices("inc_tax", "incTax"))

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start_date(cls, v: Any, info: ValidationInfo) -> date_obj:
        return _required_date(v, info)

    @field_validator("cgt", "inc_tax", mode="before")
    @classmethod
    def clamp_rates(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)


class PortfolioHoldingInfo(InputRecord):
    """Per-portfolio instrument metadata from the sheet (overrides live metadata on creation)."""
    ticker: str
    exchange: Exchange = Exchange.OTHER
    currency: Optional[Currency] = None
    name: Optional[str] = None
    name_he: Optional[str] = Field(None, validation_alias=AliasChoices("name_he", "nameHe"))
    sector: Optional[str] = None
    type: Optional[InstrumentType] = None

    @field_validator("exchange", mode="before")
    @classmethod
    def parse_exchange_field(cls, v: Any) -> Exchange:
        return parse_exchange(v)

    @field_validator("currency", mode="before")
    @classmethod
    def parse_currency(cls, v: Any) -> Optional[Currency]:
        return _optional_currency(v)

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: Any) -> Optional[InstrumentType]:
        return _parse_instrument_type(v)


PORTFOLIO_TEMPLATES: Dict[str, Dict[str, Any]] = {
    "std_il": {
        "cgt": Decimal("0.25"), "inc_tax": Decimal(0), "comm_rate": Decimal("0.001"), "comm_min": Decimal(5),
        "currency": Currency.ILS, "div_policy": DividendPolicy.CASH_TAXED, "tax_policy": TaxPolicy.REAL_GAIN,
    },
    "std_us": {
        "cgt": Decimal("0.25"), "inc_tax": Decimal(0),
        "currency": Currency.USD, "div_policy": DividendPolicy.CASH_TAXED, "tax_policy": TaxPolicy.NOMINAL_GAIN,
    },
    "rsu": {
        "cgt": Decimal("0.25"), "inc_tax": Decimal("0.5"),
        "currency": Currency.USD, "div_policy": DividendPolicy.HYBRID_RSU, "tax_policy": TaxPolicy.NOMINAL_GAIN,
    },
    "hishtalmut": {
        "cgt": Decimal(0), "inc_tax": Decimal(0), "mgmt_val": Decimal("0.007"), "mgmt_type": MgmtFeeType.PERCENTAGE,
        "mgmt_freq": FeeFrequency.MONTHLY,
        "currency": Currency.ILS, "div_policy": DividendPolicy.ACCUMULATE_TAX_FREE, "tax_policy": TaxPolicy.TAX_FREE,
    },
    "pension": {
        "cgt": Decimal("0.33"), "inc_tax": Decimal("0.33"), "mgmt_val": Decimal("0.002"), "mgmt_type": MgmtFeeType.PERCENTAGE,
        "mgmt_freq": FeeFrequency.MONTHLY,
        "currency": Currency.ILS, "div_policy": DividendPolicy.ACCUMULATE_TAX_FREE, "tax_policy": TaxPolicy.PENSION,
    },
}


class Portfolio(InputRecord):
    id: str
    name: str = ""
    currency: Currency = Currency.ILS
    cgt: Decimal = Decimal("0.25")
    inc_tax: Decimal = Field(Decimal(0), validation_alias=AliasChoices("inc_tax", "incTax"))
    mgmt_val: Decimal = Field(Decimal(0), validation_alias=AliasChoices("mgmt_val", "mgmtVal"))
    mgmt_type: MgmtFeeType = Field(MgmtFeeType.PERCENTAGE, validation_alias=AliasChoices("mgmt_type", "mgmtType"))
    mgmt_freq: FeeFrequency = Field(FeeFrequency.YEARLY, validation_alias=AliasChoices("mgmt_freq", "mgmtFreq"))
    comm_rate: Decimal = Field(Decimal(0), validation_alias=AliasChoices("comm_rate", "commRate"))
    comm_min: Decimal = Field(Decimal(0), validation_alias=AliasChoices("comm_min", "commMin"))
    comm_max: Decimal = Field(Decimal(0), validation_alias=AliasChoices("comm_max", "commMax"))
    div_policy: DividendPolicy = Field(DividendPolicy.CASH_TAXED, validation_alias=AliasChoices("div_policy", "divPolicy"))
    div_comm_rate: Decimal = Field(Decimal(0), validation_alias=AliasChoices("div_comm_rate", "divCommRate"))
    tax_policy: TaxPolicy = Field(TaxPolicy.REAL_GAIN, validation_alias=AliasChoices("tax_policy", "taxPolicy"))
    tax_on_base: bool = Field(False, validation_alias=AliasChoices("tax_on_base", "taxOnBase"))
    fee_history: List[FeeHistoryEntry] = Field(default_factory=list, validation_alias=AliasChoices("fee_history", "feeHistory"))
    tax_history: List[TaxHistoryEntry] = Field(default_factory=list, validation_alias=AliasChoices("tax_history", "taxHistory"))
    holdings: List[PortfolioHoldingInfo] = Field(default_factory=list)

    @field_validator("currency", mode="before")
    @classmethod
    def parse_currency(cls, v: Any) -> Currency:
        return normalize_currency(v) # Raises for unknown portfolio currencies

    @field_validator("tax_policy", mode="before")
    @classmethod
    def parse_policy(cls, v: Any) -> TaxPolicy:
        return parse_tax_policy(v)

    @field_validator("cgt", "inc_tax", "mgmt_val", "comm_rate", "comm_min", "comm_max", "div_comm_rate", mode="before")
    @classmethod
    def clamp_rates(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)

    @classmethod
    def from_template(cls, template: str, id: str, name: str = "", **overrides: Any) -> "Portfolio":
        if template not in PORTFOLIO_TEMPLATES:
            raise ValueError(f"Unknown portfolio template '{template}'. Known: {sorted(PORTFOLIO_TEMPLATES)}")
        values = dict(PORTFOLIO_TEMPLATES[template])
        values.update(overrides)
        return cls(id=id, name=name or id, **values)

    def holding_info(self, ticker: str, exchange: Exchange) -> Optional[PortfolioHoldingInfo]:
        for info in self.holdings:
            if info.ticker == ticker and info.exchange == exchange:
                return info
        return None


# --- Events ---

class Transaction(InputRecord):
    date: date_obj
    portfolio_id: str = Field(validation_alias=AliasChoices("portfolio_id", "portfolioId"))
    ticker: str
    exchange: Optional[Exchange] = None # DEFAULT_EXCHANGE when the pipeline resolves the holding
    type: TransactionType
    qty: Decimal = Decimal(0)
    price: Decimal = Decimal(0)
    original_price: Optional[Decimal] = Field(None, validation_alias=AliasChoices("original_price", "originalPrice"))
    currency: Optional[Currency] = None
    vest_date: Optional[date_obj] = Field(None, validation_alias=AliasChoices("vest_date", "vestDate", "Vest_Date"))
    commission: Decimal = Field(Decimal(0), validation_alias=AliasChoices("commission", "Commission"))
    tax: Decimal = Decimal(0)
    # Historical conversions resolved by the loading layer at the transaction date
    original_price_usd: Optional[Decimal] = Field(None, validation_alias=AliasChoices("original_price_usd", "originalPriceUSD", "Original_Price_USD"))
    original_price_ila: Optional[Decimal] = Field(None, validation_alias=AliasChoices("original_price_ila", "originalPriceILA", "Original_Price_ILA"))
    numeric_id: Optional[int] = Field(None, validation_alias=AliasChoices("numeric_id", "numericId"))
    comment: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def parse_txn_date(cls, v: Any, info: ValidationInfo) -> date_obj:
        return _required_date(v, info)

    @field_validator("vest_date", mode="before")
    @classmethod
    def parse_vest_date(cls, v: Any) -> Optional[date_obj]:
        return _optional_date(v)

    @field_validator("exchange", mode="before")
    @classmethod
    def parse_exchange_field(cls, v: Any) -> Optional[Exchange]:
        if v is None or str(v).strip() == "":
            return None
        return parse_exchange(v)

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: Any) -> TransactionType:
        if isinstance(v, TransactionType):
            return v
        return TransactionType(str(v).strip().upper())

    @field_validator("currency", mode="before")
    @classmethod
    def parse_currency(cls, v: Any) -> Optional[Currency]:
        return _optional_currency(v)

    @field_validator("qty", "price", "commission", "tax", mode="before")
    @classmethod
    def clamp_amounts(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)

    @field_validator("original_price", "original_price_usd", "original_price_ila", mode="before")
    @classmethod
    def clamp_optional_prices(cls, v: Any, info: ValidationInfo) -> Optional[Decimal]:
        clamped = _clamp_optional(v, info.field_name)
        return clamped if clamped else None # A zero historical price is treated as absent


class DividendEvent(InputRecord):
    ticker: str
    exchange: Optional[Exchange] = None # Matched as DEFAULT_EXCHANGE, like a transaction without one
    date: date_obj
    amount: Decimal = Decimal(0) # Gross per unit, stock currency
    source: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def parse_div_date(cls, v: Any, info: ValidationInfo) -> date_obj:
        return _required_date(v, info)

    @field_validator("exchange", mode="before")
    @classmethod
    def parse_exchange_field(cls, v: Any) -> Optional[Exchange]:
        if v is None or str(v).strip() == "":
            return None
        return parse_exchange(v)

    @field_validator("amount", mode="before")
    @classmethod
    def clamp_amount(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)


# --- Market data ---

class PricePoint(InputRecord):
    date: date_obj
    price: Decimal = Field(Decimal(0), validation_alias=AliasChoices("price", "adjClose", "adj_close"))

    @field_validator("date", mode="before")
    @classmethod
    def parse_point_date(cls, v: Any, info: ValidationInfo) -> date_obj:
        return _required_date(v, info)

    @field_validator("price", mode="before")
    @classmethod
    def clamp_price(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)


class LivePrice(InputRecord):
    price: Decimal = Decimal(0)
    currency: Optional[str] = None # Raw quote currency; TASE quotes are resolved by the engine
    change_pct_1d: Optional[Decimal] = Field(None, validation_alias=AliasChoices("change_pct_1d", "changePct1d"))
    perf_1w: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_1w", "changePctRecent", "perf1w"))
    perf_1m: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_1m", "changePct1m", "perf1m"))
    perf_3m: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_3m", "changePct3m", "perf3m"))
    perf_ytd: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_ytd", "changePctYtd", "perfYtd"))
    perf_1y: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_1y", "changePct1y", "perf1y"))
    perf_3y: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_3y", "changePct3y", "perf3y"))
    perf_5y: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_5y", "changePct5y", "perf5y"))
    perf_all: Optional[Decimal] = Field(None, validation_alias=AliasChoices("perf_all", "changePctMax", "perfAll"))
    name: Optional[str] = None
    name_he: Optional[str] = Field(None, validation_alias=AliasChoices("name_he", "nameHe"))
    sector: Optional[str] = None
    type: Optional[InstrumentType] = None
    historical: List[PricePoint] = Field(default_factory=list)

    @field_validator("price", mode="before")
    @classmethod
    def clamp_price(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)

    @field_validator("change_pct_1d", "perf_1w", "perf_1m", "perf_3m", "perf_ytd", "perf_1y", "perf_3y", "perf_5y", "perf_all", mode="before")
    @classmethod
    def parse_pct(cls, v: Any) -> Optional[Decimal]:
        # Percent moves may be negative, only non-finite values are dropped
        parsed = safe_decimal(v)
        if parsed is None or not parsed.is_finite():
            return None
        return parsed

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v: Any) -> Optional[InstrumentType]:
        return _parse_instrument_type(v)

    @field_validator("historical", mode="after")
    @classmethod
    def sort_history(cls, v: List[PricePoint]) -> List[PricePoint]:
        return sorted(v, key=lambda p: p.date)

    def perf_for(self, period_value: str) -> Optional[Decimal]:
        return getattr(self, f"perf_{period_value}", None)


class CpiPoint(InputRecord):
    date: date_obj
    value: Decimal = Field(validation_alias=AliasChoices("value", "price"))

    @field_validator("date", mode="before")
    @classmethod
    def parse_cpi_date(cls, v: Any, info: ValidationInfo) -> date_obj:
        return _required_date(v, info)

    @field_validator("value", mode="before")
    @classmethod
    def clamp_value(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)


class RawCpiRecord(InputRecord):
    year: int
    month: int
    value: Decimal
    base_desc: str = Field(validation_alias=AliasChoices("base_desc", "baseDesc"))

    @field_validator("value", mode="before")
    @classmethod
    def clamp_value(cls, v: Any, info: ValidationInfo) -> Decimal:
        return clamp_non_negative(v, field_name=info.field_name)


class EngineInput(InputRecord):
    """Complete input snapshot consumed by the CLI."""
    as_of: Optional[date_obj] = Field(None, validation_alias=AliasChoices("as_of", "asOf"))
    portfolios: List[Portfolio] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)
    dividends: List[DividendEvent] = Field(default_factory=list)
    exchange_rates: Dict[str, Dict[str, Any]] = Field(default_factory=dict, validation_alias=AliasChoices("exchange_rates", "exchangeRates"))
    cpi: List[CpiPoint] = Field(default_factory=list)
    cpi_raw: List[RawCpiRecord] = Field(default_factory=list, validation_alias=AliasChoices("cpi_raw", "cpiRaw"))
    cpi_series_id: Optional[str] = Field(None, validation_alias=AliasChoices("cpi_series_id", "cpiSeriesId"))
    prices: Dict[str, LivePrice] = Field(default_factory=dict)

    @field_validator("as_of", mode="before")
    @classmethod
    def parse_as_of(cls, v: Any) -> Optional[date_obj]:
        return _optional_date(v)


def _parse_instrument_type(v: Any) -> Optional[InstrumentType]:
    if v is None or isinstance(v, InstrumentType):
        return v
    if isinstance(v, dict): # Classification objects carry the enum under "type"
        v = v.get("type")
        if v is None:
            return None
    key = str(v).strip().upper()
    if key in InstrumentType.__members__:
        return InstrumentType[key]
    logger.warning(f"Unknown instrument type '{v}'. Using OTHER.")
    return InstrumentType.OTHER
