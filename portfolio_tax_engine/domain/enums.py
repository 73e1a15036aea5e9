# portfolio_tax_engine/domain/enums.py
from enum import Enum, auto
from typing import Dict, Optional


class Currency(str, Enum):
    USD = "USD"
    ILS = "ILS"
    EUR = "EUR"
    GBP = "GBP"
    ILA = "ILA" # Agorot, 1/100 ILS. Never a rate key, always resolved through ILS

class Exchange(str, Enum):
    NASDAQ = "NASDAQ"
    NYSE = "NYSE"
    TASE = "TASE"
    LSE = "LSE"
    FWB = "FWB"
    EURONEXT = "EURONEXT"
    JPX = "JPX"
    HKEX = "HKEX"
    TSX = "TSX"
    ASX = "ASX"
    OTHER = "OTHER"

class TransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    FEE = "FEE"

class TaxPolicy(str, Enum):
    TAX_FREE = "TAX_FREE"
    REAL_GAIN = "REAL_GAIN" # Domestic CPI adjustment, foreign currency adjustment
    NOMINAL_GAIN = "NOMINAL_GAIN" # Gain in the instrument's own currency
    RSU_ACCOUNT = "RSU_ACCOUNT" # Real gain plus income tax on the grant value
    PENSION = "PENSION"

class DividendPolicy(str, Enum):
    CASH_TAXED = "cash_taxed"
    ACCUMULATE_TAX_FREE = "accumulate_tax_free"
    HYBRID_RSU = "hybrid_rsu"

class MgmtFeeType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

class FeeFrequency(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

class InstrumentType(str, Enum):
    STOCK = "STOCK"
    STOCK_REIT = "STOCK_REIT"
    STOCK_WARRANT = "STOCK_WARRANT"
    STOCK_PREF = "STOCK_PREF"
    ETF = "ETF"
    MUTUAL_FUND = "MUTUAL_FUND"
    SAVING_PROVIDENT = "SAVING_PROVIDENT"
    SAVING_PENSION = "SAVING_PENSION"
    SAVING_STUDY = "SAVING_STUDY"
    BOND_GOV = "BOND_GOV"
    BOND_CORP = "BOND_CORP"
    OTHER = "OTHER"

class EventKind(Enum):
    """Tag of an entry in the merged processing stream."""
    TXN = auto()
    DIV = auto()

class PerfPeriod(str, Enum):
    ONE_WEEK = "1w"
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    YTD = "ytd"
    ONE_YEAR = "1y"
    THREE_YEARS = "3y"
    FIVE_YEARS = "5y"
    ALL = "all"


# Input spellings seen in broker exports and sheets
_TAX_POLICY_ALIASES: Dict[str, TaxPolicy] = {
    "IL_REAL_GAIN": TaxPolicy.REAL_GAIN,
}

_EXCHANGE_ALIASES: Dict[str, Exchange] = {
    # NASDAQ
    "XNAS": Exchange.NASDAQ,
    "NMS": Exchange.NASDAQ, # NASDAQ/NMS (GLOBAL MARKET)
    "NGS": Exchange.NASDAQ, # NASDAQ/NGS (GLOBAL SELECT MARKET)
    "NCM": Exchange.NASDAQ, # NASDAQ CAPITAL MARKET
    # NYSE
    "XNYS": Exchange.NYSE,
    "NEW YORK STOCK EXCHANGE": Exchange.NYSE,
    # TASE
    "XTAE": Exchange.TASE,
    "TLV": Exchange.TASE,
    "TEL AVIV": Exchange.TASE,
    # LSE
    "XLON": Exchange.LSE,
    "LONDON": Exchange.LSE,
    # Frankfurt
    "XFRA": Exchange.FWB,
    "FRANKFURT": Exchange.FWB,
    "XETRA": Exchange.FWB,
    # Euronext
    "XPAR": Exchange.EURONEXT,
    "XAMS": Exchange.EURONEXT,
    "XBRU": Exchange.EURONEXT,
    "XLIS": Exchange.EURONEXT,
    "XDUB": Exchange.EURONEXT,
    # Asia-Pacific, Canada
    "XTKS": Exchange.JPX,
    "XHKG": Exchange.HKEX,
    "XTSE": Exchange.TSX,
    "XASX": Exchange.ASX,
}


# Listing assumed for events that omit their exchange
DEFAULT_EXCHANGE = Exchange.TASE


def parse_exchange(exchange_id: Optional[str]) -> Exchange:
    """
    Maps an exchange identifier (MIC code, vendor code or canonical name) to an Exchange.
    Matching is case-insensitive. Unknown or empty identifiers map to Exchange.OTHER.
    """
    if isinstance(exchange_id, Exchange):
        return exchange_id
    if not exchange_id or not str(exchange_id).strip():
        return Exchange.OTHER
    key = str(exchange_id).strip().upper()
    if key in Exchange.__members__:
        return Exchange[key]
    return _EXCHANGE_ALIASES.get(key, Exchange.OTHER)


def parse_tax_policy(value) -> TaxPolicy:
    if isinstance(value, TaxPolicy):
        return value
    key = str(value).strip().upper()
    if key in _TAX_POLICY_ALIASES:
        return _TAX_POLICY_ALIASES[key]
    return TaxPolicy(key) # Raises ValueError for unknown policies
