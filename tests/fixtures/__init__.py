"""
Test Fixtures Module

YAML-based lifecycle specs (lifecycle_scenarios.yaml)
   - Input/output scenarios: a portfolio template, a trade and dividend history,
     and the holding figures expected after processing
   - Human-readable, parseable, git-diff friendly
   - Use load_yaml_spec() to parse and parse_lifecycle_tests() to build specs
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
from decimal import Decimal
import yaml


FIXTURES_DIR = Path(__file__).parent


@dataclass
class TradeSpec:
    """Parsed trade from YAML spec."""
    type: str
    ticker: str
    date: str
    qty: Decimal
    price: Decimal
    commission: Decimal = Decimal(0)
    currency: str = "USD"
    exchange: str = "NASDAQ"


@dataclass
class DividendSpec:
    ticker: str
    date: str
    amount: Decimal
    exchange: str = "NASDAQ"


@dataclass
class ExpectedHoldingSpec:
    """Figures of one holding after processing. Omitted fields are not checked."""
    ticker: str
    qty: Decimal
    realized_gain_net: Optional[Decimal] = None
    realized_tax_ils: Optional[Decimal] = None
    dividends_net: Optional[Decimal] = None


@dataclass
class LifecycleTestSpec:
    """A single lifecycle test case parsed from YAML."""
    id: str
    description: str
    template: str
    trades: List[TradeSpec]
    dividends: List[DividendSpec]
    expected: List[ExpectedHoldingSpec]
    portfolio_overrides: Dict[str, Any] = field(default_factory=dict)
    notes: Optional[str] = None


def _decimal_constructor(loader: yaml.SafeLoader, node: yaml.ScalarNode) -> Decimal:
    """YAML constructor for Decimal values."""
    value = loader.construct_scalar(node)
    return Decimal(str(value))


def _optional_decimal(d: Dict, key: str) -> Optional[Decimal]:
    return Decimal(str(d[key])) if key in d else None


def _parse_trade(trade_dict: Dict) -> TradeSpec:
    """Parse a trade dictionary into TradeSpec."""
    return TradeSpec(
        type=trade_dict["type"],
        ticker=trade_dict["ticker"],
        date=str(trade_dict["date"]),
        qty=Decimal(str(trade_dict["qty"])),
        price=Decimal(str(trade_dict["price"])),
        commission=Decimal(str(trade_dict.get("commission", 0))),
        currency=trade_dict.get("currency", "USD"),
        exchange=trade_dict.get("exchange", "NASDAQ"),
    )


def _parse_dividend(div_dict: Dict) -> DividendSpec:
    return DividendSpec(
        ticker=div_dict["ticker"],
        date=str(div_dict["date"]),
        amount=Decimal(str(div_dict["amount"])),
        exchange=div_dict.get("exchange", "NASDAQ"),
    )


def _parse_expected(holding_dict: Dict) -> ExpectedHoldingSpec:
    return ExpectedHoldingSpec(
        ticker=holding_dict["ticker"],
        qty=Decimal(str(holding_dict["qty"])),
        realized_gain_net=_optional_decimal(holding_dict, "realized_gain_net"),
        realized_tax_ils=_optional_decimal(holding_dict, "realized_tax_ils"),
        dividends_net=_optional_decimal(holding_dict, "dividends_net"),
    )


def load_yaml_spec(filename: str) -> Dict[str, Any]:
    """
    Load a YAML test specification file.

    Args:
        filename: Name of the YAML file in the fixtures directory

    Returns:
        Parsed YAML content as a dictionary
    """
    filepath = FIXTURES_DIR / filename

    # Register Decimal constructor for numeric values
    yaml.add_constructor("!decimal", _decimal_constructor, Loader=yaml.SafeLoader)

    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def parse_lifecycle_tests(spec_data: Dict[str, Any]) -> List[LifecycleTestSpec]:
    """
    Parse lifecycle test specifications from loaded YAML.

    Args:
        spec_data: Loaded YAML dictionary

    Returns:
        List of LifecycleTestSpec objects
    """
    tests = []
    for test_dict in spec_data.get("tests", []):
        inputs = test_dict.get("inputs", {})
        expected = test_dict.get("expected", {})
        tests.append(LifecycleTestSpec(
            id=test_dict["id"],
            description=test_dict["description"],
            template=inputs.get("template", "std_us"),
            portfolio_overrides=inputs.get("portfolio_overrides", {}),
            trades=[_parse_trade(t) for t in inputs.get("trades", [])],
            dividends=[_parse_dividend(d) for d in inputs.get("dividends", [])],
            expected=[_parse_expected(h) for h in expected.get("holdings", [])],
            notes=test_dict.get("notes"),
        ))
    return tests


def get_lifecycle_tests() -> List[LifecycleTestSpec]:
    """Load and parse the holding lifecycle test specifications."""
    return parse_lifecycle_tests(load_yaml_spec("lifecycle_scenarios.yaml"))
