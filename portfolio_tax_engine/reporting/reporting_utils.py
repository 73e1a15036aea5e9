# portfolio_tax_engine/reporting/reporting_utils.py
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

import portfolio_tax_engine.config as config

logger = logging.getLogger(__name__)

Numeric = Union[Decimal, int, float, str]


def _quantize(val: Optional[Numeric], precision: Decimal, label: str) -> Decimal:
    if val is None:
        return Decimal(0).quantize(precision, rounding=ROUND_HALF_UP)
    if not isinstance(val, Decimal):
        try:
            val = Decimal(str(val))
        except ArithmeticError:
            logger.error(f"Could not convert value '{val}' of type {type(val)} to Decimal in {label}. Returning zero.")
            return Decimal(0).quantize(precision, rounding=ROUND_HALF_UP)
    return val.quantize(precision, rounding=ROUND_HALF_UP)


def _q(val: Optional[Numeric]) -> Decimal:
    """Quantize a total amount."""
    return _quantize(val, config.OUTPUT_PRECISION_AMOUNTS, "_q")


def _q_price(val: Optional[Numeric]) -> Decimal:
    """Quantize a per-share price."""
    return _quantize(val, config.OUTPUT_PRECISION_PER_SHARE, "_q_price")


def _q_qty(val: Optional[Numeric]) -> Decimal:
    return _quantize(val, config.PRECISION_QUANTITY, "_q_qty")


def _pct(val: Optional[Numeric]) -> str:
    """Fraction rendered as a percentage string, e.g. 0.0525 -> '5.25%'."""
    fraction = _quantize(val, config.OUTPUT_PRECISION_PERCENT, "_pct")
    return f"{(fraction * 100).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}%"
