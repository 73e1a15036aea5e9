# portfolio_tax_engine/utils/type_utils.py
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from datetime import datetime, date

from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)


def safe_decimal(value: Any, default: Optional[Decimal] = None, raise_error: bool = False) -> Optional[Decimal]:
    """
    Safely converts a value to a Decimal.
    Handles None, empty strings, strings with commas (as thousands or decimal),
    and a trailing percent sign.
    If default is provided, returns default on conversion error.
    If raise_error is True, re-raises InvalidOperation instead of returning default.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)): # float goes through str() to avoid binary noise
        return Decimal(str(value))

    s_value = str(value).strip().replace(" ", "")
    if not s_value:
        return default

    try:
        is_percent = s_value.endswith("%")
        if is_percent:
            s_value = s_value[:-1].strip()
        if '.' in s_value and ',' in s_value: # e.g., "1,234.56"
            s_value = s_value.replace(',', '')
        elif ',' in s_value and '.' not in s_value: # e.g., "12,34"
            s_value = s_value.replace(',', '.')
        result = Decimal(s_value)
        return result / Decimal(100) if is_percent else result
    except InvalidOperation as e:
        if raise_error:
            raise e
        return default


def clamp_non_negative(value: Any, field_name: str = "value") -> Decimal:
    """
    Entry-point sanitizer for numbers arriving from upstream systems.
    NaN, infinities, unparseable and negative inputs become Decimal(0).
    """
    parsed = safe_decimal(value)
    if parsed is None:
        if value not in (None, ""):
            logger.warning(f"Could not parse {field_name} '{value}'. Using 0.")
        return Decimal(0)
    if not parsed.is_finite():
        logger.warning(f"Non-finite {field_name} '{value}' clamped to 0.")
        return Decimal(0)
    if parsed < Decimal(0):
        logger.warning(f"Negative {field_name} {parsed} clamped to 0.")
        return Decimal(0)
    return parsed


def parse_date(date_value: Any, default: Optional[date] = None) -> Optional[date]:
    """
    Parses ISO dates (YYYY-MM-DD), ISO timestamps, date and datetime objects
    and the other common formats (YYYYMMDD, DD/MM/YYYY, DD.MM.YYYY).
    Returns a datetime.date object or the default.
    """
    if isinstance(date_value, datetime):
        return date_value.date()
    if isinstance(date_value, date):
        return date_value
    if not date_value or not str(date_value).strip():
        return default

    s_date_str = str(date_value).strip()

    formats_to_try = [
        "%Y-%m-%d",   # 2023-12-31
        "%Y%m%d",     # 20231231
        "%d/%m/%Y",   # 31/12/2023
        "%d.%m.%Y",   # 31.12.2023
    ]

    date_part = s_date_str.split('T')[0].split(' ')[0]
    for fmt in formats_to_try:
        try:
            return datetime.strptime(date_part, fmt).date()
        except ValueError:
            continue

    # Fallback to dateutil.parser if specific formats fail (can be slower)
    try:
        return dateutil_parser.parse(s_date_str, dayfirst=True).date()
    except (ValueError, TypeError, OverflowError):
        return default
