# portfolio_tax_engine/utils/cpi.py
import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from portfolio_tax_engine import config

logger = logging.getLogger(__name__)


class CpiChainError(ValueError):
    """Raised when a base transition cannot be linked. Mis-chaining would corrupt every real-gain figure."""


@dataclass(frozen=True)
class CpiObservation:
    date: date
    value: Decimal


@dataclass(frozen=True)
class RawCpiPoint:
    """One CBS-style observation: the index value relative to the base in force at the time."""
    year: int
    month: int
    value: Decimal
    base_desc: str


HEBREW_MONTHS: Dict[str, int] = {
    "ינואר": 1, "פברואר": 2, "מרץ": 3, "אפריל": 4, "מאי": 5, "יוני": 6,
    "יולי": 7, "אוגוסט": 8, "ספטמבר": 9, "אוקטובר": 10, "נובמבר": 11, "דצמבר": 12,
}
ENGLISH_MONTHS: Dict[str, int] = {name.upper(): i for i, name in enumerate(calendar.month_name) if name}
AVERAGE_MARKERS = ("ממוצע", "AVERAGE", "AVG")

_YEAR_RE = re.compile(r"\d{4}")
_CHAIN_ROUNDING = Decimal("0.01")


class CpiSeries:
    """
    CPI observations ordered by date. Lookups interpolate linearly between the
    bracketing points and clamp to the first/last point outside the covered range.
    """
    def __init__(self, points: Optional[Iterable[CpiObservation]] = None):
        self.points: List[CpiObservation] = sorted(points or [], key=lambda p: p.date)

    def __len__(self) -> int:
        return len(self.points)

    def __bool__(self) -> bool:
        return bool(self.points)

    def get_cpi(self, on_date: date) -> Decimal:
        if not self.points:
            return config.DEFAULT_CPI_VALUE

        first, last = self.points[0], self.points[-1]
        if on_date <= first.date:
            return first.value
        if on_date >= last.date:
            return last.value

        for earlier, later in zip(self.points, self.points[1:]):
            if earlier.date <= on_date <= later.date:
                span_days = (later.date - earlier.date).days
                if span_days == 0:
                    return later.value
                ratio = Decimal((on_date - earlier.date).days) / Decimal(span_days)
                return earlier.value + (later.value - earlier.value) * ratio
        return last.value


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def _is_average_base(base_desc: str) -> bool:
    upper = base_desc.upper()
    return any(marker in upper for marker in AVERAGE_MARKERS)


def _base_month(base_desc: str) -> Optional[int]:
    for word in base_desc.replace(",", " ").split():
        if word in HEBREW_MONTHS:
            return HEBREW_MONTHS[word]
        if word.upper() in ENGLISH_MONTHS:
            return ENGLISH_MONTHS[word.upper()]
    return None


def chain_cpi_series(raw_points: Sequence[RawCpiPoint], series_id: Optional[str] = None) -> List[CpiObservation]:
    """
    Chains CBS observations published against successive bases into a single
    continuous index expressed in the first base.

    A base change ("average 2020 = 100" or "September 1951 = 100") is linked through the
    already-chained annual average or month value of the new base period.
    Raises CpiChainError when that linking value is unavailable or when the
    headline series does not start at September 1951.
    """
    ordered = sorted(raw_points, key=lambda p: (p.year, p.month))
    if not ordered:
        return []

    if series_id == config.HEADLINE_CPI_SERIES_ID and (ordered[0].year, ordered[0].month) != (1951, 9):
        msg = f"CPI series {series_id} must start at 9/1951 (found {ordered[0].month}/{ordered[0].year})."
        logger.error(msg)
        raise CpiChainError(msg)

    chain_factor = Decimal(1)
    current_base = ordered[0].base_desc
    chained_by_month: Dict[Tuple[int, int], Decimal] = {}
    year_stats: Dict[int, Tuple[Decimal, int]] = {}
    result: List[CpiObservation] = []

    for point in ordered:
        if point.base_desc != current_base:
            year_match = _YEAR_RE.search(point.base_desc)
            base_year = int(year_match.group(0)) if year_match else 0

            if _is_average_base(point.base_desc):
                stats = year_stats.get(base_year)
                if stats is None:
                    msg = f"Missing annual average for CPI base transition: '{point.base_desc}'."
                    logger.error(msg)
                    raise CpiChainError(msg)
                previous_base_value = stats[0] / Decimal(stats[1])
            else:
                base_month = _base_month(point.base_desc)
                linked = chained_by_month.get((base_year, base_month)) if base_month else None
                if linked is None:
                    msg = f"Missing month value for CPI base transition: '{point.base_desc}'."
                    logger.error(msg)
                    raise CpiChainError(msg)
                previous_base_value = linked

            chain_factor = previous_base_value / Decimal(100)
            logger.debug(f"CPI base changed to '{point.base_desc}' at {point.month}/{point.year}. Chain factor {chain_factor}.")
            current_base = point.base_desc

        value = point.value * chain_factor
        chained_by_month[(point.year, point.month)] = value
        total, count = year_stats.get(point.year, (Decimal(0), 0))
        year_stats[point.year] = (total + value, count + 1)

        result.append(CpiObservation(
            date=_month_end(point.year, point.month),
            value=value.quantize(_CHAIN_ROUNDING, rounding=ROUND_HALF_UP),
        ))

    return result
