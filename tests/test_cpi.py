# tests/test_cpi.py
from datetime import date
from decimal import Decimal

import pytest

from portfolio_tax_engine import config
from portfolio_tax_engine.utils.cpi import CpiChainError, CpiObservation, CpiSeries, RawCpiPoint, chain_cpi_series


def _series(*points) -> CpiSeries:
    return CpiSeries(CpiObservation(date=d, value=Decimal(str(v))) for d, v in points)


# =============================================================================
# Interpolated lookups
# =============================================================================

class TestCpiSeries:

    def test_empty_series_uses_default(self):
        assert CpiSeries().get_cpi(date(2023, 1, 1)) == config.DEFAULT_CPI_VALUE
        assert not CpiSeries()

    def test_exact_points(self):
        series = _series((date(2023, 1, 31), 100), (date(2023, 3, 3), 110))
        assert series.get_cpi(date(2023, 1, 31)) == Decimal(100)
        assert series.get_cpi(date(2023, 3, 3)) == Decimal(110)

    def test_linear_interpolation(self):
        series = _series((date(2023, 1, 1), 100), (date(2023, 1, 11), 110))
        assert series.get_cpi(date(2023, 1, 6)) == Decimal(105)
        assert series.get_cpi(date(2023, 1, 9)) == Decimal(108)

    def test_clamps_outside_range(self):
        series = _series((date(2023, 1, 31), 100), (date(2023, 2, 28), 102))
        assert series.get_cpi(date(2020, 1, 1)) == Decimal(100)
        assert series.get_cpi(date(2030, 1, 1)) == Decimal(102)

    def test_points_are_sorted(self):
        series = _series((date(2023, 2, 28), 102), (date(2023, 1, 31), 100))
        assert [p.value for p in series.points] == [Decimal(100), Decimal(102)]
        assert len(series) == 2


# =============================================================================
# Base chaining
# =============================================================================

class TestChainCpiSeries:

    def test_single_base_is_unchanged(self):
        chained = chain_cpi_series([
            RawCpiPoint(2023, 1, Decimal("100.4"), "Average 2022"),
            RawCpiPoint(2023, 2, Decimal("100.9"), "Average 2022"),
        ])
        assert [(o.date, o.value) for o in chained] == [
            (date(2023, 1, 31), Decimal("100.40")),
            (date(2023, 2, 28), Decimal("100.90")),
        ]

    def test_average_base_transition(self):
        chained = chain_cpi_series([
            RawCpiPoint(2019, 11, Decimal(100), "Average 2018"),
            RawCpiPoint(2019, 12, Decimal(102), "Average 2018"),
            RawCpiPoint(2020, 1, Decimal(100), "Average 2019"),
            RawCpiPoint(2020, 2, Decimal(110), "Average 2019"),
        ])
        assert [o.value for o in chained] == [Decimal("100.00"), Decimal("102.00"), Decimal("101.00"), Decimal("111.10")]

    def test_hebrew_average_marker(self):
        chained = chain_cpi_series([
            RawCpiPoint(2019, 12, Decimal(104), "ממוצע 2018"),
            RawCpiPoint(2020, 1, Decimal(100), "ממוצע 2019"),
        ])
        assert chained[-1].value == Decimal("104.00")

    def test_month_base_transition(self):
        chained = chain_cpi_series([
            RawCpiPoint(1951, 9, Decimal(100), "September 1951"),
            RawCpiPoint(1951, 12, Decimal(104), "September 1951"),
            RawCpiPoint(1952, 1, Decimal(105), "September 1951"),
            RawCpiPoint(1952, 2, Decimal(100), "January 1952"),
            RawCpiPoint(1952, 3, Decimal(102), "January 1952"),
        ], series_id=config.HEADLINE_CPI_SERIES_ID)
        assert [o.value for o in chained][-2:] == [Decimal("105.00"), Decimal("107.10")]

    def test_hebrew_month_base(self):
        chained = chain_cpi_series([
            RawCpiPoint(1952, 1, Decimal(110), "ספטמבר 1951"),
            RawCpiPoint(1952, 2, Decimal(100), "ינואר 1952"),
        ])
        assert chained[-1].value == Decimal("110.00")

    def test_input_order_does_not_matter(self):
        points = [
            RawCpiPoint(2020, 1, Decimal(100), "Average 2019"),
            RawCpiPoint(2019, 12, Decimal(102), "Average 2018"),
            RawCpiPoint(2019, 11, Decimal(100), "Average 2018"),
        ]
        assert chain_cpi_series(points)[-1].value == Decimal("101.00")

    def test_missing_average_raises(self):
        with pytest.raises(CpiChainError, match="annual average"):
            chain_cpi_series([
                RawCpiPoint(2019, 12, Decimal(102), "Average 2018"),
                RawCpiPoint(2021, 1, Decimal(100), "Average 2020"),
            ])

    def test_missing_month_raises(self):
        with pytest.raises(CpiChainError, match="month value"):
            chain_cpi_series([
                RawCpiPoint(1951, 9, Decimal(100), "September 1951"),
                RawCpiPoint(1960, 2, Decimal(100), "January 1960"),
            ])

    def test_headline_series_must_start_in_september_1951(self):
        with pytest.raises(CpiChainError, match="9/1951"):
            chain_cpi_series([RawCpiPoint(1960, 1, Decimal(100), "Average 1959")], series_id=config.HEADLINE_CPI_SERIES_ID)

    def test_empty(self):
        assert chain_cpi_series([]) == []

    def test_chained_series_feeds_lookups(self):
        chained = chain_cpi_series([
            RawCpiPoint(2019, 11, Decimal(100), "Average 2018"),
            RawCpiPoint(2019, 12, Decimal(102), "Average 2018"),
            RawCpiPoint(2020, 1, Decimal(100), "Average 2019"),
        ])
        assert CpiSeries(chained).get_cpi(date(2020, 1, 31)) == Decimal("101.00")
