# tests/conftest.py
import json
import os
import tempfile
from datetime import date
from decimal import Decimal, getcontext, ROUND_HALF_UP

import pytest

from portfolio_tax_engine import config as app_config
from tests.support.mock_providers import MockExchangeRateProvider


@pytest.fixture(scope="session", autouse=True)
def set_decimal_precision_session_wide():
    """
    Set global decimal precision and rounding for all tests in the session.
    This mirrors main.setup_decimal_context.
    """
    getcontext().prec = app_config.INTERNAL_CALCULATION_PRECISION

    valid_rounding_modes = ["ROUND_CEILING", "ROUND_DOWN", "ROUND_FLOOR", "ROUND_HALF_DOWN",
                            "ROUND_HALF_EVEN", "ROUND_HALF_UP", "ROUND_UP", "ROUND_05UP"]
    if app_config.DECIMAL_ROUNDING_MODE in valid_rounding_modes:
        getcontext().rounding = app_config.DECIMAL_ROUNDING_MODE # type: ignore
    else:
        getcontext().rounding = ROUND_HALF_UP # type: ignore


@pytest.fixture
def usd_ils_provider():
    """1 USD = 3.5 ILS everywhere."""
    return MockExchangeRateProvider(current={"ILS": Decimal("3.5"), "EUR": Decimal("0.9")})


@pytest.fixture
def drifting_provider():
    """1 USD = 3.5 ILS until mid 2023, 4.0 afterwards and currently."""
    return MockExchangeRateProvider(
        current={"ILS": Decimal("4.0")},
        schedules={"ILS": [(date(2023, 1, 1), Decimal("3.5")), (date(2023, 6, 1), Decimal("4.0"))]},
    )


@pytest.fixture
def temp_data_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def write_snapshot(temp_data_dir):
    """Writes a dict as a JSON input snapshot and returns its path."""
    def _write(payload, filename="snapshot.json"):
        path = os.path.join(temp_data_dir, filename)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        return path
    return _write
