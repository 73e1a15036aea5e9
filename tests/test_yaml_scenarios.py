# tests/test_yaml_scenarios.py
"""Holding lifecycle scenarios declared in tests/fixtures/lifecycle_scenarios.yaml."""
from decimal import Decimal

import pytest

from portfolio_tax_engine.domain.models import DividendEvent, Transaction
from tests.fixtures import get_lifecycle_tests, load_yaml_spec
from tests.support.builders import make_portfolio, run_events
from tests.support.mock_providers import MockExchangeRateProvider

SPECS = get_lifecycle_tests()
RATES = load_yaml_spec("lifecycle_scenarios.yaml")["metadata"]["rates"]


def test_scenarios_are_loaded():
    assert len(SPECS) >= 5
    assert isinstance(RATES["ILS"], Decimal)


@pytest.mark.parametrize("spec", SPECS, ids=[s.id for s in SPECS])
def test_lifecycle_scenario(spec):
    provider = MockExchangeRateProvider(current=RATES)
    transactions = [
        Transaction(date=t.date, portfolio_id="p1", ticker=t.ticker, exchange=t.exchange, type=t.type,
                    qty=t.qty, price=t.price, currency=t.currency, commission=t.commission)
        for t in spec.trades
    ]
    dividends = [DividendEvent(ticker=d.ticker, exchange=d.exchange, date=d.date, amount=d.amount) for d in spec.dividends]

    engine = run_events([make_portfolio(spec.template, **spec.portfolio_overrides)], provider, transactions, dividends)

    for expected in spec.expected:
        holding = engine.get_holding("p1", expected.ticker)
        assert holding is not None, f"{spec.id}: no holding for {expected.ticker}"
        assert holding.qty_total == expected.qty, spec.description
        if expected.realized_gain_net is not None:
            assert holding.realized_gain_net == expected.realized_gain_net, spec.description
        if expected.realized_tax_ils is not None:
            assert holding.realized_capital_gains_tax_ils == expected.realized_tax_ils, spec.description
        if expected.dividends_net is not None:
            assert holding.dividends_total == expected.dividends_net, spec.description
