# portfolio_tax_engine/pipeline_runner.py
import logging
from typing import Optional

from portfolio_tax_engine.domain.models import EngineInput
from portfolio_tax_engine.engine.finance_engine import FinanceEngine
from portfolio_tax_engine.engine.recurring_fees import PriceProvider
from portfolio_tax_engine.parsers.snapshot_loader import build_cpi_series, build_rate_provider

logger = logging.getLogger(__name__)


def run_engine(engine_input: EngineInput,
               with_recurring_fees: bool = False,
               price_provider: Optional[PriceProvider] = None) -> FinanceEngine:
    """
    Runs the full pass over an input snapshot:
    process_events -> hydrate_live_prices -> (recurring fees) -> calculate_snapshot.
    """
    logger.info("Initializing finance engine...")
    engine = FinanceEngine(
        portfolios=engine_input.portfolios,
        exchange_rates=build_rate_provider(engine_input),
        cpi_series=build_cpi_series(engine_input),
        as_of=engine_input.as_of,
    )
    engine.process_events(engine_input.transactions, engine_input.dividends)
    engine.hydrate_live_prices(engine_input.prices)
    if with_recurring_fees:
        engine.generate_recurring_fees(price_provider)
    engine.calculate_snapshot()
    logger.info(f"Engine run complete for {len(engine.holdings)} holdings as of {engine.as_of}.")
    return engine
