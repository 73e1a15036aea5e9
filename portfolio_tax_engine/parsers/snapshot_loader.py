# portfolio_tax_engine/parsers/snapshot_loader.py
import json
import logging
from typing import Any, Dict

from pydantic import ValidationError

from portfolio_tax_engine.domain.models import EngineInput
from portfolio_tax_engine.utils.cpi import CpiChainError, CpiObservation, CpiSeries, RawCpiPoint, chain_cpi_series
from portfolio_tax_engine.utils.exchange_rate_provider import SnapshotExchangeRateProvider

logger = logging.getLogger(__name__)


def load_engine_input(file_path: str) -> EngineInput:
    """
    Reads a JSON input snapshot (portfolios, transactions, dividends, exchange_rates,
    cpi or cpi_raw, prices, as_of). Malformed records raise pydantic's ValidationError.
    """
    logger.info(f"Loading input snapshot from {file_path}...")
    with open(file_path, "r", encoding="utf-8") as f:
        raw: Dict[str, Any] = json.load(f)
    try:
        engine_input = EngineInput.model_validate(raw)
    except ValidationError as e:
        logger.error(f"Input snapshot {file_path} failed validation with {e.error_count()} error(s).")
        raise
    logger.info(f"Loaded {len(engine_input.portfolios)} portfolios, {len(engine_input.transactions)} transactions, "
                f"{len(engine_input.dividends)} dividends, {len(engine_input.prices)} live prices.")
    return engine_input


def build_rate_provider(engine_input: EngineInput) -> SnapshotExchangeRateProvider:
    return SnapshotExchangeRateProvider.from_mapping(engine_input.exchange_rates)


def build_cpi_series(engine_input: EngineInput) -> CpiSeries:
    """
    Raw CBS observations are chained when present, else the ready index points are used.
    A chaining failure leaves a flat CPI, so no inflation adjustment is applied.
    """
    if engine_input.cpi_raw:
        raw_points = [RawCpiPoint(r.year, r.month, r.value, r.base_desc) for r in engine_input.cpi_raw]
        try:
            return CpiSeries(chain_cpi_series(raw_points, engine_input.cpi_series_id))
        except CpiChainError as e:
            logger.error(f"CPI chaining failed: {e}. Continuing without inflation adjustment.")
            return CpiSeries()
    return CpiSeries(CpiObservation(p.date, p.value) for p in engine_input.cpi)
