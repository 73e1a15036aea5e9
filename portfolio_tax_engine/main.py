# portfolio_tax_engine/main.py
import logging
import sys
from decimal import getcontext

import portfolio_tax_engine.config as config
from portfolio_tax_engine.cli import parse_arguments
from portfolio_tax_engine.parsers.snapshot_loader import load_engine_input
from portfolio_tax_engine.pipeline_runner import run_engine
from portfolio_tax_engine.reporting.console_reporter import generate_console_holdings_report, generate_console_summary
from portfolio_tax_engine.utils.currency_converter import UnknownCurrencyError, normalize_currency

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def setup_decimal_context():
    """Sets the global decimal precision and rounding mode."""
    getcontext().prec = config.INTERNAL_CALCULATION_PRECISION
    valid_rounding_modes = ["ROUND_CEILING", "ROUND_DOWN", "ROUND_FLOOR", "ROUND_HALF_DOWN",
                            "ROUND_HALF_EVEN", "ROUND_HALF_UP", "ROUND_UP", "ROUND_05UP"]
    rounding_mode_to_set = config.DECIMAL_ROUNDING_MODE
    if rounding_mode_to_set not in valid_rounding_modes:
        logger.warning(f"Invalid DECIMAL_ROUNDING_MODE '{rounding_mode_to_set}' in config. Using ROUND_HALF_UP as fallback.")
        rounding_mode_to_set = "ROUND_HALF_UP"

    getcontext().rounding = rounding_mode_to_set
    logger.info(f"Global decimal precision set to {getcontext().prec}, rounding mode to {getcontext().rounding}.")


def main_application(argv=None):
    args = parse_arguments(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    setup_decimal_context()

    try:
        display_currency = normalize_currency(args.display_currency)
    except UnknownCurrencyError as e:
        logger.critical(f"Invalid display currency: {e}")
        sys.exit(1)

    logger.info("Starting Portfolio Tax Engine...")
    try:
        engine_input = load_engine_input(args.input)
        engine = run_engine(engine_input, with_recurring_fees=args.recurring_fees)
        summary = engine.get_global_summary(display_currency, filter_ids=args.portfolios)
    except Exception as e:
        logger.critical(f"Engine pipeline failed: {e}. Exiting.", exc_info=True)
        sys.exit(1)

    generate_console_summary(summary, display_currency)
    if args.holdings:
        generate_console_holdings_report(engine, display_currency)
    logger.info("Processing finished.")


if __name__ == "__main__":
    main_application()
