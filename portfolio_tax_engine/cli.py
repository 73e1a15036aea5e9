# portfolio_tax_engine/cli.py
import argparse
import portfolio_tax_engine.config as config # For default paths and settings


def parse_arguments(argv=None):
    """Parses command line arguments for the application."""
    parser = argparse.ArgumentParser(description="Portfolio Tax Engine")

    parser.add_argument("--input", default=config.INPUT_SNAPSHOT_FILE_PATH, help="Path to the JSON input snapshot.")
    parser.add_argument("--display-currency", default=config.DEFAULT_DISPLAY_CURRENCY, help="Currency of the printed summary (ILS, USD, EUR, GBP).")
    parser.add_argument("--portfolio", action="append", dest="portfolios", metavar="PORTFOLIO_ID",
                        help="Restrict the summary to a portfolio. Repeatable.")

    # Reporting options
    parser.add_argument("--holdings", action="store_true", help="Print a per-holding table after the summary.")
    parser.add_argument("--recurring-fees", action="store_true", help="Synthesize percentage management fees from price history.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    return parser.parse_args(argv)
