# portfolio_tax_engine/config.py

from decimal import Decimal

# Input snapshot consumed by the CLI (portfolios, transactions, dividends, rates, CPI, prices)
INPUT_SNAPSHOT_FILE_PATH = "data/portfolio_snapshot.json"

# Currency used when no display currency is requested
DEFAULT_DISPLAY_CURRENCY = "ILS"

# Tax authority currency. Taxable gains and capital gains tax are computed in it.
TAX_CURRENCY = "ILS"

# Numerical Precision
INTERNAL_CALCULATION_PRECISION = 28
DECIMAL_ROUNDING_MODE = "ROUND_HALF_UP" # Python's decimal module uses strings like 'ROUND_HALF_UP', 'ROUND_HALF_EVEN'

# Output/Reporting Precisions (display only, never applied to intermediate calculations)
OUTPUT_PRECISION_AMOUNTS: Decimal = Decimal("0.01")
OUTPUT_PRECISION_PER_SHARE: Decimal = Decimal("0.000001")
OUTPUT_PRECISION_PERCENT: Decimal = Decimal("0.0001")
PRECISION_QUANTITY: Decimal = Decimal("0.00000001")

# A holding whose total quantity drops to or below this is treated as closed
QUANTITY_EPSILON: Decimal = Decimal("0.000000001")

# Historical exchange rate lookup
# CURRENT: exact date or the "current" set
# PREVIOUS_AVAILABLE: exact date, else the nearest earlier date within MAX_FALLBACK_DAYS_EXCHANGE_RATES, else "current"
# STRICT: exact date only
DEFAULT_RATE_FALLBACK_POLICY = "PREVIOUS_AVAILABLE"
MAX_FALLBACK_DAYS_EXCHANGE_RATES = 7

# CPI used when no series is available. A flat index means no inflation adjustment.
DEFAULT_CPI_VALUE: Decimal = Decimal("100")
HEADLINE_CPI_SERIES_ID = "120010" # CBS general CPI, must start at September 1951

# Aggregation
PERF_COMPLETENESS_THRESHOLD: Decimal = Decimal("0.9") # Share of AUM that must report a window
GAIN_PCT_EPSILON: Decimal = Decimal("0.000001") # Denominators below this yield 0 / fallback percentages
