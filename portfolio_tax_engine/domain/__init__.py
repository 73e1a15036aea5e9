# This file can be empty or used to make imports easier.

# Example (optional):
# from .enums import Currency, Exchange, TaxPolicy, DividendPolicy, TransactionType
# from .models import Portfolio, Transaction, DividendEvent, LivePrice
# from .money import Money, MultiCurrencyValue
