# portfolio_tax_engine: lot, tax and performance accounting for multi-currency portfolios.
