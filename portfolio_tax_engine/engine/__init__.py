# Engine: holdings, FIFO lots, tax policies and aggregation.
