"""Stock ledger and stock-count reconciliation backend."""

__version__ = "0.1.0"
