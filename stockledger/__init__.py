"""Personal stock ledger with average-cost positions and an optional external trade log."""

__version__ = "0.1.0"
