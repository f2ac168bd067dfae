# Data module
"""Price catalog sources."""

from stockledger.data.catalog import IPriceSource, Quote, StaticCatalog

__all__ = ["IPriceSource", "Quote", "StaticCatalog"]
