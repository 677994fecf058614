"""MarketSync: catalog-to-marketplace synchronization service."""

__version__ = "0.4.0"
