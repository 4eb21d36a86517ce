"""Stock Forecaster — daily multi-ticker forecast digest delivered by email."""

__version__ = "0.1.0"
