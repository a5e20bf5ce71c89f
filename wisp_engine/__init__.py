"""wisp trading engine: indicators, market data, signals and strategy scheduling."""

__version__ = "0.1.0"
