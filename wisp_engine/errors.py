"""Exception hierarchy for the engine.

Validation-style errors also derive from ``ValueError`` so existing callers
that only catch ``ValueError`` keep working.
"""


class WispError(Exception):
    """Base class for all engine errors."""


class HistoryError(WispError):
    """Price history store errors."""


class OutOfOrderCandleError(HistoryError, ValueError):
    """Candle timestamp is older than the newest stored candle."""


class IndicatorError(WispError, ValueError):
    """Indicator evaluation errors."""


class InsufficientDataError(IndicatorError):
    """Not enough candles to warm up an indicator."""

    def __init__(self, indicator: str, required: int, available: int) -> None:
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"{indicator} needs {required} candles, only {available} available"
        )


class UnknownIndicatorError(IndicatorError):
    """Indicator name is not registered."""


class MarketDataError(WispError):
    """Market data could not be fetched or converted."""


class UnknownExchangeError(MarketDataError, KeyError):
    """No provider is registered for the exchange."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class UnsupportedMarketDataError(MarketDataError):
    """The provider does not offer this kind of data (e.g. funding on spot)."""


class SignalError(WispError, ValueError):
    """Invalid signal or signal action."""


class ExecutionError(WispError):
    """Order execution failed."""
