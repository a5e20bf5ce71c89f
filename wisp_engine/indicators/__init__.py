"""Technical indicators: pure series functions, streaming state and the evaluator."""

from .atr import calculate_atr
from .bollinger import BollingerBands, calculate_bollinger_bands
from .ema import calculate_ema
from .evaluator import INDICATOR_DEFAULTS, IndicatorEvaluator, IndicatorOptions
from .macd import MACDResult, calculate_macd
from .rsi import calculate_rsi
from .sma import calculate_sma
from .stochastic import StochasticResult, calculate_stochastic
from .streaming import BandsValue, MACDValue, PriceSource, StochasticValue

__all__ = [
    "INDICATOR_DEFAULTS",
    "BandsValue",
    "BollingerBands",
    "IndicatorEvaluator",
    "IndicatorOptions",
    "MACDResult",
    "MACDValue",
    "PriceSource",
    "StochasticResult",
    "StochasticValue",
    "calculate_atr",
    "calculate_bollinger_bands",
    "calculate_ema",
    "calculate_macd",
    "calculate_rsi",
    "calculate_sma",
    "calculate_stochastic",
]
