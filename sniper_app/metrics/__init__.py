"""Technical indicator engine"""

from .indicators import MACDResult, ema, macd, rsi, simple_returns, sma, std_dev

__all__ = [
    "MACDResult",
    "sma",
    "ema",
    "rsi",
    "macd",
    "simple_returns",
    "std_dev",
]
