"""
Technical indicators over plain price sequences.

Pure functions with no I/O. Short or empty input never raises: each
indicator documents the neutral value it returns instead.
"""

import math
from dataclasses import dataclass
from typing import Sequence

RSI_NEUTRAL = 50.0
RSI_MAX = 100.0


def sma(series: Sequence[float], period: int) -> list[float]:
    """
    Simple moving average.

    Args:
        series: Prices in chronological order
        period: Window length

    Returns:
        ``len(series) - period + 1`` averages, empty if the series is shorter
        than ``period``
    """
    values = list(series)
    if period <= 0 or len(values) < period:
        return []

    window_sum = sum(values[:period])
    result = [window_sum / period]
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        result.append(window_sum / period)
    return result


def ema(series: Sequence[float], period: int) -> list[float]:
    """
    Exponential moving average seeded with the first value.

    EMA_t = (price_t - EMA_{t-1}) * k + EMA_{t-1}, k = 2 / (period + 1)

    Args:
        series: Prices in chronological order
        period: Smoothing period

    Returns:
        One EMA value per input value, empty for empty input
    """
    values = list(series)
    if not values or period <= 0:
        return []

    multiplier = 2.0 / (period + 1)
    current = values[0]
    result = [current]
    for price in values[1:]:
        current = (price - current) * multiplier + current
        result.append(current)
    return result


def rsi(series: Sequence[float], period: int = 14) -> float:
    """
    Wilder's smoothed Relative Strength Index of the latest price.

    The first average gain/loss is the mean of the first ``period`` price
    changes; every later change is folded in with Wilder smoothing.

    Args:
        series: Prices in chronological order
        period: RSI period (default 14)

    Returns:
        RSI in [0, 100]; 50 when fewer than ``period`` changes are available,
        100 when the average loss is zero
    """
    values = list(series)
    if period <= 0 or len(values) < period + 1:
        return RSI_NEUTRAL

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        change = values[i] - values[i - 1]
        if change >= 0:
            gains += change
        else:
            losses -= change

    avg_gain = gains / period
    avg_loss = losses / period

    for i in range(period + 1, len(values)):
        change = values[i] - values[i - 1]
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return RSI_MAX

    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


@dataclass(frozen=True)
class MACDResult:
    """Latest MACD values plus the full series they came from."""
    macd: float
    signal: float
    histogram: float
    macd_line: tuple[float, ...] = ()
    signal_line: tuple[float, ...] = ()
    histogram_line: tuple[float, ...] = ()

    @classmethod
    def zero(cls) -> "MACDResult":
        """Neutral result used when history is insufficient."""
        return cls(macd=0.0, signal=0.0, histogram=0.0)

    @property
    def is_zero(self) -> bool:
        return not self.histogram_line

    @property
    def crossed_up(self) -> bool:
        """Histogram turned positive on the latest value."""
        if len(self.histogram_line) < 2:
            return False
        return self.histogram_line[-2] <= 0 < self.histogram_line[-1]

    @property
    def crossed_down(self) -> bool:
        """Histogram turned negative on the latest value."""
        if len(self.histogram_line) < 2:
            return False
        return self.histogram_line[-2] >= 0 > self.histogram_line[-1]


def macd(series: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> MACDResult:
    """
    Moving Average Convergence Divergence.

    macd_line = EMA(fast) - EMA(slow); signal_line = EMA(macd_line, signal);
    histogram = macd_line - signal_line

    Args:
        series: Prices in chronological order
        fast: Fast EMA period
        slow: Slow EMA period
        signal: Signal line EMA period

    Returns:
        MACDResult; ``MACDResult.zero()`` when ``len(series) < slow + signal``
    """
    values = list(series)
    if len(values) < slow + signal:
        return MACDResult.zero()

    fast_ema = ema(values, fast)
    slow_ema = ema(values, slow)
    macd_line = [f - s for f, s in zip(fast_ema, slow_ema)]
    signal_line = ema(macd_line, signal)
    histogram = [m - s for m, s in zip(macd_line, signal_line)]

    return MACDResult(
        macd=macd_line[-1],
        signal=signal_line[-1],
        histogram=histogram[-1],
        macd_line=tuple(macd_line),
        signal_line=tuple(signal_line),
        histogram_line=tuple(histogram),
    )


def simple_returns(series: Sequence[float]) -> list[float]:
    """Period-over-period returns, skipping steps from a zero price."""
    values = list(series)
    return [
        (values[i] - values[i - 1]) / values[i - 1]
        for i in range(1, len(values))
        if values[i - 1] != 0
    ]


def std_dev(series: Sequence[float]) -> float:
    """Population standard deviation, 0 for fewer than two values."""
    values = list(series)
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance)
