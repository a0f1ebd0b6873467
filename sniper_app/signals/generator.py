"""
RSI / MACD signal generation over rolling price windows.

Each watched instrument keeps a bounded window of price samples. Every cycle
appends the latest price, recomputes RSI and MACD and emits at most one
signal per instrument. Instruments with a live position are still sampled
but never signalled.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import structlog

from ..config.defaults import IndicatorParams, SignalParams
from ..data.models import Instrument, PriceSample, PriceWindow
from ..errors import VenueError
from ..events.bus import EventBus
from ..metrics.indicators import macd, rsi
from ..state.models import Direction, Signal
from ..utils.time import utc_now
from ..venues.base import VenueConnector

logger = structlog.get_logger(__name__)


def decide(rsi_value: float, histogram: float, oversold: float,
           overbought: float) -> Optional[Direction]:
    """
    Combine RSI and MACD into a direction.

    Buy needs RSI below ``oversold`` with a positive histogram; sell needs RSI
    above ``overbought`` with a negative histogram. Anything else, including
    an RSI extreme contradicted by the histogram, yields no direction.
    """
    if rsi_value < oversold and histogram > 0:
        return Direction.BUY
    if rsi_value > overbought and histogram < 0:
        return Direction.SELL
    return None


class SignalGenerator:
    """Evaluates every watched instrument once per cycle."""

    def __init__(
        self,
        venues: dict[str, VenueConnector],
        indicator_params: IndicatorParams,
        signal_params: SignalParams,
        event_bus: EventBus,
        has_position: Optional[Callable[[Instrument], bool]] = None,
        max_workers: int = 4
    ):
        self.venues = venues
        self.indicator_params = indicator_params
        self.signal_params = signal_params
        self.event_bus = event_bus
        self.has_position = has_position or (lambda instrument: False)
        self.max_workers = max(1, max_workers)

        self._lock = threading.Lock()
        self._windows: dict[Instrument, PriceWindow] = {}

    # ------------------------------------------------------------------
    # Watchlist

    def watch(self, instrument: Instrument, warmup: bool = True) -> bool:
        """
        Start following an instrument.

        Returns:
            False if the instrument was already watched
        """
        with self._lock:
            if instrument in self._windows:
                return False
            window = PriceWindow(instrument, max_len=self.signal_params.window_size)
            self._windows[instrument] = window

        if warmup and self.signal_params.warmup_samples > 0:
            self._warm_up(window)

        logger.info("Instrument watched", instrument=instrument.key, samples=len(window))
        return True

    def unwatch(self, instrument: Instrument) -> bool:
        with self._lock:
            removed = self._windows.pop(instrument, None) is not None
        if removed:
            logger.info("Instrument unwatched", instrument=instrument.key)
        return removed

    def watchlist(self) -> list[Instrument]:
        with self._lock:
            return list(self._windows)

    def is_watched(self, instrument: Instrument) -> bool:
        with self._lock:
            return instrument in self._windows

    def get_closes(self, instrument: Instrument) -> list[float]:
        """Copy of the close prices in an instrument's window."""
        with self._lock:
            window = self._windows.get(instrument)
            return window.closes() if window else []

    def _warm_up(self, window: PriceWindow) -> None:
        venue = self.venues.get(window.instrument.venue)
        if venue is None:
            return
        try:
            history = venue.get_price_history(window.instrument, self.signal_params.warmup_samples)
        except VenueError as e:
            logger.warning("Warm-up history unavailable", instrument=window.instrument.key,
                           error=str(e))
            return
        with self._lock:
            kept = window.extend(history)
        logger.debug("Window warmed up", instrument=window.instrument.key, samples=kept)

    # ------------------------------------------------------------------
    # Evaluation

    def generate(self) -> list[Signal]:
        """
        Evaluate every watched instrument in parallel.

        Returns:
            Signals produced this cycle
        """
        instruments = self.watchlist()
        if not instruments:
            return []

        signals: list[Signal] = []
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(instruments)),
                                thread_name_prefix="signals") as executor:
            futures = {instrument: executor.submit(self.evaluate, instrument)
                       for instrument in instruments}
            for instrument, future in futures.items():
                try:
                    signal = future.result()
                except VenueError as e:
                    logger.warning("Signal evaluation failed", instrument=instrument.key,
                                   error=str(e))
                    self.event_bus.error(f"Signal evaluation failed: {e}", stage="signal",
                                         instrument=instrument.key, venue=instrument.venue,
                                         error=e)
                    continue
                except Exception as e:
                    logger.exception("Signal evaluation crashed", instrument=instrument.key)
                    self.event_bus.error(f"Signal evaluation failed: {e}", stage="signal",
                                         instrument=instrument.key, venue=instrument.venue,
                                         error=e)
                    continue
                if signal is not None:
                    signals.append(signal)

        return signals

    def evaluate(self, instrument: Instrument) -> Optional[Signal]:
        """Sample the latest price and apply the signal rules to one instrument."""
        venue = self.venues.get(instrument.venue)
        if venue is None:
            raise VenueError(f"No connector for venue {instrument.venue}", venue=instrument.venue)

        price = venue.get_price(instrument)
        now = utc_now()

        with self._lock:
            window = self._windows.get(instrument)
            if window is None:
                return None
            window.append(PriceSample.from_price(instrument, price, now))
            closes = window.closes()

        if self.has_position(instrument):
            logger.debug("Signal suppressed by live position", instrument=instrument.key)
            return None

        params = self.indicator_params
        rsi_value = rsi(closes, params.rsi_period)
        macd_result = macd(closes, params.macd_fast, params.macd_slow, params.macd_signal)
        direction = decide(rsi_value, macd_result.histogram,
                           self.signal_params.oversold, self.signal_params.overbought)

        if direction is None:
            if (rsi_value < self.signal_params.oversold
                    or rsi_value > self.signal_params.overbought):
                logger.debug("RSI extreme not confirmed by MACD", instrument=instrument.key,
                             rsi=rsi_value, macd_histogram=macd_result.histogram)
            return None

        if direction == Direction.BUY:
            reason = (f"RSI {rsi_value:.2f} below {self.signal_params.oversold} "
                      f"with positive MACD histogram")
        else:
            reason = (f"RSI {rsi_value:.2f} above {self.signal_params.overbought} "
                      f"with negative MACD histogram")

        signal = Signal(
            instrument=instrument,
            direction=direction,
            reason=reason,
            generated_at=now,
            rsi=rsi_value,
            macd_histogram=macd_result.histogram,
            price=price,
        )
        logger.info("Signal generated", instrument=instrument.key, direction=direction.value,
                    rsi=round(rsi_value, 2), macd_histogram=macd_result.histogram, price=price)
        return signal
