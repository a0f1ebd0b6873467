"""
Fundamental and risk scoring of discovered assets.

Market data is fetched through the instrument's venue connector; each fetch
degrades to its neutral value when the venue cannot provide it. Every
analysis produces a new immutable ``AssetProfile`` appended to the
instrument's profile history.
"""

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

import structlog

from ..config.defaults import RiskParams
from ..data.models import Instrument
from ..errors import VenueError
from ..metrics.indicators import ema, simple_returns, std_dev
from ..scanner.asset_scanner import DiscoveryEvent
from ..utils.time import elapsed_seconds, format_time, utc_now
from ..venues.base import VenueConnector, VolumeBreakdown

logger = structlog.get_logger(__name__)

FUNDAMENTAL_WEIGHTS = {
    "liquidity": 0.3,
    "holders": 0.2,
    "market_cap": 0.3,
    "volatility": 0.2,
}

RISK_WEIGHTS = {
    "liquidity": 0.3,
    "holders": 0.2,
    "volatility": 0.3,
    "age": 0.2,
}

MOMENTUM_EMA_PERIOD = 20
PROFILE_HISTORY_LIMIT = 50


class Recommendation(str, Enum):
    """Analyzer verdict."""
    BUY = "buy"
    HOLD = "hold"


@dataclass(frozen=True)
class MarketSnapshot:
    """Raw inputs gathered for one analysis."""
    liquidity: float = 0.0
    holder_count: int = 0
    market_cap: float = 0.0
    prices: tuple[float, ...] = ()
    volume: VolumeBreakdown = field(default_factory=VolumeBreakdown)


@dataclass(frozen=True)
class AssetProfile:
    """Scored view of an instrument at one point in time."""
    instrument: Instrument
    liquidity: float
    holder_count: int
    market_cap: float
    volatility: float
    momentum: float
    buy_pressure: float
    fundamental_score: float
    risk_score: float
    recommendation: Recommendation
    confidence: int
    discovered_at: datetime
    analyzed_at: datetime
    age_seconds: float = 0.0
    fundamental_components: dict[str, float] = field(default_factory=dict)
    risk_components: dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def is_buy(self) -> bool:
        return self.recommendation == Recommendation.BUY

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument": self.instrument.to_dict(),
            "liquidity": self.liquidity,
            "holder_count": self.holder_count,
            "market_cap": self.market_cap,
            "volatility": self.volatility,
            "momentum": self.momentum,
            "buy_pressure": self.buy_pressure,
            "fundamental_score": self.fundamental_score,
            "risk_score": self.risk_score,
            "recommendation": self.recommendation.value,
            "confidence": self.confidence,
            "discovered_at": format_time(self.discovered_at),
            "analyzed_at": format_time(self.analyzed_at),
            "age_seconds": self.age_seconds,
            "error": self.error,
        }


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _ratio(value: float, threshold: float) -> float:
    """``value / threshold`` limited to [0, 1]."""
    if threshold <= 0:
        return 0.0
    return max(0.0, min(value / threshold, 1.0))


def calculate_volatility(prices: list[float]) -> float:
    """Standard deviation of simple returns."""
    if len(prices) < 2:
        return 0.0
    return std_dev(simple_returns(prices))


def calculate_momentum(prices: list[float]) -> float:
    """Relative distance of the last price from its EMA."""
    if len(prices) < 2:
        return 0.0
    average = ema(prices, min(MOMENTUM_EMA_PERIOD, len(prices)))[-1]
    if average == 0:
        return 0.0
    return (prices[-1] - average) / average


def calculate_buy_pressure(volume: VolumeBreakdown) -> float:
    """Buy share of total volume."""
    if volume.total <= 0:
        return 0.0
    return volume.buy_volume / volume.total


def score_fundamentals(liquidity: float, holders: float, market_cap: float,
                       volatility: float, params: RiskParams) -> tuple[float, dict[str, float]]:
    """
    Weighted fundamental score.

    Returns:
        (score in [0, 100], weighted contribution of each metric)
    """
    normalized = {
        "liquidity": _ratio(liquidity, params.liquidity_threshold),
        "holders": _ratio(holders, params.holders_threshold),
        "market_cap": _ratio(market_cap, params.market_cap_threshold),
        "volatility": max(0.0, min(1.0, 1.0 - volatility)),
    }
    components = {name: 100.0 * FUNDAMENTAL_WEIGHTS[name] * value
                  for name, value in normalized.items()}
    return _clamp(sum(components.values())), components


def score_risk(liquidity: float, holders: float, volatility: float, age_seconds: float,
               params: RiskParams) -> tuple[float, dict[str, float]]:
    """
    Weighted risk score; higher is riskier.

    Returns:
        (score in [0, 100], weighted contribution of each metric)
    """
    normalized = {
        "liquidity": 1.0 - _ratio(liquidity, params.liquidity_threshold),
        "holders": 1.0 - _ratio(holders, params.holders_threshold),
        "volatility": max(0.0, min(volatility, 1.0)),
        "age": 1.0 - _ratio(age_seconds, params.age_window_seconds),
    }
    components = {name: 100.0 * RISK_WEIGHTS[name] * value
                  for name, value in normalized.items()}
    return _clamp(sum(components.values())), components


def recommend(fundamental: float, risk: float, momentum: float, buy_pressure: float,
              params: RiskParams) -> tuple[Recommendation, int]:
    """Recommendation and its confidence (0 unless buying)."""
    if (fundamental >= params.min_fundamental and risk <= params.max_risk
            and momentum >= params.min_momentum and buy_pressure >= params.min_buy_pressure):
        confidence = round(100 * (
            0.4 * fundamental / 100
            + 0.3 * (100 - risk) / 100
            + 0.15 * min(10 * momentum, 1.0)
            + 0.15 * buy_pressure
        ))
        return Recommendation.BUY, int(confidence)
    return Recommendation.HOLD, 0


class RiskAnalyzer:
    """Scores instruments and keeps their profile history."""

    def __init__(self, venues: dict[str, VenueConnector], params: RiskParams):
        self.venues = venues
        self.params = params
        self._lock = threading.Lock()
        self._profiles: dict[Instrument, deque[AssetProfile]] = {}
        self._origins: dict[Instrument, tuple[datetime, datetime]] = {}

    def analyze(self, target: Union[DiscoveryEvent, Instrument]) -> AssetProfile:
        """
        Score a discovered or known instrument.

        Args:
            target: Discovery event or instrument

        Returns:
            New profile, also appended to the instrument's history
        """
        if isinstance(target, DiscoveryEvent):
            instrument = target.instrument
            discovered_at = target.discovered_at
            created_at = target.pair_created_at or target.discovered_at
        else:
            instrument = target
            with self._lock:
                origin = self._origins.get(instrument)
            discovered_at, created_at = origin if origin else (utc_now(), utc_now())

        with self._lock:
            self._origins.setdefault(instrument, (discovered_at, created_at))

        snapshot = self._gather(instrument)
        profile = self._score(instrument, snapshot, discovered_at, created_at)

        with self._lock:
            history = self._profiles.setdefault(instrument, deque(maxlen=PROFILE_HISTORY_LIMIT))
            history.append(profile)

        logger.info(
            "Asset analyzed",
            instrument=instrument.key,
            fundamental_score=round(profile.fundamental_score, 2),
            risk_score=round(profile.risk_score, 2),
            recommendation=profile.recommendation.value,
            confidence=profile.confidence
        )
        return profile

    def rescore(self, instrument: Instrument) -> AssetProfile:
        """Re-run the analysis for an instrument with fresh market data."""
        return self.analyze(instrument)

    def get_asset_profile(self, instrument: Instrument) -> Optional[AssetProfile]:
        """Latest profile of an instrument."""
        with self._lock:
            history = self._profiles.get(instrument)
            return history[-1] if history else None

    def get_profile_history(self, instrument: Instrument) -> list[AssetProfile]:
        with self._lock:
            return list(self._profiles.get(instrument, ()))

    def profiled_instruments(self) -> list[Instrument]:
        with self._lock:
            return list(self._profiles)

    def _gather(self, instrument: Instrument) -> MarketSnapshot:
        venue = self.venues.get(instrument.venue)
        if venue is None:
            logger.warning("No connector for instrument venue", instrument=instrument.key)
            return MarketSnapshot()

        def fetch(name, fn, default):
            try:
                return fn()
            except VenueError as e:
                logger.debug("Market data unavailable", instrument=instrument.key,
                             metric=name, error=str(e))
                return default
            except Exception as e:
                logger.warning("Market data fetch failed", instrument=instrument.key,
                               metric=name, error=str(e), error_type=type(e).__name__)
                return default

        history = fetch("price_history",
                        lambda: venue.get_price_history(instrument, self.params.price_history_limit),
                        [])
        return MarketSnapshot(
            liquidity=fetch("liquidity", lambda: venue.get_liquidity(instrument), 0.0),
            holder_count=fetch("holders", lambda: venue.get_holder_count(instrument), 0),
            market_cap=fetch("market_cap", lambda: venue.get_market_cap(instrument), 0.0),
            prices=tuple(sample.close for sample in history),
            volume=fetch("volume", lambda: venue.get_transaction_volume(instrument),
                         VolumeBreakdown()),
        )

    def _score(self, instrument: Instrument, snapshot: MarketSnapshot,
               discovered_at: datetime, created_at: datetime) -> AssetProfile:
        now = utc_now()
        age_seconds = max(0.0, elapsed_seconds(created_at, now))
        error = None

        try:
            prices = list(snapshot.prices)
            volatility = calculate_volatility(prices)
            momentum = calculate_momentum(prices)
            buy_pressure = calculate_buy_pressure(snapshot.volume)
            fundamental, fundamental_components = score_fundamentals(
                snapshot.liquidity, snapshot.holder_count, snapshot.market_cap,
                volatility, self.params)
            risk, risk_components = score_risk(
                snapshot.liquidity, snapshot.holder_count, volatility, age_seconds, self.params)
        except (ArithmeticError, TypeError, ValueError) as e:
            logger.warning("Scoring failed, using worst-case scores",
                           instrument=instrument.key, error=str(e))
            volatility = momentum = buy_pressure = 0.0
            fundamental, risk = 0.0, 100.0
            fundamental_components, risk_components = {}, {}
            error = str(e)

        recommendation, confidence = recommend(fundamental, risk, momentum, buy_pressure,
                                               self.params)

        return AssetProfile(
            instrument=instrument,
            liquidity=snapshot.liquidity,
            holder_count=snapshot.holder_count,
            market_cap=snapshot.market_cap,
            volatility=volatility,
            momentum=momentum,
            buy_pressure=buy_pressure,
            fundamental_score=fundamental,
            risk_score=risk,
            recommendation=recommendation,
            confidence=confidence,
            discovered_at=discovered_at,
            analyzed_at=now,
            age_seconds=age_seconds,
            fundamental_components=fundamental_components,
            risk_components=risk_components,
            error=error,
        )
