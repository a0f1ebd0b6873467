"""Default configuration parameters for the discovery and trading engine."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class VenueSettings:
    """One exchange or DEX factory the engine connects to."""
    name: str
    kind: str = "paper"                              # Connector factory key
    enabled: bool = True
    scan_enabled: bool = True                        # Walk this venue's pair registry
    credentials: dict[str, Any] = field(default_factory=dict)  # Opaque, already decrypted
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WatchEntry:
    """Instrument the signal generator follows from startup."""
    venue: str
    symbol: str
    token_address: Optional[str] = None
    network: Optional[str] = None


@dataclass(frozen=True)
class IndicatorParams:
    """Indicator periods."""
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9


@dataclass(frozen=True)
class SignalParams:
    """Signal thresholds and rolling window sizing."""
    oversold: float = 30.0                           # RSI buy threshold
    overbought: float = 70.0                         # RSI sell threshold
    window_size: int = 200                           # Rolling price samples kept per instrument
    warmup_samples: int = 100                        # History requested when an instrument is first watched
    watchlist: tuple[WatchEntry, ...] = ()
    auto_watch_recommended: bool = True              # Watch assets the analyzer recommends buying


@dataclass(frozen=True)
class RiskParams:
    """Normalization thresholds and recommendation gates for asset scoring."""
    liquidity_threshold: float = 50_000.0            # Liquidity (USD) that normalizes to 1.0
    holders_threshold: float = 100.0
    market_cap_threshold: float = 100_000.0
    age_window_seconds: float = 7 * 24 * 60 * 60     # Age at which age risk reaches 0
    price_history_limit: int = 100

    # Recommendation gates
    min_fundamental: float = 70.0
    max_risk: float = 30.0
    min_momentum: float = 0.05
    min_buy_pressure: float = 0.6


@dataclass(frozen=True)
class TradingParams:
    """Position sizing and exit parameters."""
    position_size: float = 100.0                     # Quote currency committed per entry
    stop_loss_pct: float = 2.0
    take_profit_pct: float = 5.0
    max_open_positions: int = 5
    quote_asset: str = "USDT"                        # Used when a symbol carries no quote
    close_on_stop: bool = True
    stuck_after_attempts: int = 5                    # Reconcile cycles before reporting stuck
    closed_trades_retention: int = 1000              # In-memory closed trade history


@dataclass(frozen=True)
class ScannerParams:
    """Pair registry scanning parameters."""
    progress_interval: int = 50                      # Pairs between scan_progress events
    max_pairs_per_cycle: int = 500
    skip_existing_pairs: bool = False                # First pass only records the registry length
    blacklist: tuple[str, ...] = ()
    whitelist: tuple[str, ...] = ()


@dataclass(frozen=True)
class SchedulerParams:
    """Periodic task cadence and venue call bounds (seconds)."""
    scan_interval: float = 30.0
    analysis_interval: float = 30.0
    signal_interval: float = 60.0
    monitor_interval: float = 30.0
    venue_timeout_seconds: float = 10.0
    max_workers: int = 8


@dataclass(frozen=True)
class StorageParams:
    """Optional persistence targets."""
    database_path: Optional[str] = None              # SQLite trade/cursor store
    events_path: Optional[str] = None                # JSONL event log


@dataclass(frozen=True)
class LoggingParams:
    """Logging output."""
    level: str = "INFO"
    format_json: bool = False


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""
    venues: tuple[VenueSettings, ...]
    indicators: IndicatorParams
    signals: SignalParams
    risk: RiskParams
    trading: TradingParams
    scanner: ScannerParams
    scheduler: SchedulerParams
    storage: StorageParams
    logging: LoggingParams

    def venue(self, name: str) -> Optional[VenueSettings]:
        """Settings for a venue by name."""
        for venue in self.venues:
            if venue.name == name:
                return venue
        return None

    @property
    def enabled_venues(self) -> list[VenueSettings]:
        return [venue for venue in self.venues if venue.enabled]


def get_default_config() -> EngineConfig:
    """Get the default configuration instance."""
    return EngineConfig(
        venues=(),
        indicators=IndicatorParams(),
        signals=SignalParams(),
        risk=RiskParams(),
        trading=TradingParams(),
        scanner=ScannerParams(),
        scheduler=SchedulerParams(),
        storage=StorageParams(),
        logging=LoggingParams(),
    )
