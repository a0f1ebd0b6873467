"""
Main discovery and trading engine coordinator.

Owns the venue connectors, the scanner, the analyzer, the signal generator,
the position manager and the periodic tasks that drive them:

Pair registries → AssetScanner → RiskAnalyzer → SignalGenerator → PositionManager
"""

import threading
from collections import deque
from pathlib import Path
from typing import Any, Optional, Union

import structlog

from .analysis.risk_analyzer import AssetProfile, RiskAnalyzer
from .config.defaults import EngineConfig
from .config.loader import ConfigLoader
from .data.models import Instrument
from .errors import ConfigurationError, SystemFailureError, VenueError
from .events.bus import EventBus, EventType
from .events.file_sink import JsonlEventSink
from .logging.config import configure_logging
from .persistence.trade_store import TradeStore
from .scanner.asset_scanner import AssetScanner, DiscoveryEvent
from .scheduler.periodic import Scheduler
from .signals.generator import SignalGenerator
from .state.models import ClosedTrade, Position, Signal
from .state.positions import PositionManager
from .venues.factory import ConnectorFactory, default_factory
from .venues.guard import GuardedVenue

logger = structlog.get_logger(__name__)


class Engine:
    """
    Coordinator for the discovery and trading pipeline.

    Construct, ``start`` to run the periodic tasks on background threads,
    ``stop`` to shut down. The ``run_*_cycle`` methods execute one pass of a
    task synchronously.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        config_path: Optional[Union[str, Path]] = None,
        overrides: Optional[dict[str, Any]] = None,
        connector_factory: Optional[ConnectorFactory] = None,
        event_bus: Optional[EventBus] = None,
        setup_logging: bool = False
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Typed configuration; validated again before use
            config_path: Settings file used when ``config`` is not given
            overrides: Highest-priority configuration values
            connector_factory: Builders for venue kinds, built-ins when None
            event_bus: Bus to publish on, a new one when None
            setup_logging: Configure structlog from the logging section

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        if config is None:
            loader = ConfigLoader.create(Path(config_path) if config_path else None)
        else:
            loader = ConfigLoader(config_path=None, defaults=config)
        self.config = loader.load(overrides)

        if setup_logging:
            configure_logging(level=self.config.logging.level,
                              format_json=self.config.logging.format_json)

        self.logger = logger
        self.event_bus = event_bus or EventBus()

        storage = self.config.storage
        self.trade_store = TradeStore(storage.database_path) if storage.database_path else None
        self.event_sink: Optional[JsonlEventSink] = None
        if storage.events_path:
            self.event_sink = JsonlEventSink(storage.events_path)
            self.event_bus.subscribe_all(self.event_sink)

        self.venues = self._build_venues(connector_factory or default_factory())
        registries = {name: venue for name, venue in self.venues.items() if venue.has_registry}
        max_workers = self.config.scheduler.max_workers

        self.scanner = AssetScanner(registries, self.config.scanner, self.event_bus,
                                    trade_store=self.trade_store, max_workers=max_workers)
        self.analyzer = RiskAnalyzer(self.venues, self.config.risk)
        self.position_manager = PositionManager(self.venues, self.config.trading,
                                                self.event_bus, trade_store=self.trade_store)
        self.signal_generator = SignalGenerator(
            self.venues,
            self.config.indicators,
            self.config.signals,
            self.event_bus,
            has_position=self.position_manager.has_position,
            max_workers=max_workers,
        )

        self._analysis_queue: deque[DiscoveryEvent] = deque()
        self._queue_lock = threading.Lock()
        self._watchlist_loaded = False
        self._running = False
        self._closed = False

        self.scheduler = Scheduler()
        cadence = self.config.scheduler
        self.scheduler.add("scan", cadence.scan_interval, self.run_scan_cycle)
        self.scheduler.add("analysis", cadence.analysis_interval, self.run_analysis_cycle)
        self.scheduler.add("signals", cadence.signal_interval, self.run_signal_cycle)
        self.scheduler.add("monitor", cadence.monitor_interval, self.run_monitor_cycle)

        self.logger.info(
            "Engine initialized",
            venues=list(self.venues),
            scanning=list(registries),
            persistence=self.trade_store is not None
        )

    def _build_venues(self, factory: ConnectorFactory) -> dict[str, GuardedVenue]:
        venues: dict[str, GuardedVenue] = {}
        for settings in self.config.enabled_venues:
            venues[settings.name] = factory.create(
                settings,
                timeout_seconds=self.config.scheduler.venue_timeout_seconds,
                max_workers=self.config.scheduler.max_workers,
            )
        if not venues:
            self.logger.warning("No venues enabled")
        return venues

    # ------------------------------------------------------------------
    # Lifecycle

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Load the watchlist and start the periodic tasks."""
        if self._closed:
            raise SystemFailureError("Engine is closed; venue connections were released")
        if self._running:
            self.logger.warning("Engine already running")
            return
        self._load_watchlist()
        self.scheduler.start()
        self._running = True
        self.logger.info("Engine started")

    def stop(self, close_on_stop: Optional[bool] = None) -> None:
        """
        Stop the periodic tasks. The engine can be started again.

        Args:
            close_on_stop: Close every open position first; the configured
                ``trading.close_on_stop`` when None
        """
        if close_on_stop is None:
            close_on_stop = self.config.trading.close_on_stop

        self.scheduler.stop(timeout=self.config.scheduler.venue_timeout_seconds * 2)
        self._running = False

        if close_on_stop:
            closed = self.position_manager.close_all()
            self.logger.info("Positions closed on stop", closed=closed)
        self.logger.info("Engine stopped")

    def close(self, close_on_stop: Optional[bool] = None) -> None:
        """Stop if running, then release every venue connection for good."""
        if self._closed:
            return
        if self._running:
            self.stop(close_on_stop)
        self._closed = True
        for venue in self.venues.values():
            venue.close()
        self.logger.info("Engine closed")

    def _load_watchlist(self) -> None:
        if self._watchlist_loaded:
            return
        self._watchlist_loaded = True
        for entry in self.config.signals.watchlist:
            if entry.venue not in self.venues:
                self.logger.warning("Watchlist venue not enabled", venue=entry.venue,
                                    symbol=entry.symbol)
                continue
            self.signal_generator.watch(Instrument(
                venue=entry.venue,
                symbol=entry.symbol,
                token_address=entry.token_address,
                network=entry.network,
            ))

    # ------------------------------------------------------------------
    # Cycles

    def run_scan_cycle(self) -> list[DiscoveryEvent]:
        """Scan every registry and queue new instruments for analysis."""
        events = self.scanner.scan()
        if events:
            with self._queue_lock:
                self._analysis_queue.extend(events)
        return events

    def run_analysis_cycle(self) -> list[AssetProfile]:
        """Score every queued discovery and publish the profiles."""
        with self._queue_lock:
            pending = list(self._analysis_queue)
            self._analysis_queue.clear()

        profiles = []
        for event in pending:
            instrument = event.instrument
            try:
                profile = self.analyzer.analyze(event)
            except Exception as e:
                self.logger.exception("Analysis failed", instrument=instrument.key)
                self.event_bus.error(f"Analysis failed: {e}", stage="analysis",
                                     instrument=instrument.key, venue=instrument.venue, error=e)
                continue

            profiles.append(profile)
            self.event_bus.emit(EventType.DISCOVERY, profile)

            if profile.is_buy and self.config.signals.auto_watch_recommended:
                self.signal_generator.watch(instrument)

        return profiles

    def run_signal_cycle(self) -> list[Signal]:
        """Evaluate watched instruments and act on their signals."""
        self._load_watchlist()
        signals = self.signal_generator.generate()
        for signal in signals:
            self.event_bus.emit(EventType.SIGNAL, signal)
            self.position_manager.submit(signal)
        return signals

    def run_monitor_cycle(self) -> int:
        """Check exits and reconcile pending orders; returns positions closed."""
        return self.position_manager.monitor()

    # ------------------------------------------------------------------
    # Queries

    def watch(self, instrument: Instrument) -> bool:
        """Add an instrument to the signal watchlist."""
        if instrument.venue not in self.venues:
            raise ConfigurationError(f"Venue not enabled: {instrument.venue}",
                                     context={"instrument": instrument.key})
        return self.signal_generator.watch(instrument)

    def get_active_positions(self) -> list[Position]:
        return self.position_manager.get_active_positions()

    def get_closed_trades(self, limit: Optional[int] = None) -> list[ClosedTrade]:
        return self.position_manager.get_closed_trades(limit)

    def get_asset_profile(self, instrument: Instrument) -> Optional[AssetProfile]:
        return self.analyzer.get_asset_profile(instrument)

    def get_balance(self, venue: str, asset: str):
        """Balance of an asset on an enabled venue."""
        connector = self.venues.get(venue)
        if connector is None:
            raise VenueError(f"Venue not enabled: {venue}", venue=venue)
        return connector.get_balance(asset)

    def get_stats(self) -> dict[str, Any]:
        """Runtime statistics."""
        with self._queue_lock:
            pending = len(self._analysis_queue)
        return {
            "running": self._running,
            "venues": list(self.venues),
            "watchlist": [instrument.key for instrument in self.signal_generator.watchlist()],
            "pending_analysis": pending,
            "positions": self.position_manager.get_stats(),
            "scanner": self.scanner.get_stats(),
            "scheduler": self.scheduler.get_stats(),
            "events": self.event_bus.get_stats(),
        }
