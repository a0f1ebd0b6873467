"""
Pair registry scanning.

The scanner walks each venue's pair registry from a persisted cursor and
reports every token it has not seen before. Tokens already known on a venue
are never reported again, so repeated scans of an unchanged registry are
silent.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog

from ..config.defaults import ScannerParams
from ..data.models import Instrument
from ..errors import InvalidInstrumentError, PersistenceError, TransientVenueError, VenueError
from ..events.bus import EventBus, EventType, ScanProgress
from ..utils.time import format_time, utc_now
from ..venues.base import PairListing, PairRegistry

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DiscoveryEvent:
    """A token seen for the first time on a venue."""
    instrument: Instrument
    pair_id: str
    discovered_at: datetime
    pair_created_at: Optional[datetime] = None
    whitelisted: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "instrument": self.instrument.to_dict(),
            "pair_id": self.pair_id,
            "discovered_at": format_time(self.discovered_at),
            "pair_created_at": format_time(self.pair_created_at),
            "whitelisted": self.whitelisted,
        }


@dataclass
class VenueScanStats:
    """Running counters for one venue."""
    pairs_scanned: int = 0
    new_instruments: int = 0
    failures: int = 0
    cursor: int = 0
    registry_size: int = 0
    last_scan_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pairs_scanned": self.pairs_scanned,
            "new_instruments": self.new_instruments,
            "failures": self.failures,
            "cursor": self.cursor,
            "registry_size": self.registry_size,
            "last_scan_at": format_time(self.last_scan_at),
        }


class AssetScanner:
    """Discovers new instruments across every venue with a pair registry."""

    def __init__(
        self,
        registries: dict[str, PairRegistry],
        params: ScannerParams,
        event_bus: EventBus,
        trade_store=None,
        max_workers: int = 4
    ):
        self.registries = registries
        self.params = params
        self.event_bus = event_bus
        self.trade_store = trade_store
        self.max_workers = max(1, max_workers)

        self._blacklist = {address.lower() for address in params.blacklist}
        self._whitelist = {address.lower() for address in params.whitelist}

        self._lock = threading.Lock()
        self._known: dict[tuple[str, str], Instrument] = {}
        self._cursors: dict[str, int] = {}
        self._stats: dict[str, VenueScanStats] = {name: VenueScanStats() for name in registries}

    def scan(self) -> list[DiscoveryEvent]:
        """
        Run one scan pass over every venue in parallel.

        Returns:
            Discovery events for instruments first seen during this pass
        """
        if not self.registries:
            return []

        names = list(self.registries)
        results: dict[str, list[DiscoveryEvent]] = {}

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(names)),
                                thread_name_prefix="scanner") as executor:
            futures = {name: executor.submit(self._scan_venue, name) for name in names}
            for name, future in futures.items():
                try:
                    results[name] = future.result()
                except Exception as e:
                    logger.exception("Venue scan crashed", venue=name)
                    self._record_failure(name)
                    self.event_bus.error(f"Scan failed: {e}", stage="scan", venue=name, error=e)
                    results[name] = []

        events = [event for name in names for event in results[name]]
        if events:
            logger.info("Scan discovered instruments", count=len(events))
        return events

    def _scan_venue(self, name: str) -> list[DiscoveryEvent]:
        registry = self.registries[name]
        stats = self._stats[name]

        try:
            total = registry.pair_count()
        except VenueError as e:
            logger.warning("Pair registry listing failed", venue=name, error=str(e))
            self._record_failure(name)
            self.event_bus.error(f"Pair registry listing failed: {e}", stage="scan",
                                 venue=name, error=e)
            return []

        cursor = self._get_cursor(name)
        if cursor is None:
            if self.params.skip_existing_pairs:
                logger.info("Skipping existing pairs", venue=name, registry_size=total)
                self._set_cursor(name, total)
                self._persist_cursor(name, total)
                stats.registry_size = total
                stats.last_scan_at = utc_now()
                return []
            cursor = 0
            self._set_cursor(name, cursor)

        end = min(total, cursor + self.params.max_pairs_per_cycle)
        events: list[DiscoveryEvent] = []
        last_reported = None

        for index in range(cursor, end):
            try:
                listing = registry.pair_at(index)
            except TransientVenueError as e:
                logger.warning("Pair fetch interrupted, resuming next cycle",
                               venue=name, index=index, error=str(e))
                self._record_failure(name)
                self.event_bus.error(f"Pair fetch failed: {e}", stage="scan", venue=name,
                                     error=e, index=index)
                break
            except VenueError as e:
                logger.warning("Pair skipped", venue=name, index=index, error=str(e))
                self._record_failure(name)
                self.event_bus.error(f"Pair skipped: {e}", stage="scan", venue=name,
                                     error=e, index=index)
            else:
                for address in listing.tokens:
                    event = self._discover_token(name, registry, listing, address)
                    if event is not None:
                        events.append(event)

            self._set_cursor(name, index + 1)
            with self._lock:
                stats.pairs_scanned += 1

            if (index + 1 - cursor) % self.params.progress_interval == 0:
                self._progress(name, index + 1, total)
                last_reported = index + 1

        current = self.get_cursor(name)
        if last_reported != current:
            self._progress(name, current, total)

        self._persist_cursor(name, current)
        with self._lock:
            stats.new_instruments += len(events)
            stats.registry_size = total
            stats.last_scan_at = utc_now()

        logger.debug("Venue scan complete", venue=name, cursor=current, total=total,
                     discovered=len(events))
        return events

    def _discover_token(self, venue: str, registry: PairRegistry, listing: PairListing,
                        address: str) -> Optional[DiscoveryEvent]:
        key = address.lower()
        if key in self._blacklist:
            return None
        with self._lock:
            if (venue, key) in self._known:
                return None

        try:
            metadata = registry.token_metadata(address)
        except VenueError as e:
            error = e if isinstance(e, InvalidInstrumentError) else InvalidInstrumentError(
                str(e), venue=venue, address=address)
            logger.warning("Token metadata unavailable", venue=venue, address=address,
                           error=str(error))
            self._record_failure(venue)
            self.event_bus.error(f"Token metadata unavailable: {error}", stage="scan",
                                 venue=venue, error=error, address=address)
            return None

        instrument = Instrument(
            venue=venue,
            symbol=metadata.symbol,
            token_address=address,
            network=metadata.network,
            name=metadata.name,
        )

        with self._lock:
            if instrument.identity in self._known:
                return None
            self._known[instrument.identity] = instrument

        logger.info("New instrument discovered", venue=venue, symbol=instrument.symbol,
                    address=address, pair_id=listing.pair_id)
        return DiscoveryEvent(
            instrument=instrument,
            pair_id=listing.pair_id,
            discovered_at=utc_now(),
            pair_created_at=listing.created_at,
            whitelisted=key in self._whitelist,
        )

    def _progress(self, venue: str, current: int, total: int) -> None:
        self.event_bus.emit(EventType.SCAN_PROGRESS, ScanProgress(venue=venue, current=current,
                                                                 total=total))

    def _get_cursor(self, venue: str) -> Optional[int]:
        with self._lock:
            if venue in self._cursors:
                return self._cursors[venue]

        if self.trade_store is None:
            return None
        try:
            stored = self.trade_store.get_cursor(venue)
        except PersistenceError as e:
            logger.error("Cursor lookup failed", venue=venue, error=str(e))
            return None
        if stored is not None:
            self._set_cursor(venue, stored)
        return stored

    def _set_cursor(self, venue: str, cursor: int) -> None:
        with self._lock:
            self._cursors[venue] = cursor
            self._stats[venue].cursor = cursor

    def _persist_cursor(self, venue: str, cursor: int) -> None:
        if self.trade_store is None:
            return
        try:
            self.trade_store.save_cursor(venue, cursor)
        except PersistenceError as e:
            self.event_bus.error(f"Scan cursor not persisted: {e}", stage="persistence",
                                 venue=venue, error=e)

    def _record_failure(self, venue: str) -> None:
        with self._lock:
            self._stats[venue].failures += 1

    def is_known(self, instrument: Instrument) -> bool:
        with self._lock:
            return instrument.identity in self._known

    def known_instruments(self, venue: Optional[str] = None) -> list[Instrument]:
        """Instruments discovered so far, optionally for one venue."""
        with self._lock:
            return [
                instrument for instrument in self._known.values()
                if venue is None or instrument.venue == venue
            ]

    def get_cursor(self, venue: str) -> Optional[int]:
        with self._lock:
            return self._cursors.get(venue)

    def get_stats(self) -> dict[str, Any]:
        """Per-venue scan statistics."""
        with self._lock:
            return {name: stats.to_dict() for name, stats in self._stats.items()}
