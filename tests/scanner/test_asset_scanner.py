"""Tests for pair registry scanning and discovery."""

import pytest

from sniper_app.config.defaults import ScannerParams
from sniper_app.errors import TransientVenueError
from sniper_app.events.bus import EventType
from sniper_app.persistence.trade_store import TradeStore
from sniper_app.scanner.asset_scanner import AssetScanner
from sniper_app.venues.paper import PaperVenue


def _listed_venue(name, token_factory, pairs, offset=0):
    venue = PaperVenue(name)
    for i in range(pairs):
        venue.add_pair((token_factory(offset + 2 * i + 1), token_factory(offset + 2 * i + 2)))
    return venue


class TestAssetScannerDiscovery:
    """Test discovery and idempotence."""

    def test_first_scan_discovers_every_token(self, event_bus, token_factory):
        venue = _listed_venue("dex", token_factory, 3)
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)

        events = scanner.scan()

        assert len(events) == 6
        assert {event.instrument.venue for event in events} == {"dex"}
        assert scanner.get_cursor("dex") == 3

    def test_second_scan_of_unchanged_registry_is_silent(self, event_bus, token_factory):
        venue = _listed_venue("dex", token_factory, 3)
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)

        scanner.scan()
        assert scanner.scan() == []

    def test_new_pairs_only_report_new_tokens(self, event_bus, token_factory):
        """A token seen in an earlier pair is not reported again."""
        venue = _listed_venue("dex", token_factory, 1)
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)
        scanner.scan()

        venue.add_pair((token_factory(1), token_factory(99)))
        events = scanner.scan()

        assert [event.instrument.symbol for event in events] == ["TK99"]

    def test_same_token_on_two_venues_is_two_instruments(self, event_bus, token_factory):
        a = _listed_venue("a", token_factory, 1)
        b = _listed_venue("b", token_factory, 1)
        scanner = AssetScanner({"a": a, "b": b}, ScannerParams(), event_bus)

        events = scanner.scan()

        assert len(events) == 4
        assert len(scanner.known_instruments("a")) == 2
        assert len(scanner.known_instruments()) == 4

    def test_blacklist_and_whitelist(self, event_bus, token_factory):
        venue = _listed_venue("dex", token_factory, 1)
        blocked = token_factory(1).address.upper()
        allowed = token_factory(2).address
        params = ScannerParams(blacklist=(blocked,), whitelist=(allowed,))
        scanner = AssetScanner({"dex": venue}, params, event_bus)

        events = scanner.scan()

        assert len(events) == 1
        assert events[0].instrument.token_address == allowed
        assert events[0].whitelisted is True


class TestAssetScannerFailures:
    """Test failure isolation."""

    def test_token_metadata_failure_skips_only_that_token(self, event_bus, captured_events,
                                                           token_factory):
        venue = _listed_venue("dex", token_factory, 2)
        venue.break_token(token_factory(1).address)
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)

        events = scanner.scan()

        assert len(events) == 3
        errors = [e for e in captured_events if e.type == EventType.ERROR]
        assert len(errors) == 1
        assert errors[0].payload.error_type == "InvalidInstrumentError"
        assert scanner.get_stats()["dex"]["failures"] == 1

    def test_failed_token_is_not_blacklisted(self, event_bus, token_factory):
        """A token whose metadata failed is discovered once it resolves."""
        venue = _listed_venue("dex", token_factory, 1)
        venue.break_token(token_factory(1).address)
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)
        scanner.scan()

        venue._bad_tokens.clear()
        venue.add_pair((token_factory(1), token_factory(50)))
        events = scanner.scan()

        assert {event.instrument.symbol for event in events} == {"TK1", "TK50"}

    def test_registry_failure_aborts_only_that_venue(self, event_bus, captured_events,
                                                      token_factory):
        healthy = _listed_venue("healthy", token_factory, 2)
        broken = _listed_venue("broken", token_factory, 2, offset=100)
        broken.fail("pair_count", TransientVenueError("unreachable", venue="broken"))
        scanner = AssetScanner({"healthy": healthy, "broken": broken}, ScannerParams(),
                               event_bus)

        events = scanner.scan()

        assert {event.instrument.venue for event in events} == {"healthy"}
        assert scanner.get_cursor("broken") is None
        errors = [e for e in captured_events if e.type == EventType.ERROR]
        assert errors[0].payload.venue == "broken"

        broken.clear_failure()
        retried = scanner.scan()
        assert len(retried) == 4
        assert {event.instrument.venue for event in retried} == {"broken"}

    def test_transient_pair_failure_resumes_from_same_index(self, event_bus, token_factory):
        venue = _listed_venue("dex", token_factory, 3)
        venue.fail("pair_at", TransientVenueError("timeout", venue="dex", timed_out=True))
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)

        assert scanner.scan() == []
        assert scanner.get_cursor("dex") == 0

        venue.clear_failure()
        assert len(scanner.scan()) == 6


class TestAssetScannerCursor:
    """Test cursor handling, bounds and progress."""

    def test_progress_events(self, event_bus, captured_events, token_factory):
        venue = _listed_venue("dex", token_factory, 5)
        scanner = AssetScanner({"dex": venue}, ScannerParams(progress_interval=2), event_bus)

        scanner.scan()

        progress = [e.payload for e in captured_events if e.type == EventType.SCAN_PROGRESS]
        assert [(p.current, p.total) for p in progress] == [(2, 5), (4, 5), (5, 5)]

    def test_max_pairs_per_cycle(self, event_bus, token_factory):
        venue = _listed_venue("dex", token_factory, 5)
        scanner = AssetScanner({"dex": venue}, ScannerParams(max_pairs_per_cycle=2), event_bus)

        assert len(scanner.scan()) == 4
        assert scanner.get_cursor("dex") == 2
        assert len(scanner.scan()) == 4
        assert len(scanner.scan()) == 2
        assert scanner.scan() == []

    def test_skip_existing_pairs(self, event_bus, token_factory):
        venue = _listed_venue("dex", token_factory, 4)
        scanner = AssetScanner({"dex": venue}, ScannerParams(skip_existing_pairs=True), event_bus)

        assert scanner.scan() == []
        assert scanner.get_cursor("dex") == 4

        venue.add_pair((token_factory(500), token_factory(501)))
        assert len(scanner.scan()) == 2

    def test_cursor_persisted_across_restarts(self, event_bus, token_factory, tmp_path):
        store = TradeStore(str(tmp_path / "trades.db"))
        venue = _listed_venue("dex", token_factory, 3)
        AssetScanner({"dex": venue}, ScannerParams(), event_bus, trade_store=store).scan()

        restarted = AssetScanner({"dex": venue}, ScannerParams(), event_bus, trade_store=store)
        assert restarted.scan() == []
        assert restarted.get_cursor("dex") == 3

    def test_stats(self, event_bus, token_factory):
        venue = _listed_venue("dex", token_factory, 2)
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)
        scanner.scan()

        stats = scanner.get_stats()["dex"]
        assert stats["pairs_scanned"] == 2
        assert stats["new_instruments"] == 4
        assert stats["registry_size"] == 2
        assert stats["last_scan_at"] is not None

    @pytest.mark.parametrize("pairs", [0, 1])
    def test_progress_reported_at_end_of_pass(self, event_bus, captured_events,
                                              token_factory, pairs):
        venue = _listed_venue("dex", token_factory, pairs)
        scanner = AssetScanner({"dex": venue}, ScannerParams(), event_bus)

        scanner.scan()

        progress = [e.payload for e in captured_events if e.type == EventType.SCAN_PROGRESS]
        assert (progress[-1].current, progress[-1].total) == (pairs, pairs)
