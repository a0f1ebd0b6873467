"""Unit tests for the engine coordinator."""

import pytest

from sniper_app.data.models import Instrument
from sniper_app.engine import Engine
from sniper_app.errors import ConfigurationError, SystemFailureError, VenueError
from sniper_app.events.bus import EventBus, EventType
from sniper_app.state.models import Direction, ExitReason, PositionState
from sniper_app.venues.factory import ConnectorFactory
from sniper_app.venues.paper import PaperVenue

DECLINE = [200.0 - i for i in range(100)]


def _overrides(**sections):
    config = {
        "venues": [{"name": "paper", "kind": "custom"}],
        "scheduler": {
            "scan_interval": 3600,
            "analysis_interval": 3600,
            "signal_interval": 3600,
            "monitor_interval": 3600,
            "venue_timeout_seconds": 2,
        },
    }
    config.update(sections)
    return config


@pytest.fixture
def factory(venue):
    """Factory whose ``custom`` kind returns the shared paper venue."""
    factory = ConnectorFactory()
    factory.register("custom", lambda settings: venue, provides_registry=True)
    return factory


@pytest.fixture
def make_engine(factory, event_bus):
    engines = []

    def build(**sections):
        engine = Engine(overrides=_overrides(**sections), connector_factory=factory,
                        event_bus=event_bus)
        engines.append(engine)
        return engine

    yield build
    for engine in engines:
        engine.close(close_on_stop=False)


@pytest.fixture
def oversold(venue, instrument):
    """Price path that produces a buy signal at 104 on the first signal cycle."""
    venue.set_price_history(instrument, DECLINE)
    venue.set_price(instrument, 104.0)
    return instrument


class TestEngineConstruction:
    """Test configuration and venue wiring."""

    def test_engine_initialization(self, make_engine) -> None:
        engine = make_engine()

        assert list(engine.venues) == ["paper"]
        assert engine.venues["paper"].has_registry
        assert engine.trade_store is None
        assert engine.event_sink is None
        assert not engine.is_running
        assert {task.name for task in engine.scheduler.tasks} == {
            "scan", "analysis", "signals", "monitor"
        }

    def test_disabled_venue_is_not_built(self, make_engine) -> None:
        engine = make_engine(venues=[{"name": "paper", "kind": "custom", "enabled": False}])
        assert engine.venues == {}

    def test_unknown_venue_kind(self, event_bus) -> None:
        with pytest.raises(ConfigurationError):
            Engine(overrides=_overrides(), event_bus=event_bus)

    def test_invalid_configuration(self, factory) -> None:
        with pytest.raises(ConfigurationError):
            Engine(overrides=_overrides(trading={"position_size": 0}),
                   connector_factory=factory)


class TestEngineCycles:
    """Test the pipeline one cycle at a time."""

    def test_discovery_is_analyzed_and_watched(self, make_engine, venue, token_factory,
                                               captured_events) -> None:
        token = token_factory(7)
        venue.add_pair((token,))
        instrument = Instrument(venue="paper", symbol=token.symbol,
                                token_address=token.address, network=token.network)
        venue.set_market_data(instrument, liquidity=100_000, holders=500, market_cap=1_000_000,
                              buy_volume=900, sell_volume=100)
        venue.set_price_history(instrument, [1.0] * 30 + [1.2])
        engine = make_engine(risk={"age_window_seconds": 1})

        discoveries = engine.run_scan_cycle()
        assert [event.instrument for event in discoveries] == [instrument]
        assert engine.get_stats()["pending_analysis"] == 1

        profiles = engine.run_analysis_cycle()

        assert len(profiles) == 1
        assert profiles[0].is_buy
        assert engine.get_asset_profile(instrument) is profiles[0]
        assert engine.signal_generator.is_watched(instrument)
        published = [e.payload for e in captured_events if e.type == EventType.DISCOVERY]
        assert published == profiles
        assert engine.run_analysis_cycle() == []

    def test_hold_is_not_watched(self, make_engine, venue, token_factory) -> None:
        venue.add_pair((token_factory(8),))
        engine = make_engine()

        engine.run_scan_cycle()
        profiles = engine.run_analysis_cycle()

        assert not profiles[0].is_buy
        assert engine.signal_generator.watchlist() == []

    def test_signal_opens_and_monitor_closes(self, make_engine, venue, oversold,
                                             captured_events) -> None:
        engine = make_engine()
        engine.watch(oversold)

        signals = engine.run_signal_cycle()

        assert [s.direction for s in signals] == [Direction.BUY]
        positions = engine.get_active_positions()
        assert len(positions) == 1
        assert positions[0].status == PositionState.OPEN
        assert positions[0].entry_price == 104.0
        types = [e.type for e in captured_events]
        assert types.index(EventType.SIGNAL) < types.index(EventType.POSITION_OPENED)

        venue.set_price(oversold, 110.0)
        assert engine.run_monitor_cycle() == 1
        assert engine.get_active_positions() == []
        assert engine.get_closed_trades()[-1].exit_reason == ExitReason.TAKE_PROFIT

    def test_no_second_position_while_one_is_live(self, make_engine, venue, oversold) -> None:
        engine = make_engine()
        engine.watch(oversold)
        engine.run_signal_cycle()

        assert engine.run_signal_cycle() == []
        assert len(engine.get_active_positions()) == 1

    def test_signal_failure_on_one_venue_spares_the_others(self, factory, venue, oversold,
                                                          event_bus, captured_events) -> None:
        broken = PaperVenue("broken", balances={"USDT": 10_000.0})
        factory.register("broken", lambda settings: broken)
        other = Instrument(venue="broken", symbol="OTH/USDT")
        broken.set_price_history(other, DECLINE)
        broken.set_price(other, 104.0)
        broken.fail("get_balance", ValueError("bad payload"))
        engine = Engine(overrides=_overrides(venues=[
            {"name": "paper", "kind": "custom"},
            {"name": "broken", "kind": "broken"},
        ]), connector_factory=factory, event_bus=event_bus)
        try:
            engine.watch(other)
            engine.watch(oversold)

            signals = engine.run_signal_cycle()

            assert len(signals) == 2
            assert [p.instrument for p in engine.get_active_positions()] == [oversold]
            errors = [e.payload for e in captured_events if e.type == EventType.ERROR]
            assert [e.error_type for e in errors] == ["ValueError"]
        finally:
            engine.close(close_on_stop=False)

    def test_analysis_survives_unexpected_fetch_error(self, make_engine, venue, token_factory,
                                                      captured_events) -> None:
        venue.add_pair((token_factory(9),))
        venue.fail("get_transaction_volume", ValueError("bad payload"))
        engine = make_engine()

        engine.run_scan_cycle()
        profiles = engine.run_analysis_cycle()

        assert len(profiles) == 1
        assert profiles[0].buy_pressure == 0.0
        assert [e.payload for e in captured_events if e.type == EventType.DISCOVERY] == profiles

    def test_watch_unknown_venue(self, make_engine) -> None:
        engine = make_engine()
        with pytest.raises(ConfigurationError):
            engine.watch(Instrument(venue="elsewhere", symbol="X/USDT"))

    def test_get_balance(self, make_engine) -> None:
        engine = make_engine()

        assert engine.get_balance("paper", "USDT").free == 10_000.0
        with pytest.raises(VenueError):
            engine.get_balance("elsewhere", "USDT")


class TestEngineLifecycle:
    """Test start, stop and shutdown behavior."""

    def test_start_loads_watchlist_and_runs_tasks(self, make_engine, instrument) -> None:
        engine = make_engine(signals={"watchlist": [{"venue": "paper", "symbol": "TKN/USDT"}]})

        engine.start()
        try:
            assert engine.is_running
            assert engine.signal_generator.is_watched(instrument)
            assert all(task.is_alive for task in engine.scheduler.tasks)
        finally:
            engine.stop()

        assert not engine.is_running
        assert not any(task.is_alive for task in engine.scheduler.tasks)

    def test_restart_after_stop(self, make_engine, instrument) -> None:
        engine = make_engine()
        engine.start()
        engine.stop()

        engine.start()
        try:
            assert engine.is_running
            assert all(task.is_alive for task in engine.scheduler.tasks)
            assert engine.get_balance("paper", "USDT").free == 10_000.0
        finally:
            engine.stop()

    def test_start_after_close_is_refused(self, make_engine) -> None:
        engine = make_engine()
        engine.start()
        engine.close()

        assert not engine.is_running
        with pytest.raises(SystemFailureError):
            engine.start()

    def test_stop_closes_positions(self, make_engine, oversold) -> None:
        engine = make_engine()
        engine.watch(oversold)
        engine.run_signal_cycle()

        engine.stop()

        assert engine.get_active_positions() == []
        assert engine.get_closed_trades()[-1].exit_reason == ExitReason.SHUTDOWN

    def test_stop_can_leave_positions_open(self, make_engine, oversold) -> None:
        engine = make_engine(trading={"close_on_stop": False})
        engine.watch(oversold)
        engine.run_signal_cycle()

        engine.stop()

        assert len(engine.get_active_positions()) == 1

    def test_persistence_and_event_log(self, factory, oversold, venue, tmp_path) -> None:
        overrides = _overrides(storage={
            "database_path": str(tmp_path / "trades.db"),
            "events_path": str(tmp_path / "events.jsonl"),
        })
        engine = Engine(overrides=overrides, connector_factory=factory, event_bus=EventBus())
        engine.watch(oversold)
        engine.run_signal_cycle()
        engine.stop()
        engine.close()

        logged = [event["type"] for event in engine.event_sink.read_events()]
        assert logged[:3] == ["signal", "position_opened", "position_closed"]

        restarted = Engine(overrides=overrides, connector_factory=factory,
                           event_bus=EventBus())
        try:
            assert len(restarted.get_closed_trades()) == 1
        finally:
            restarted.close(close_on_stop=False)

    def test_stats(self, make_engine) -> None:
        stats = make_engine().get_stats()

        assert stats["running"] is False
        assert stats["venues"] == ["paper"]
        assert set(stats["scheduler"]) == {"scan", "analysis", "signals", "monitor"}
        assert stats["positions"]["active_positions"] == 0
