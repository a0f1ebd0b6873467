"""Tests for state transition audit logging in the position manager."""

from sniper_app.config.defaults import TradingParams
from sniper_app.logging.config import configure_logging, log_state_transition
from sniper_app.state.models import Direction, Signal
from sniper_app.state.positions import PositionManager
from sniper_app.utils.time import utc_now


class RecordingLogger:
    """Minimal bound logger that keeps every record in a shared list."""

    def __init__(self, records=None, bound=None):
        self.records = records if records is not None else []
        self.bound = bound or {}

    def bind(self, **kwargs):
        return RecordingLogger(self.records, {**self.bound, **kwargs})

    def _log(self, level, event, **kwargs):
        self.records.append({"level": level, "event": event, **self.bound, **kwargs})

    def debug(self, event, **kwargs):
        self._log("debug", event, **kwargs)

    def info(self, event, **kwargs):
        self._log("info", event, **kwargs)

    def warning(self, event, **kwargs):
        self._log("warning", event, **kwargs)

    def error(self, event, **kwargs):
        self._log("error", event, **kwargs)

    def exception(self, event, **kwargs):
        self._log("exception", event, **kwargs)


class TestLoggingIntegration:
    """Test that every lifecycle step leaves an audit record."""

    def setup_method(self):
        configure_logging(level="DEBUG", format_json=True)
        self.logger = RecordingLogger()

    def _transitions(self):
        return [r for r in self.logger.records if r["event"] == "State transition"]

    def test_log_state_transition_format(self):
        log_state_transition(self.logger, instrument="paper:TKN/USDT", from_state="open",
                             to_state="closing", trigger="exit_triggered",
                             context={"exit_reason": "Stop Loss"})

        record = self._transitions()[0]
        assert record["level"] == "info"
        assert record["instrument"] == "paper:TKN/USDT"
        assert record["from_state"] == "open"
        assert record["to_state"] == "closing"
        assert record["trigger"] == "exit_triggered"
        assert record["context"] == {"exit_reason": "Stop Loss"}

    def test_log_state_transition_without_context(self):
        log_state_transition(self.logger, instrument="paper:X", from_state="flat",
                             to_state="entering", trigger="signal")

        assert "context" not in self._transitions()[0]

    def test_round_trip_is_fully_audited(self, venue, instrument, trading_params, event_bus):
        manager = PositionManager({"paper": venue}, trading_params, event_bus)
        manager.logger = self.logger
        venue.set_price(instrument, 100.0)

        manager.submit(Signal(instrument=instrument, direction=Direction.BUY, reason="test",
                              generated_at=utc_now(), rsi=20.0, macd_histogram=0.5))
        venue.set_price(instrument, 105.0)
        manager.monitor()

        steps = [(r["from_state"], r["to_state"], r["trigger"]) for r in self._transitions()]
        assert steps == [
            ("flat", "entering", "signal"),
            ("entering", "open", "entry_filled"),
            ("open", "closing", "exit_triggered"),
            ("closing", "flat", "exit_filled"),
        ]
        assert all(r["instrument"] == instrument.key for r in self._transitions())

    def test_rejection_is_logged_as_warning(self, venue, instrument, event_bus):
        manager = PositionManager({"paper": venue}, TradingParams(position_size=1e9), event_bus)
        manager.logger = self.logger
        venue.set_price(instrument, 1.0)

        manager.submit(Signal(instrument=instrument, direction=Direction.BUY, reason="test",
                              generated_at=utc_now(), rsi=20.0, macd_histogram=0.5))

        warnings = [r for r in self.logger.records if r["level"] == "warning"]
        assert warnings[0]["event"] == "Signal rejected"
        assert warnings[0]["instrument"] == instrument.key
        assert self._transitions() == []
        assert manager.get_position(instrument) is None
