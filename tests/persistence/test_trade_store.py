"""Tests for trade and scan cursor persistence."""

import os
import shutil
import sqlite3
import tempfile
import threading
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest

from sniper_app.data.models import Instrument
from sniper_app.errors import PersistenceError
from sniper_app.persistence.trade_store import TradeStore
from sniper_app.state.models import ClosedTrade, Direction, ExitReason
from sniper_app.utils.time import utc_now


def _trade(symbol="TKN/USDT", pnl=5.0, closed_at=None, reason=ExitReason.TAKE_PROFIT,
           token_address=None):
    closed_at = closed_at or utc_now()
    return ClosedTrade(
        instrument=Instrument(venue="paper", symbol=symbol, token_address=token_address,
                              network="ethereum" if token_address else None),
        direction=Direction.BUY,
        entry_price=100.0,
        exit_price=100.0 + pnl,
        quantity=1.0,
        profit_loss_pct=pnl,
        opened_at=closed_at - timedelta(minutes=30),
        closed_at=closed_at,
        exit_reason=reason,
    )


class TestTradeStore:
    """Test TradeStore class."""

    def setup_method(self):
        """Setup test database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test_trades.db")
        self.store = TradeStore(self.db_path)

    def teardown_method(self):
        """Cleanup test database."""
        shutil.rmtree(self.temp_dir)

    def test_init_database(self):
        """Test database initialization."""
        assert Path(self.db_path).exists()

        with self.store._get_connection("test") as conn:
            cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = [row[0] for row in cursor.fetchall()]
            assert "closed_trades" in tables
            assert "scan_cursors" in tables

    def test_creates_parent_directory(self):
        nested = os.path.join(self.temp_dir, "nested", "dir", "trades.db")
        TradeStore(nested)
        assert Path(nested).exists()

    def test_save_and_load_closed_trade(self):
        trade = _trade(token_address="0xAbC", symbol="NEW")

        trade_id = self.store.save_closed_trade(trade)
        loaded = self.store.load_closed_trades()

        assert trade_id > 0
        assert loaded == [trade]
        assert loaded[0].instrument.network == "ethereum"
        assert loaded[0].closed_at.tzinfo is not None

    def test_load_limit_keeps_most_recent_oldest_first(self):
        now = utc_now()
        for i in range(5):
            self.store.save_closed_trade(_trade(pnl=float(i), closed_at=now + timedelta(seconds=i)))

        loaded = self.store.load_closed_trades(limit=2)

        assert [t.profit_loss_pct for t in loaded] == [3.0, 4.0]

    def test_cursor_upsert(self):
        assert self.store.get_cursor("dex") is None

        self.store.save_cursor("dex", 10)
        self.store.save_cursor("dex", 25)
        self.store.save_cursor("cex", 3)

        assert self.store.get_cursor("dex") == 25
        assert self.store.load_cursors() == {"dex": 25, "cex": 3}

    def test_get_stats(self):
        self.store.save_closed_trade(_trade(reason=ExitReason.TAKE_PROFIT))
        self.store.save_closed_trade(_trade(pnl=-2.0, reason=ExitReason.STOP_LOSS))
        self.store.save_closed_trade(_trade(pnl=-1.0, reason=ExitReason.STOP_LOSS))
        self.store.save_cursor("dex", 1)

        stats = self.store.get_stats()

        assert stats["total_trades"] == 3
        assert stats["trades_by_exit_reason"] == {"Take Profit": 1, "Stop Loss": 2}
        assert stats["venues_with_cursor"] == 1

    def test_cleanup_old_trades(self):
        self.store.save_closed_trade(_trade(closed_at=utc_now() - timedelta(days=100)))
        self.store.save_closed_trade(_trade())

        assert self.store.cleanup_old_trades(older_than_days=90) == 1
        assert len(self.store.load_closed_trades()) == 1

    def test_sqlite_errors_become_persistence_errors(self):
        with patch("sniper_app.persistence.trade_store.sqlite3.connect",
                   side_effect=sqlite3.OperationalError("database is locked")):
            with pytest.raises(PersistenceError) as exc_info:
                self.store.save_cursor("dex", 1)

        assert exc_info.value.operation == "save_cursor"
        assert exc_info.value.target == self.db_path
        assert exc_info.value.recoverable is False

    def test_thread_safety(self):
        """Concurrent writers never lose trades."""
        errors = []

        def writer(thread_id):
            try:
                for i in range(10):
                    self.store.save_closed_trade(_trade(symbol=f"T{thread_id}-{i}/USDT"))
            except PersistenceError as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert self.store.get_stats()["total_trades"] == 50
