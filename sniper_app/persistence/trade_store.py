"""Trade history and scan cursor persistence."""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import structlog

from ..data.models import Instrument
from ..errors import PersistenceError
from ..state.models import ClosedTrade, Direction
from ..utils.time import format_time, parse_time, utc_now


class TradeStore:
    """SQLite-based store for closed trades and per-venue scan cursors."""

    def __init__(self, db_path: str = "trades.db"):
        self.db_path = Path(db_path)
        self.logger = structlog.get_logger("sniper.trade_store")
        self._lock = threading.Lock()

        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with self._get_connection("init") as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS closed_trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    venue TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    token_address TEXT,
                    network TEXT,
                    direction TEXT NOT NULL,
                    entry_price REAL NOT NULL,
                    exit_price REAL NOT NULL,
                    quantity REAL NOT NULL,
                    profit_loss_pct REAL NOT NULL,
                    opened_at TEXT NOT NULL,
                    closed_at TEXT NOT NULL,
                    exit_reason TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS scan_cursors (
                    venue TEXT PRIMARY KEY,
                    cursor INTEGER NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_trades_closed_at ON closed_trades(closed_at)
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_trades_venue ON closed_trades(venue)
            """)

            conn.commit()

    @contextmanager
    def _get_connection(self, operation: str):
        """Get database connection; sqlite errors surface as PersistenceError."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            self.logger.error("Database error", operation=operation, error=str(e))
            raise PersistenceError(
                f"Trade store {operation} failed: {e}",
                operation=operation,
                target=str(self.db_path)
            ) from e
        finally:
            if conn:
                conn.close()

    def save_closed_trade(self, trade: ClosedTrade) -> int:
        """
        Append a closed trade.

        Args:
            trade: Completed round trip

        Returns:
            Row id of the stored trade
        """
        with self._lock:
            with self._get_connection("save_closed_trade") as conn:
                cursor = conn.execute("""
                    INSERT INTO closed_trades (
                        venue, symbol, token_address, network, direction,
                        entry_price, exit_price, quantity, profit_loss_pct,
                        opened_at, closed_at, exit_reason, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    trade.instrument.venue,
                    trade.instrument.symbol,
                    trade.instrument.token_address,
                    trade.instrument.network,
                    trade.direction.value,
                    trade.entry_price,
                    trade.exit_price,
                    trade.quantity,
                    trade.profit_loss_pct,
                    format_time(trade.opened_at),
                    format_time(trade.closed_at),
                    trade.exit_reason,
                    format_time(utc_now()),
                ))
                conn.commit()
                trade_id = cursor.lastrowid

        self.logger.info(
            "Closed trade stored",
            instrument=trade.instrument.key,
            exit_reason=trade.exit_reason,
            trade_id=trade_id
        )
        return trade_id

    def load_closed_trades(self, limit: Optional[int] = None) -> list[ClosedTrade]:
        """Most recent closed trades, oldest first."""
        with self._get_connection("load_closed_trades") as conn:
            if limit is None:
                rows = conn.execute("""
                    SELECT * FROM closed_trades ORDER BY closed_at, id
                """).fetchall()
            else:
                rows = conn.execute("""
                    SELECT * FROM (
                        SELECT * FROM closed_trades ORDER BY closed_at DESC, id DESC LIMIT ?
                    ) ORDER BY closed_at, id
                """, (limit,)).fetchall()

        return [self._row_to_closed_trade(row) for row in rows]

    def get_cursor(self, venue: str) -> Optional[int]:
        """Persisted scan cursor of a venue, None if never scanned."""
        with self._get_connection("get_cursor") as conn:
            row = conn.execute("""
                SELECT cursor FROM scan_cursors WHERE venue = ?
            """, (venue,)).fetchone()
        return row["cursor"] if row else None

    def load_cursors(self) -> dict[str, int]:
        with self._get_connection("load_cursors") as conn:
            rows = conn.execute("SELECT venue, cursor FROM scan_cursors").fetchall()
        return {row["venue"]: row["cursor"] for row in rows}

    def save_cursor(self, venue: str, cursor: int) -> None:
        with self._lock:
            with self._get_connection("save_cursor") as conn:
                conn.execute("""
                    INSERT INTO scan_cursors (venue, cursor, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(venue) DO UPDATE SET
                        cursor = excluded.cursor,
                        updated_at = excluded.updated_at
                """, (venue, cursor, format_time(utc_now())))
                conn.commit()

    def get_stats(self) -> dict[str, Any]:
        """Get database statistics."""
        with self._get_connection("get_stats") as conn:
            total_count = conn.execute("SELECT COUNT(*) FROM closed_trades").fetchone()[0]

            reason_counts = {}
            for row in conn.execute("""
                SELECT exit_reason, COUNT(*) as count FROM closed_trades GROUP BY exit_reason
            """):
                reason_counts[row[0]] = row[1]

            venue_count = conn.execute("SELECT COUNT(*) FROM scan_cursors").fetchone()[0]

        return {
            "total_trades": total_count,
            "trades_by_exit_reason": reason_counts,
            "venues_with_cursor": venue_count,
        }

    def cleanup_old_trades(self, older_than_days: int = 90) -> int:
        """Remove trades closed more than ``older_than_days`` ago."""
        cutoff = format_time(utc_now() - timedelta(days=older_than_days))

        with self._lock:
            with self._get_connection("cleanup_old_trades") as conn:
                cursor = conn.execute("""
                    DELETE FROM closed_trades WHERE closed_at < ?
                """, (cutoff,))
                conn.commit()
                deleted_count = cursor.rowcount

        self.logger.info("Old trades cleaned up", deleted=deleted_count)
        return deleted_count

    def _row_to_closed_trade(self, row: sqlite3.Row) -> ClosedTrade:
        """Convert database row to ClosedTrade object."""
        return ClosedTrade(
            instrument=Instrument(
                venue=row["venue"],
                symbol=row["symbol"],
                token_address=row["token_address"],
                network=row["network"],
            ),
            direction=Direction(row["direction"]),
            entry_price=row["entry_price"],
            exit_price=row["exit_price"],
            quantity=row["quantity"],
            profit_loss_pct=row["profit_loss_pct"],
            opened_at=parse_time(row["opened_at"]),
            closed_at=parse_time(row["closed_at"]),
            exit_reason=row["exit_reason"],
        )
