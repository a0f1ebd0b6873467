"""SQLite persistence for closed trades and scan cursors"""

from .trade_store import TradeStore

__all__ = ["TradeStore"]
