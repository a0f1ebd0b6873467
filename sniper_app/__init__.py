"""
Sniper App - Multi-venue Asset Discovery and Trading Engine

Scans exchanges and DEX factories for newly listed assets, scores them for
risk and fundamentals, generates RSI/MACD signals for a watchlist and manages
the lifecycle of the resulting positions with stop-loss / take-profit exits.
"""

__version__ = "0.1.0"
__author__ = "Sniper Team"
