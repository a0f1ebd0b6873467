"""Indicator-based trade signal generation"""

from .generator import SignalGenerator, decide

__all__ = ["SignalGenerator", "decide"]
