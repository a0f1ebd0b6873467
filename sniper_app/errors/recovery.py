"""
Recovery strategy classifications for error handling.

This mixin tags errors by their recovery characteristics so cycle code can
decide between retrying on the next tick and reporting the failure.
"""

from typing import Optional, Dict, Any


class RecoverableError(Exception):
    """Mixin for errors that resolve themselves on a later cycle."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 retry_count: int = 0, **kwargs):
        super().__init__(message)
        self.context = context or {}
        self.retry_count = retry_count
        self.recoverable = True
