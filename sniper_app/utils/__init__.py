"""
Utility functions module.

Shared helpers for time handling. All timestamps in the system are
timezone-aware UTC datetimes.
"""
