"""
Market data models.

Instruments, price samples and the bounded rolling windows kept per
instrument.
"""
