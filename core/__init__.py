"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- logging_config: Root logger setup
"""

from .clock import ClockProtocol, SystemClock, MockClock, ClockFactory
from .exceptions import SettlementException
from .logging_config import setup_logging

__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "SettlementException",
    "setup_logging",
]
