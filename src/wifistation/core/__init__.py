"""Core infrastructure module.

Provides foundational components:
- Configuration management with validation
- Custom exception hierarchy
- Structured logging
- Scan backoff and async retry
- Thread-safe primitives
"""

from .config import Config, ConfigManager, PortalConfig, StationSettings
from .errors import (
    WifiStationError,
    ConfigurationError,
    RadioError,
    NetworkError,
    PortalError,
)
from .logging import setup_logging, get_logger
from .retry import ScanBackoff, async_retry, RetryConfig
from .threading import LockedValue, StoppableThread

__all__ = [
    # Config
    "Config",
    "ConfigManager",
    "PortalConfig",
    "StationSettings",
    # Errors
    "WifiStationError",
    "ConfigurationError",
    "RadioError",
    "NetworkError",
    "PortalError",
    # Logging
    "setup_logging",
    "get_logger",
    # Retry
    "ScanBackoff",
    "async_retry",
    "RetryConfig",
    # Threading
    "LockedValue",
    "StoppableThread",
]
