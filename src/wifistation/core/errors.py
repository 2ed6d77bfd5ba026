"""Exception hierarchy for the WiFi station.

Every error carries a message, free-form details and the underlying cause,
and knows how severe it is, so callers can log it uniformly:

    except WifiStationError as e:
        logger.log(e.log_level, "%s", e, extra={"error": e.to_dict()})
"""

import logging
from enum import Enum
from typing import Any


class ErrorSeverity(Enum):
    """How bad an error is for the station as a whole."""

    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def log_level(self) -> int:
        return getattr(logging, self.name)


class WifiStationError(Exception):
    """Base class for station errors.

    Attributes:
        message: What went wrong
        details: Context such as the SSID, command arguments or file path
        cause: The exception this one wraps, if any
    """

    severity: ErrorSeverity = ErrorSeverity.ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} ({context})"

    @property
    def log_level(self) -> int:
        return self.severity.log_level

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "details": self.details,
        }
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data


class ConfigurationError(WifiStationError):
    """The config file could not be written, or an update failed validation."""


class RadioError(WifiStationError):
    """A radio driver refused a command.

    Unlike link failures, which the state machine retries, this means the
    driver and the station disagree about what is allowed (tx power out of
    range, a command sent to a radio that is not running). The station
    stops when it sees one.
    """

    severity = ErrorSeverity.CRITICAL


class NetworkError(WifiStationError):
    """An nmcli/iw invocation failed, timed out or was given bad input."""


class PortalError(WifiStationError):
    """A portal login could not be attempted; the login task gives up quietly."""

    severity = ErrorSeverity.WARNING
