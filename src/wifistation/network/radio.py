"""Radio driver adapter boundary.

The station never talks to hardware directly. A ``RadioDriver`` accepts
commands (scan, connect, disconnect, tuning) and reports what the radio
does as ``RadioEvent`` values pushed to subscribers from the driver's own
thread.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from ..models import PowerSaveLevel, ScanResult

logger = logging.getLogger(__name__)


class RadioEventType(Enum):
    """Link-layer and IP events a radio reports."""

    STARTED = "started"
    SCAN_DONE = "scan_done"
    DISCONNECTED = "disconnected"
    IP_ACQUIRED = "ip_acquired"


@dataclass(frozen=True)
class RadioEvent:
    """A single event delivered by a radio driver."""

    type: RadioEventType
    scan_results: tuple[ScanResult, ...] = ()
    ip_address: str | None = None
    # SSID the event refers to, when the driver knows it
    ssid: str | None = None
    reason: str | None = None

    @classmethod
    def started(cls) -> "RadioEvent":
        return cls(RadioEventType.STARTED)

    @classmethod
    def scan_done(cls, results: list[ScanResult] | tuple[ScanResult, ...]) -> "RadioEvent":
        return cls(RadioEventType.SCAN_DONE, scan_results=tuple(results))

    @classmethod
    def disconnected(cls, ssid: str | None = None, reason: str | None = None) -> "RadioEvent":
        return cls(RadioEventType.DISCONNECTED, ssid=ssid, reason=reason)

    @classmethod
    def ip_acquired(cls, ip_address: str, ssid: str | None = None) -> "RadioEvent":
        return cls(RadioEventType.IP_ACQUIRED, ip_address=ip_address, ssid=ssid)


@dataclass(frozen=True)
class ConnectRequest:
    """Everything the radio needs to join one access point.

    ``password`` is None for open and enterprise networks; enterprise joins
    carry ``identity``/``enterprise_password`` instead. ``bssid`` and
    ``channel`` are only set when the join is pinned to a specific AP.
    """

    ssid: str
    password: str | None = None
    bssid: bytes | None = None
    channel: int | None = None
    identity: str | None = None
    enterprise_password: str | None = None
    listen_interval: int = 3

    @property
    def is_enterprise(self) -> bool:
        return self.identity is not None


EventHandler = Callable[[RadioEvent], None]


class RadioDriver(ABC):
    """Base class for radio driver adapters.

    Subclasses implement the commands and call ``_emit`` from their own
    execution context whenever the radio reports an event.
    """

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []
        self._handlers_lock = threading.Lock()

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler for radio events."""
        with self._handlers_lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a handler; unknown handlers are ignored."""
        with self._handlers_lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def start(self) -> None:
        """Bring the driver up; adapters without their own thread need nothing."""

    def close(self) -> None:
        """Release driver resources."""

    def _emit(self, event: RadioEvent) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error("Error in radio event handler: %s", e)

    @abstractmethod
    def start_scan(self, show_hidden: bool = True) -> None:
        """Start an asynchronous scan; completion arrives as SCAN_DONE."""

    @abstractmethod
    def connect(self, request: ConnectRequest) -> None:
        """Start joining a network; the outcome arrives as IP_ACQUIRED or DISCONNECTED."""

    @abstractmethod
    def disconnect(self) -> None:
        """Drop the current association and clear the previous join config."""

    @abstractmethod
    def get_signal_strength(self) -> int:
        """RSSI of the associated AP in dBm (0 when unknown)."""

    @abstractmethod
    def get_channel(self) -> int:
        """Channel of the associated AP (0 when unknown)."""

    @abstractmethod
    def get_gateway(self) -> str | None:
        """Default gateway address of the station interface."""

    @abstractmethod
    def set_max_tx_power(self, value: int) -> None:
        """Cap output power; units are quarter dBm."""

    @abstractmethod
    def set_power_save(self, level: PowerSaveLevel) -> None:
        """Set modem sleep aggressiveness."""
