"""Mock radio for development and testing.

Simulates a small radio environment so the station can run on machines
without a WiFi interface.
"""

import logging

from ..core.errors import RadioError
from ..models import PowerSaveLevel, ScanResult
from .radio import ConnectRequest, RadioDriver, RadioEvent

logger = logging.getLogger(__name__)

# Range the ESP32 driver accepts for the tx power ceiling (quarter dBm)
TX_POWER_RANGE = (8, 84)


class MockRadio(RadioDriver):
    """Simulated radio.

    Scans return ``access_points``. A join succeeds when the AP is visible,
    not marked unreachable, and the supplied secret matches ``passwords``
    (SSIDs without an entry accept anything). Events are emitted on the
    calling thread.

    Usage:
        radio = MockRadio([ScanResult("Home", b"\\x01" * 6, 6, -50, AuthMode.WPA2_PERSONAL)],
                          passwords={"Home": "secret123"})
        radio.drop_link()  # Simulate losing the AP
    """

    def __init__(
        self,
        access_points: list[ScanResult] | None = None,
        passwords: dict[str, str] | None = None,
        gateway: str = "192.168.4.1",
    ) -> None:
        super().__init__()
        self.access_points = list(access_points or [])
        self.passwords = dict(passwords or {})
        self.unreachable: set[str] = set()
        self.gateway = gateway

        # Recorded commands
        self.scan_calls = 0
        self.connect_requests: list[ConnectRequest] = []
        self.disconnect_calls = 0
        self.tx_power: int | None = None
        self.power_save: PowerSaveLevel | None = None

        self._associated: ScanResult | None = None
        self._next_host = 100

    @property
    def associated(self) -> ScanResult | None:
        return self._associated

    def start_scan(self, show_hidden: bool = True) -> None:
        self.scan_calls += 1
        logger.debug("MockRadio: scan (%d APs)", len(self.access_points))
        self._emit(RadioEvent.scan_done(self.access_points))

    def connect(self, request: ConnectRequest) -> None:
        self.connect_requests.append(request)
        logger.debug("MockRadio: connect %s", request.ssid)

        ap = self._find_ap(request)
        if ap is None or request.ssid in self.unreachable:
            self._emit(RadioEvent.disconnected(request.ssid, "no AP found"))
            return

        expected = self.passwords.get(request.ssid)
        supplied = request.enterprise_password if request.is_enterprise else request.password
        if expected is not None and supplied != expected:
            self._emit(RadioEvent.disconnected(request.ssid, "auth failed"))
            return

        self._associated = ap
        ip_address = f"192.168.4.{self._next_host}"
        self._next_host += 1
        self._emit(RadioEvent.ip_acquired(ip_address, request.ssid))

    def disconnect(self) -> None:
        # Station-initiated, so no event is reported back
        self.disconnect_calls += 1
        self._associated = None

    def drop_link(self, reason: str = "beacon timeout") -> None:
        """Simulate the AP going away."""
        if self._associated is None:
            return
        ssid = self._associated.ssid
        self._associated = None
        logger.debug("MockRadio: link to %s dropped", ssid)
        self._emit(RadioEvent.disconnected(ssid, reason))

    def get_signal_strength(self) -> int:
        return self._associated.rssi if self._associated else 0

    def get_channel(self) -> int:
        return self._associated.channel if self._associated else 0

    def get_gateway(self) -> str | None:
        return self.gateway if self._associated else None

    def set_max_tx_power(self, value: int) -> None:
        low, high = TX_POWER_RANGE
        if not low <= value <= high:
            raise RadioError("Invalid tx power", details={"value": value, "range": TX_POWER_RANGE})
        self.tx_power = value

    def set_power_save(self, level: PowerSaveLevel) -> None:
        self.power_save = level

    def _find_ap(self, request: ConnectRequest) -> ScanResult | None:
        for ap in self.access_points:
            if ap.ssid != request.ssid:
                continue
            if request.bssid is not None and ap.bssid != request.bssid:
                continue
            return ap
        return None
