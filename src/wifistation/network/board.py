"""Board-level network glue.

Decides at startup whether to join a known network or hand over to the
configuration flow, and exposes the status bits a device UI shows.
"""

import logging
from enum import Enum
from typing import Any

from ..core.config import ConfigManager
from ..models import PowerSaveLevel
from .radio import RadioDriver
from .station import StationListener, WifiStation

logger = logging.getLogger(__name__)


class NetworkStartResult(Enum):
    """Outcome of bringing the network up."""

    CONNECTED = "connected"
    CONFIG_MODE_REQUESTED = "config_mode_requested"
    NO_NETWORKS = "no_networks"
    TIMED_OUT = "timed_out"

    @property
    def needs_config_mode(self) -> bool:
        return self is not NetworkStartResult.CONNECTED


class SignalIcon(Enum):
    """Network state icon shown in the status bar."""

    CONFIG = "wifi_config"
    OFFLINE = "wifi_off"
    STRONG = "wifi"
    FAIR = "wifi_fair"
    WEAK = "wifi_weak"


class WifiBoard:
    """WiFi board: station startup sequencing and status.

    Usage:
        board = WifiBoard(config_manager, radio, listener)
        result = board.start_network()
        if result.needs_config_mode:
            ...  # hand over to the configuration portal
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        radio: RadioDriver,
        listener: StationListener | None = None,
    ) -> None:
        """Initialize the board.

        A pending config-mode request is consumed here, so it only
        applies to this start.

        Args:
            config_manager: Configuration and credential store
            radio: Radio driver adapter
            listener: Station lifecycle notification sink
        """
        self._config_manager = config_manager
        config = config_manager.get()
        self._board_config = config.board

        self._config_mode = config.board.force_config_mode
        if self._config_mode:
            logger.info("force_config_mode is set, resetting it")
            config_manager.set_force_config_mode(False)

        self._station = WifiStation(
            radio,
            config_manager,
            listener,
            settings=config.station,
            portal_config=config.portal,
        )

    @property
    def station(self) -> WifiStation:
        return self._station

    @property
    def config_mode(self) -> bool:
        return self._config_mode

    def start_network(self, timeout: float | None = None) -> NetworkStartResult:
        """Join a known network, or report why config mode is needed.

        Args:
            timeout: Seconds to wait for a connection (default: board config)

        Returns:
            How the startup ended
        """
        if self._config_mode:
            return NetworkStartResult.CONFIG_MODE_REQUESTED

        if not self._config_manager.list_known_networks():
            logger.info("No known networks, config mode required")
            self._config_mode = True
            return NetworkStartResult.NO_NETWORKS

        if timeout is None:
            timeout = self._board_config.connect_timeout_seconds

        self._station.start()
        if not self._station.wait_for_connected(timeout):
            logger.warning("Not connected after %.0f seconds, stopping station", timeout)
            self._station.stop()
            self._config_mode = True
            return NetworkStartResult.TIMED_OUT

        logger.info("Network up: %s (%s)", self._station.current_ssid(), self._station.ip_address())
        return NetworkStartResult.CONNECTED

    def stop(self) -> None:
        self._station.stop()

    def network_state_icon(self) -> SignalIcon:
        if self._config_mode:
            return SignalIcon.CONFIG
        if not self._station.is_connected():
            return SignalIcon.OFFLINE
        rssi = self._station.signal_strength()
        if rssi >= -60:
            return SignalIcon.STRONG
        if rssi >= -70:
            return SignalIcon.FAIR
        return SignalIcon.WEAK

    def board_info(self) -> dict[str, Any]:
        """Board description reported to the backend."""
        info: dict[str, Any] = {
            "type": self._board_config.board_type,
            "name": self._board_config.name,
        }
        if not self._config_mode:
            info.update(
                {
                    "ssid": self._station.current_ssid(),
                    "rssi": self._station.signal_strength(),
                    "channel": self._station.channel(),
                    "ip": self._station.ip_address(),
                }
            )
        return info

    def set_power_save_mode(self, enabled: bool) -> None:
        """Apply a power save level now and keep it for the next start."""
        level = PowerSaveLevel.BALANCED if enabled else PowerSaveLevel.PERFORMANCE
        self._station.set_power_save_level(level)
        self._config_manager.update_station(power_save=level)

    def reset_wifi_configuration(self) -> None:
        """Request config mode for the next start."""
        self._config_manager.set_force_config_mode(True)
        logger.info("WiFi configuration reset requested, config mode on next start")
