"""WiFi station entry point.

Usage:
    python -m wifistation [options]

Options:
    --config PATH     Path to config file (default: /etc/wifistation/config.yaml)
    --interface NAME  Wireless interface for the NetworkManager driver (default: wlan0)
    --mock            Use the simulated radio (no WiFi hardware required)
    --timeout SEC     Startup connect timeout (default: from config)
    --debug           Enable debug logging
"""

import argparse
import signal
import sys
import threading
from pathlib import Path

from . import __version__
from .core.config import DEFAULT_CONFIG_PATH, ConfigManager
from .core.errors import WifiStationError
from .core.logging import setup_logging, get_logger
from .models import AuthMode, ScanResult
from .network.board import WifiBoard
from .network.mock import MockRadio
from .network.nmcli import NmcliRadio
from .network.radio import RadioDriver
from .network.station import StationListener

logger = get_logger(__name__)


class LoggingListener(StationListener):
    """Reports station lifecycle changes to the log."""

    def on_scan_begin(self) -> None:
        logger.info("Scanning for networks")

    def on_connecting(self, ssid: str) -> None:
        logger.info("Connecting to %s", ssid)

    def on_connected(self, ssid: str) -> None:
        logger.info("Connected to %s", ssid)

    def on_disconnected(self) -> None:
        logger.info("Disconnected")


class StationService:
    """Runs the board until a shutdown signal arrives."""

    def __init__(self, config_path: Path, radio: RadioDriver, debug: bool = False) -> None:
        self._config_manager = ConfigManager(config_path)
        self._radio = radio
        self._debug = debug
        self._board: WifiBoard | None = None
        self._shutdown_event = threading.Event()

    def start(self, timeout: float | None = None) -> bool:
        """Bring the radio and station up.

        Returns:
            True if a network was joined
        """
        config = self._config_manager.get()
        setup_logging(
            level="DEBUG" if self._debug else config.logging.level,
            log_format=config.logging.format,
            log_file=config.logging.file,
            max_size_mb=config.logging.max_size_mb,
            backup_count=config.logging.backup_count,
        )

        self._radio.start()
        self._board = WifiBoard(self._config_manager, self._radio, LoggingListener())
        result = self._board.start_network(timeout)
        if result.needs_config_mode:
            logger.warning("Network not started (%s), configuration required", result.value)
            return False

        logger.info("Board info: %s", self._board.board_info())
        return True

    def stop(self) -> None:
        if self._board is not None:
            self._board.stop()
        self._radio.close()
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    def wait_for_shutdown(self) -> None:
        self._shutdown_event.wait()


def build_mock_radio() -> MockRadio:
    """Radio environment used with --mock."""
    return MockRadio(
        [
            ScanResult("MockWifi", bytes.fromhex("02000000aa01"), 6, -55, AuthMode.WPA2_PERSONAL),
            ScanResult("MockOpen", bytes.fromhex("02000000aa02"), 11, -72, AuthMode.OPEN),
        ]
    )


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="WiFi station connectivity engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to config file",
    )
    parser.add_argument(
        "--interface",
        default="wlan0",
        help="Wireless interface for the NetworkManager driver",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use the simulated radio (no WiFi hardware required)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Startup connect timeout in seconds",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--forget",
        metavar="SSID",
        help="Remove stored credentials for SSID and exit",
    )

    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.debug else "INFO")
    logger.info("WiFi station v%s", __version__)

    if args.forget:
        try:
            removed = ConfigManager(args.config).remove_network(args.forget)
        except WifiStationError as e:
            logger.critical("Fatal error: %s", e)
            return 1
        if not removed:
            logger.warning("No stored credentials for %s", args.forget)
        return 0 if removed else 1

    radio: RadioDriver = build_mock_radio() if args.mock else NmcliRadio(args.interface)
    try:
        service = StationService(args.config, radio, debug=args.debug)
    except WifiStationError as e:
        logger.critical("Fatal error: %s", e)
        return 1

    def signal_handler(sig, frame):
        logger.info("Received signal %s, shutting down...", sig)
        service.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if not service.start(args.timeout):
            return 2
        service.wait_for_shutdown()
        return 0

    except WifiStationError as e:
        logger.critical("Fatal error: %s", e)
        return 1

    finally:
        service.stop()


if __name__ == "__main__":
    sys.exit(main())
