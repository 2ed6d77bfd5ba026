"""Tests for board startup sequencing."""

from __future__ import annotations

from pathlib import Path

import pytest

from wifistation.core.config import ConfigManager
from wifistation.models import AuthMode, PowerSaveLevel, ScanResult
from wifistation.network.board import NetworkStartResult, SignalIcon, WifiBoard
from wifistation.network.mock import MockRadio

HOME = ScanResult("Home", bytes.fromhex("020000000001"), 6, -50, AuthMode.WPA2_PERSONAL)


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    return ConfigManager(tmp_path / "config.yaml")


def test_no_known_networks_requests_config_mode(config_manager: ConfigManager) -> None:
    radio = MockRadio([HOME])
    board = WifiBoard(config_manager, radio)

    result = board.start_network(timeout=1.0)

    assert result is NetworkStartResult.NO_NETWORKS
    assert result.needs_config_mode
    assert board.config_mode
    assert radio.scan_calls == 0
    assert board.network_state_icon() is SignalIcon.CONFIG


def test_force_config_mode_is_consumed(config_manager: ConfigManager) -> None:
    config_manager.add_network("Home", "secret123")
    config_manager.set_force_config_mode(True)

    board = WifiBoard(config_manager, MockRadio([HOME]))

    assert board.start_network(timeout=1.0) is NetworkStartResult.CONFIG_MODE_REQUESTED
    assert config_manager.get().board.force_config_mode is False


def test_connects_to_known_network(config_manager: ConfigManager) -> None:
    config_manager.add_network("Home", "secret123")
    radio = MockRadio([HOME], passwords={"Home": "secret123"})
    board = WifiBoard(config_manager, radio)

    try:
        result = board.start_network(timeout=5.0)

        assert result is NetworkStartResult.CONNECTED
        assert not board.config_mode
        assert board.network_state_icon() is SignalIcon.STRONG
        info = board.board_info()
        assert info["type"] == "wifi"
        assert info["ssid"] == "Home"
        assert info["rssi"] == -50
        assert info["channel"] == 6
        assert info["ip"].startswith("192.168.4.")
    finally:
        board.stop()


def test_timeout_stops_station_and_enters_config_mode(config_manager: ConfigManager) -> None:
    config_manager.add_network("Home", "secret123")
    board = WifiBoard(config_manager, MockRadio([]))

    result = board.start_network(timeout=0.2)

    assert result is NetworkStartResult.TIMED_OUT
    assert board.config_mode
    assert board.station.state.value == "stopped"
    assert board.board_info() == {"type": "wifi", "name": "wifistation"}


@pytest.mark.parametrize(
    ("rssi", "icon"),
    [(-40, SignalIcon.STRONG), (-60, SignalIcon.STRONG), (-65, SignalIcon.FAIR), (-70, SignalIcon.FAIR), (-85, SignalIcon.WEAK)],
)
def test_signal_icon_thresholds(config_manager: ConfigManager, rssi: int, icon: SignalIcon) -> None:
    config_manager.add_network("Home", "secret123")
    ap = ScanResult("Home", HOME.bssid, 6, rssi, AuthMode.WPA2_PERSONAL)
    board = WifiBoard(config_manager, MockRadio([ap]))

    try:
        assert board.start_network(timeout=5.0) is NetworkStartResult.CONNECTED
        assert board.network_state_icon() is icon
    finally:
        board.stop()

    assert board.network_state_icon() is SignalIcon.OFFLINE


def test_power_save_toggle(config_manager: ConfigManager) -> None:
    radio = MockRadio()
    board = WifiBoard(config_manager, radio)

    board.set_power_save_mode(True)
    assert radio.power_save is PowerSaveLevel.BALANCED

    board.set_power_save_mode(False)
    assert radio.power_save is PowerSaveLevel.PERFORMANCE
    assert ConfigManager(config_manager.path).get().station.power_save is PowerSaveLevel.PERFORMANCE


def test_reset_wifi_configuration_applies_on_next_start(config_manager: ConfigManager) -> None:
    config_manager.add_network("Home", "secret123")
    board = WifiBoard(config_manager, MockRadio([HOME]))

    board.reset_wifi_configuration()

    assert not board.config_mode
    assert WifiBoard(config_manager, MockRadio([HOME])).config_mode
