"""Tests for configuration loading and the known-network store."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from wifistation.core.config import ConfigManager, LoggingConfig, PortalConfig, StationSettings
from wifistation.core.errors import ConfigurationError
from wifistation.models import PowerSaveLevel


def _write(path: Path, data: object) -> None:
    path.write_text(yaml.safe_dump(data))


def test_missing_file_creates_defaults(tmp_path: Path) -> None:
    path = tmp_path / "wifistation" / "config.yaml"

    manager = ConfigManager(path)
    config = manager.get()

    assert path.exists()
    assert config.networks == []
    assert config.station.max_tx_power == 0
    assert config.station.scan_backoff_min_seconds == 10
    assert config.station.scan_backoff_max_seconds == 300
    assert config.portal.enabled
    assert [p.url for p in config.portal.probes] == [
        "http://connect.rom.miui.com/generate_204",
        "http://captive.apple.com/",
    ]


def test_networks_persist_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    manager = ConfigManager(path)

    manager.add_network("Home", "secret123")
    manager.add_network("CafeWifi", "", username="guest")

    reloaded = ConfigManager(path)
    networks = reloaded.list_known_networks()
    assert [(n.ssid, n.password, n.username) for n in networks] == [
        ("Home", "secret123", ""),
        ("CafeWifi", "", "guest"),
    ]


def test_add_network_replaces_existing_ssid_in_place(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml")
    manager.add_network("Home", "old-pass")
    manager.add_network("Office", "office-pw")

    manager.add_network("Home", "new-pass")

    networks = manager.list_known_networks()
    assert [n.ssid for n in networks] == ["Home", "Office"]
    assert networks[0].password == "new-pass"


def test_add_network_rejects_invalid_entry(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml")

    with pytest.raises(ConfigurationError):
        manager.add_network("", "secret123")
    with pytest.raises(ConfigurationError):
        manager.add_network("x" * 33, "secret123")

    assert manager.list_known_networks() == []


def test_remove_network(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml")
    manager.add_network("Home", "secret123")

    assert manager.remove_network("Home") is True
    assert manager.remove_network("Home") is False
    assert manager.list_known_networks() == []


def test_invalid_station_values_are_dropped(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    _write(
        path,
        {
            "station": {
                "max_tx_power": 500,
                "remember_bssid": True,
                "power_save": "turbo",
                "unknown_key": 1,
            }
        },
    )

    station = ConfigManager(path).get().station

    assert station.max_tx_power == 0
    assert station.remember_bssid is True
    assert station.power_save is None


def test_backoff_ceiling_is_raised_to_floor() -> None:
    settings = StationSettings(scan_backoff_min_seconds=60, scan_backoff_max_seconds=30)

    assert settings.scan_backoff_max_seconds == 60


def test_stored_power_save_level_is_parsed(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    _write(path, {"station": {"power_save": "performance"}})

    assert ConfigManager(path).get().station.power_save is PowerSaveLevel.PERFORMANCE


def test_duplicate_networks_keep_first_entry(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    _write(
        path,
        {
            "networks": [
                {"ssid": "Home", "password": "first"},
                {"ssid": "Home", "password": "second"},
            ]
        },
    )

    networks = ConfigManager(path).list_known_networks()

    assert [(n.ssid, n.password) for n in networks] == [("Home", "first")]


def test_invalid_network_entry_is_dropped_alone(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    _write(
        path,
        {
            "networks": [
                {"ssid": "Home", "password": "home-pass"},
                {"ssid": "x" * 40, "password": "pw"},
                "not-a-network",
                {"ssid": "Campus", "password": "p" * 70, "username": "student"},
            ]
        },
    )

    manager = ConfigManager(path)
    assert [n.ssid for n in manager.list_known_networks()] == ["Home", "Campus"]

    manager.add_network("New", "new-pass")

    stored = [n.ssid for n in ConfigManager(path).list_known_networks()]
    assert stored == ["Home", "Campus", "New"]


def test_long_portal_password_is_accepted(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml")

    manager.add_network("Campus", "p" * 100, username="student")

    assert manager.list_known_networks()[0].password == "p" * 100
    with pytest.raises(ConfigurationError):
        manager.add_network("Campus", "p" * 129)


def test_unreadable_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("networks: [unclosed\n")

    config = ConfigManager(path).get()

    assert config.networks == []


def test_force_config_mode_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    manager = ConfigManager(path)

    manager.set_force_config_mode(True)

    assert ConfigManager(path).get().board.force_config_mode is True


def test_update_station_validates(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml")

    manager.update_station(remember_bssid=True)
    assert manager.get().station.remember_bssid is True

    with pytest.raises(ConfigurationError):
        manager.update_station(max_tx_power=1000)


def test_get_returns_a_copy(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml")

    manager.get().station.remember_bssid = True

    assert manager.get().station.remember_bssid is False


def test_portal_patterns_must_compile() -> None:
    with pytest.raises(ValidationError):
        PortalConfig(institutional_ssid_patterns=["BUPT("])


def test_logging_level_is_upper_cased() -> None:
    assert LoggingConfig(level="debug").level == "DEBUG"
    assert "``setup_logging``" in LoggingConfig.__doc__
    with pytest.raises(ValidationError):
        LoggingConfig(format="xml")
