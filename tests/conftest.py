"""Shared fakes for the station tests."""

from __future__ import annotations

import pytest

from wifistation.models import KnownNetwork
from wifistation.network.station import StationListener


class FakeCredentials:
    def __init__(self, networks: list[KnownNetwork] | None = None) -> None:
        self.networks = list(networks or [])

    def list_known_networks(self) -> list[KnownNetwork]:
        return list(self.networks)

    def add_network(self, ssid: str, password: str, username: str = "") -> None:
        self.networks = [n for n in self.networks if n.ssid != ssid]
        self.networks.append(KnownNetwork(ssid=ssid, password=password, username=username))


class RecordingListener(StationListener):
    def __init__(self) -> None:
        self.events: list[str] = []

    def on_scan_begin(self) -> None:
        self.events.append("scan_begin")

    def on_connecting(self, ssid: str) -> None:
        self.events.append(f"connecting:{ssid}")

    def on_connected(self, ssid: str) -> None:
        self.events.append(f"connected:{ssid}")

    def on_disconnected(self) -> None:
        self.events.append("disconnected")


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
