"""Tests for the simulated radio."""

from __future__ import annotations

import pytest

from wifistation.core.errors import RadioError
from wifistation.models import AuthMode, ScanResult
from wifistation.network.mock import MockRadio
from wifistation.network.radio import ConnectRequest, RadioEvent, RadioEventType

HOME_A = ScanResult("Home", bytes.fromhex("020000000001"), 6, -50, AuthMode.WPA2_PERSONAL)
HOME_B = ScanResult("Home", bytes.fromhex("020000000002"), 11, -70, AuthMode.WPA2_PERSONAL)


def _radio(**kwargs) -> tuple[MockRadio, list[RadioEvent]]:
    radio = MockRadio([HOME_A, HOME_B], **kwargs)
    events: list[RadioEvent] = []
    radio.subscribe(events.append)
    return radio, events


def test_scan_reports_access_points() -> None:
    radio, events = _radio()

    radio.start_scan()

    assert events == [RadioEvent.scan_done([HOME_A, HOME_B])]
    assert radio.scan_calls == 1


def test_connect_with_matching_password_acquires_ip() -> None:
    radio, events = _radio(passwords={"Home": "secret123"})

    radio.connect(ConnectRequest(ssid="Home", password="secret123"))

    [event] = events
    assert event.type is RadioEventType.IP_ACQUIRED
    assert event.ssid == "Home"
    assert event.ip_address == "192.168.4.100"
    assert radio.associated == HOME_A
    assert radio.get_gateway() == "192.168.4.1"


def test_connect_failures_report_disconnect() -> None:
    radio, events = _radio(passwords={"Home": "secret123"})

    radio.connect(ConnectRequest(ssid="Home", password="nope"))
    radio.connect(ConnectRequest(ssid="Elsewhere"))
    radio.unreachable.add("Home")
    radio.connect(ConnectRequest(ssid="Home", password="secret123"))

    assert [(e.type, e.reason) for e in events] == [
        (RadioEventType.DISCONNECTED, "auth failed"),
        (RadioEventType.DISCONNECTED, "no AP found"),
        (RadioEventType.DISCONNECTED, "no AP found"),
    ]
    assert radio.associated is None
    assert radio.get_gateway() is None


def test_pinned_bssid_selects_that_ap() -> None:
    radio, _ = _radio()

    radio.connect(ConnectRequest(ssid="Home", bssid=HOME_B.bssid, channel=11))

    assert radio.associated == HOME_B
    assert radio.get_signal_strength() == -70
    assert radio.get_channel() == 11


def test_drop_link_reports_disconnect_once() -> None:
    radio, events = _radio()
    radio.connect(ConnectRequest(ssid="Home"))

    radio.drop_link()
    radio.drop_link()

    assert events[-1] == RadioEvent.disconnected("Home", "beacon timeout")
    assert len(events) == 2


def test_unsubscribed_handler_gets_nothing() -> None:
    radio, events = _radio()
    radio.unsubscribe(events.append)

    radio.start_scan()

    assert events == []


def test_handler_errors_do_not_break_delivery() -> None:
    radio, events = _radio()

    def broken(event: RadioEvent) -> None:
        raise ValueError("listener bug")

    radio.subscribe(broken)
    radio.subscribe(events.append)
    radio.start_scan()

    assert len(events) == 1


def test_tx_power_range_is_enforced() -> None:
    radio = MockRadio()

    radio.set_max_tx_power(84)
    assert radio.tx_power == 84

    with pytest.raises(RadioError):
        radio.set_max_tx_power(7)
