"""Data types shared by the ranker, the station and the radio adapters."""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuthMode(Enum):
    """Access point authentication modes reported by a scan."""

    OPEN = "open"
    WEP = "wep"
    WPA_PERSONAL = "wpa-personal"
    WPA2_PERSONAL = "wpa2-personal"
    WPA_WPA2_PERSONAL = "wpa-wpa2-personal"
    WPA2_ENTERPRISE = "wpa2-enterprise"
    WPA3_PERSONAL = "wpa3-personal"
    WPA2_WPA3_PERSONAL = "wpa2-wpa3-personal"
    WPA2_WPA3_ENTERPRISE = "wpa2-wpa3-enterprise"

    @property
    def is_enterprise(self) -> bool:
        """True for the 802.1X modes the radio receives identity material for."""
        return self in (AuthMode.WPA2_ENTERPRISE, AuthMode.WPA2_WPA3_ENTERPRISE)


class PowerSaveLevel(Enum):
    """Modem sleep aggressiveness."""

    LOW_POWER = "low_power"
    BALANCED = "balanced"
    PERFORMANCE = "performance"


class KnownNetwork(BaseModel):
    """A stored credential, unique by SSID.

    ``username`` is only set for enterprise networks and for networks
    behind a captive portal that wants a login form.
    """

    ssid: str = Field(..., min_length=1, max_length=32, description="Network SSID")
    password: str = Field("", max_length=128, description="Network or portal password")
    username: str = Field("", max_length=128, description="Enterprise or portal username")


@dataclass(frozen=True)
class ScanResult:
    """One access point seen during a scan cycle."""

    ssid: str
    bssid: bytes
    channel: int
    rssi: int  # dBm
    auth_mode: AuthMode

    @property
    def bssid_str(self) -> str:
        return ":".join(f"{b:02x}" for b in self.bssid)


@dataclass(frozen=True)
class ConnectionCandidate:
    """A scanned access point joined with its stored credential."""

    ssid: str
    password: str
    username: str
    bssid: bytes
    channel: int
    auth_mode: AuthMode
    rssi: int

    @property
    def is_enterprise(self) -> bool:
        """Join with 802.1X identity material instead of a passphrase."""
        return bool(self.username) and self.auth_mode.is_enterprise

    @property
    def needs_portal_login(self) -> bool:
        """A username on a non-enterprise network means a captive portal form."""
        return bool(self.username) and not self.auth_mode.is_enterprise

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging (no secrets)."""
        return {
            "ssid": self.ssid,
            "bssid": ":".join(f"{b:02x}" for b in self.bssid),
            "channel": self.channel,
            "rssi": self.rssi,
            "auth_mode": self.auth_mode.value,
            "portal": self.needs_portal_login,
        }
