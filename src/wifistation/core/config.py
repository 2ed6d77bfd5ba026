"""Station configuration stored as one YAML file.

The file holds the station tunables, the known-network list the ranker
matches scans against, captive portal settings and logging options. All
sections are validated by pydantic models; ``ConfigManager`` owns the file
and hands out copies.
"""

import logging
import re
import threading
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..models import KnownNetwork, PowerSaveLevel
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/wifistation/config.yaml")


# -----------------------------------------------------------------------------
# Models
# -----------------------------------------------------------------------------


class StationSettings(BaseModel):
    """Radio tuning and scan backoff, read once when the station is built."""

    max_tx_power: int = Field(
        0, ge=-128, le=127, description="Output power ceiling (0=driver default)"
    )
    remember_bssid: bool = Field(False, description="Pin BSSID and channel when connecting")
    scan_backoff_min_seconds: float = Field(10.0, gt=0, description="First rescan delay")
    scan_backoff_max_seconds: float = Field(300.0, gt=0, description="Rescan delay ceiling")
    power_save: PowerSaveLevel | None = Field(None, description="Power save level (None=driver default)")

    @model_validator(mode="after")
    def clamp_backoff_range(self) -> "StationSettings":
        """Raise the ceiling to the floor rather than reject the range."""
        if self.scan_backoff_max_seconds < self.scan_backoff_min_seconds:
            logger.warning(
                "scan_backoff_max_seconds %.1f below minimum, using %.1f",
                self.scan_backoff_max_seconds,
                self.scan_backoff_min_seconds,
            )
            self.scan_backoff_max_seconds = self.scan_backoff_min_seconds
        return self

    @classmethod
    def from_stored(cls, data: dict[str, Any] | None) -> "StationSettings":
        """Build settings from stored values, dropping the ones that fail validation.

        An invalid stored value means "no override", so the field keeps
        its default instead of failing the whole section.
        """
        values = {k: v for k, v in (data or {}).items() if k in cls.model_fields}
        while True:
            try:
                return cls.model_validate(values)
            except ValidationError as e:
                invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
                if not invalid:
                    raise
                for key in invalid:
                    logger.warning("Ignoring invalid station setting %s=%r", key, values.get(key))
                    values.pop(key, None)


class ProbeKind(str, Enum):
    """How a detection probe's HTTP 200 answer is interpreted."""

    # Endpoint should answer 204; any 200 is an intercepting portal
    EXPECT_204 = "expect_204"
    # A short 200 body is the genuine success page; a long one is injected
    SMALL_BODY = "small_body"


class ProbeConfig(BaseModel):
    """One captive portal detection endpoint."""

    url: str = Field(..., description="Probe URL (plain HTTP)")
    kind: ProbeKind = Field(ProbeKind.EXPECT_204, description="Response interpretation")
    dns_host: str | None = Field(None, description="Host resolved on hijack (None=URL host)")


class PortalConfig(BaseModel):
    """Captive portal detection policy.

    Endpoints, SSID patterns and hardcoded login URLs are deployment
    specific; the defaults match the campus networks the firmware shipped for.
    """

    enabled: bool = Field(True, description="Run portal login after joining portal networks")
    probes: list[ProbeConfig] = Field(
        default_factory=lambda: [
            ProbeConfig(
                url="http://connect.rom.miui.com/generate_204",
                kind=ProbeKind.EXPECT_204,
                dns_host="connect.rom.miui.com",
            ),
            ProbeConfig(
                url="http://captive.apple.com/",
                kind=ProbeKind.SMALL_BODY,
                dns_host="captive.apple.com",
            ),
        ]
    )
    institutional_ssid_patterns: list[str] = Field(
        default_factory=lambda: ["BUPT"],
        description="SSID regexes that always get the fallback strategies",
    )
    login_urls: dict[str, str] = Field(
        default_factory=lambda: {
            "BUPT-portal": "http://10.3.8.216/login",
            "BUPT-mobile": "http://10.3.8.216/login",
        },
        description="Hardcoded login URL per SSID",
    )
    probe_timeout: float = Field(5.0, gt=0, le=60, description="Per-probe timeout in seconds")
    login_timeout: float = Field(8.0, gt=0, le=60, description="Login POST timeout in seconds")
    success_body_max_bytes: int = Field(
        200, ge=1, description="Largest 200 body still treated as genuine success"
    )
    user_agent: str = Field(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64)", description="User-Agent for the login POST"
    )

    @field_validator("institutional_ssid_patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        """Reject patterns that do not compile."""
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid SSID pattern {pattern!r}: {e}") from e
        return v


class BoardConfig(BaseModel):
    """Board-level startup behaviour."""

    board_type: str = Field("wifi", description="Board type reported in board info")
    name: str = Field("wifistation", description="Board name reported in board info")
    connect_timeout_seconds: float = Field(60.0, gt=0, description="Startup connect timeout")
    force_config_mode: bool = Field(False, description="Enter config mode on next start")


class LoggingConfig(BaseModel):
    """Console and file logging, applied by ``setup_logging``."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Root log level"
    )
    format: Literal["simple", "structured"] = Field("simple", description="Console output style")
    file: str | None = Field(None, description="JSON log file (None=console only)")
    max_size_mb: int = Field(10, ge=1, description="Log file rotation size")
    backup_count: int = Field(3, ge=0, description="Rotated log files kept")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class Config(BaseModel):
    """Root configuration model."""

    station: StationSettings = Field(default_factory=StationSettings)
    networks: list[KnownNetwork] = Field(default_factory=list)
    portal: PortalConfig = Field(default_factory=PortalConfig)
    board: BoardConfig = Field(default_factory=BoardConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("networks")
    @classmethod
    def unique_ssids(cls, v: list[KnownNetwork]) -> list[KnownNetwork]:
        """Keep the first entry for each SSID."""
        seen: set[str] = set()
        unique: list[KnownNetwork] = []
        for network in v:
            if network.ssid in seen:
                logger.warning("Duplicate network entry for %s ignored", network.ssid)
                continue
            seen.add(network.ssid)
            unique.append(network)
        return unique


# -----------------------------------------------------------------------------
# Persistence
# -----------------------------------------------------------------------------


def _stored_networks(entries: Any) -> list[dict[str, Any]]:
    """Validate stored networks one entry at a time, dropping the ones that fail."""
    if entries is None:
        return []
    if not isinstance(entries, list):
        logger.warning("Ignoring networks section of type %s", type(entries).__name__)
        return []

    networks: list[dict[str, Any]] = []
    for entry in entries:
        try:
            networks.append(KnownNetwork.model_validate(entry).model_dump())
        except ValidationError as e:
            ssid = entry.get("ssid") if isinstance(entry, dict) else None
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            logger.warning("Ignoring stored network %r, invalid %s", ssid, ", ".join(fields) or "entry")
    return networks


class ConfigManager:
    """Owns the config file; every change is validated, then written back.

    Also serves as the station's credential store: the known-network list
    lives in the ``networks`` section of the same file.

    Usage:
        config_manager = ConfigManager("/path/to/config.yaml")
        config = config_manager.get()
        config_manager.add_network("HomeWifi", "secret123")
    """

    def __init__(self, config_path: str | Path = DEFAULT_CONFIG_PATH) -> None:
        self._config_path = Path(config_path)
        self._config: Config
        self._lock = threading.RLock()
        self._load()

    @property
    def path(self) -> Path:
        return self._config_path

    def _read_file(self) -> Config:
        data = yaml.safe_load(self._config_path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValueError("top level must be a mapping")
        station = data.get("station")
        data["station"] = StationSettings.from_stored(
            station if isinstance(station, dict) else None
        ).model_dump()
        data["networks"] = _stored_networks(data.get("networks"))
        return Config.model_validate(data)

    def _load(self) -> None:
        """Read the file, falling back to defaults when it is missing or unreadable.

        A missing file is created with the defaults; a broken one is left
        untouched until the next update overwrites it.
        """
        if not self._config_path.exists():
            logger.info("No config at %s, writing defaults", self._config_path)
            self._config = Config()
            self._save()
            return
        try:
            self._config = self._read_file()
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning("Ignoring unreadable config %s: %s", self._config_path, e)
            self._config = Config()
        else:
            logger.info(
                "Loaded %d known networks from %s", len(self._config.networks), self._config_path
            )

    def _save(self) -> None:
        """Write the current config next to the target, then rename over it."""
        staging = self._config_path.with_suffix(".tmp")
        try:
            self._config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(staging, "w") as f:
                data = self._config.model_dump(mode="json")
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
            staging.replace(self._config_path)
        except OSError as e:
            logger.error("Could not write config %s: %s", self._config_path, e)
            raise ConfigurationError(
                "Failed to save config", details={"path": str(self._config_path)}, cause=e
            ) from e
        logger.debug("Wrote config %s", self._config_path)

    def get(self) -> Config:
        """Snapshot of the config; changes to it are not persisted."""
        with self._lock:
            return self._config.model_copy(deep=True)

    def _replace(self, data: dict[str, Any]) -> None:
        try:
            config = Config.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError("Invalid configuration update", cause=e) from e
        self._config = config
        self._save()

    def update_station(self, **kwargs: Any) -> None:
        """Update station settings."""
        with self._lock:
            data = self._config.model_dump()
            data["station"].update(kwargs)
            self._replace(data)

    def set_force_config_mode(self, enabled: bool) -> None:
        """Persist the flag that sends the next start into config mode."""
        with self._lock:
            data = self._config.model_dump()
            data["board"]["force_config_mode"] = enabled
            self._replace(data)

    # -------------------------------------------------------------------------
    # Credential store
    # -------------------------------------------------------------------------

    def list_known_networks(self) -> list[KnownNetwork]:
        """Get the known networks in stored order."""
        with self._lock:
            return [network.model_copy() for network in self._config.networks]

    def add_network(self, ssid: str, password: str, username: str = "") -> None:
        """Add a network, or replace the credentials of an existing SSID.

        Raises:
            ConfigurationError: If the entry fails validation
        """
        try:
            entry = KnownNetwork(ssid=ssid, password=password, username=username)
        except ValidationError as e:
            raise ConfigurationError("Invalid network entry", details={"ssid": ssid}, cause=e) from e

        with self._lock:
            data = self._config.model_dump()
            networks = data["networks"]
            for i, existing in enumerate(networks):
                if existing["ssid"] == ssid:
                    networks[i] = entry.model_dump()
                    break
            else:
                networks.append(entry.model_dump())
            self._replace(data)
        logger.info("Stored credentials for %s", ssid)

    def remove_network(self, ssid: str) -> bool:
        """Forget a network.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            data = self._config.model_dump()
            remaining = [n for n in data["networks"] if n["ssid"] != ssid]
            if len(remaining) == len(data["networks"]):
                return False
            data["networks"] = remaining
            self._replace(data)
        logger.info("Removed credentials for %s", ssid)
        return True
