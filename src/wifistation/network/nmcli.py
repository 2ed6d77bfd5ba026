"""Radio driver adapter backed by NetworkManager/nmcli.

Provides safe WiFi operations without shell injection vulnerabilities.
All commands run with list arguments (no shell) on the adapter's own
command thread, which reports outcomes as radio events.
"""

import asyncio
import logging
import queue
import re
from typing import Any, Callable, Coroutine, TypeVar

from ..core.errors import NetworkError, RadioError
from ..core.retry import async_retry, RetryConfig
from ..core.threading import StoppableThread
from ..models import AuthMode, PowerSaveLevel, ScanResult
from .radio import ConnectRequest, RadioDriver, RadioEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

Command = Callable[[], Coroutine[Any, Any, None]]


def split_terse(line: str) -> list[str]:
    """Split an ``nmcli -t`` line on unescaped colons."""
    fields: list[str] = []
    current: list[str] = []
    escaped = False
    for ch in line:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == ":":
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
    fields.append("".join(current))
    return fields


def signal_to_dbm(percent: int) -> int:
    """Convert NetworkManager's 0-100 signal quality to dBm."""
    percent = max(0, min(100, percent))
    return percent // 2 - 100


def parse_security(value: str) -> AuthMode:
    """Map an nmcli SECURITY column to an auth mode."""
    tokens = set(value.upper().split())
    tokens.discard("--")
    if not tokens:
        return AuthMode.OPEN
    if "802.1X" in tokens:
        return AuthMode.WPA2_WPA3_ENTERPRISE if "WPA3" in tokens else AuthMode.WPA2_ENTERPRISE
    if "WPA3" in tokens:
        return AuthMode.WPA2_WPA3_PERSONAL if "WPA2" in tokens else AuthMode.WPA3_PERSONAL
    if "WPA2" in tokens:
        return AuthMode.WPA_WPA2_PERSONAL if "WPA1" in tokens else AuthMode.WPA2_PERSONAL
    if "WPA1" in tokens:
        return AuthMode.WPA_PERSONAL
    if "WEP" in tokens:
        return AuthMode.WEP
    return AuthMode.OPEN


def parse_scan_output(output: str) -> list[ScanResult]:
    """Parse ``nmcli -t -f SSID,BSSID,CHAN,SIGNAL,SECURITY device wifi list``.

    Hidden networks (empty SSID) and malformed lines are skipped.
    Every BSSID is kept, in nmcli's order.
    """
    results: list[ScanResult] = []
    for line in output.split("\n"):
        if not line.strip():
            continue

        fields = split_terse(line)
        if len(fields) != 5:
            logger.debug("Skipping malformed scan line: %r", line)
            continue

        ssid, bssid, chan, signal, security = fields
        if not ssid:
            continue

        try:
            bssid_bytes = bytes.fromhex(bssid.replace(":", ""))
            channel = int(chan) if chan else 0
            rssi = signal_to_dbm(int(signal) if signal else 0)
        except ValueError:
            logger.debug("Skipping unparsable scan line: %r", line)
            continue

        if len(bssid_bytes) != 6:
            continue

        results.append(
            ScanResult(
                ssid=ssid,
                bssid=bssid_bytes,
                channel=channel,
                rssi=rssi,
                auth_mode=parse_security(security),
            )
        )
    return results


class NmcliRadio(RadioDriver):
    """Radio driver adapter using NetworkManager.

    Commands are queued to a dedicated thread; scan results, joins and
    link loss are reported as radio events from that thread. While
    associated, the link is polled so drops surface as DISCONNECTED.

    Usage:
        radio = NmcliRadio("wlan0")
        radio.start()
        station = WifiStation(radio, config_manager)
    """

    # Regex for SSID validation (alphanumeric, spaces, common punctuation)
    SSID_PATTERN = re.compile(r"^[\w\s\-\.\!\@\#\$\%\&\*\(\)]+$")

    # Connection name prefix for managed connections
    CONNECTION_PREFIX = "wifistation"

    # Time for a rescan to populate the results list
    SCAN_SETTLE_SECONDS = 2.0

    def __init__(self, interface: str = "wlan0", poll_interval: float = 5.0) -> None:
        """Initialize the adapter.

        Args:
            interface: WiFi interface name
            poll_interval: Link check interval while associated
        """
        super().__init__()
        self._interface = interface
        self._poll_interval = poll_interval
        self._connection_name = f"{self.CONNECTION_PREFIX}-{interface}"
        self._commands: queue.Queue[Command] = queue.Queue()
        self._thread: StoppableThread | None = None
        self._associated_ssid: str | None = None

    def start(self) -> None:
        """Start the command thread and report the radio as started."""
        if self._thread is not None:
            return
        logger.info("Starting nmcli radio on %s", self._interface)
        self._thread = StoppableThread(target=self._command_loop, name="NmcliRadio")
        self._thread.start()
        self._emit(RadioEvent.started())

    def close(self) -> None:
        """Stop the command thread."""
        if self._thread is None:
            return
        self._thread.stop(timeout=5.0)
        self._thread = None

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def start_scan(self, show_hidden: bool = True) -> None:
        self._submit(self._scan_and_report)

    def connect(self, request: ConnectRequest) -> None:
        self._submit(lambda: self._connect_and_report(request))

    def disconnect(self) -> None:
        self._associated_ssid = None
        self._submit(self._disconnect)

    def get_signal_strength(self) -> int:
        active = self._query(self._active_ap)
        return signal_to_dbm(active[0]) if active else 0

    def get_channel(self) -> int:
        active = self._query(self._active_ap)
        return active[1] if active else 0

    def get_gateway(self) -> str | None:
        return self._query(self._gateway)

    def set_max_tx_power(self, value: int) -> None:
        # Quarter dBm to mBm
        self._configure("iw", "dev", self._interface, "set", "txpower", "limit", str(value * 25))

    def set_power_save(self, level: PowerSaveLevel) -> None:
        state = "off" if level is PowerSaveLevel.PERFORMANCE else "on"
        self._configure("iw", "dev", self._interface, "set", "power_save", state)

    # -------------------------------------------------------------------------
    # nmcli operations
    # -------------------------------------------------------------------------

    def _validate_ssid(self, ssid: str) -> None:
        """Validate SSID to prevent injection.

        Raises:
            NetworkError: If SSID is invalid
        """
        if not ssid:
            raise NetworkError("SSID cannot be empty")
        if len(ssid) > 32:
            raise NetworkError("SSID too long (max 32 characters)")
        if not self.SSID_PATTERN.match(ssid):
            raise NetworkError("SSID contains invalid characters")

    def _validate_password(self, password: str | None) -> None:
        """Validate password.

        Raises:
            NetworkError: If password is invalid
        """
        if password and len(password) > 63:
            raise NetworkError("Password too long (max 63 characters)")

    async def _run_command(
        self,
        program: str,
        *args: str,
        check: bool = True,
        timeout: float = 30.0,
    ) -> str:
        """Run a command safely.

        Args:
            program: Executable (nmcli, iw)
            *args: Command arguments
            check: Raise on non-zero exit
            timeout: Command timeout in seconds

        Returns:
            Command stdout

        Raises:
            NetworkError: If command fails
        """
        logger.debug("Running: %s %s", program, " ".join(args))

        try:
            proc = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise NetworkError(f"{program} not available", cause=e) from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            raise NetworkError(f"{program} command timed out", details={"args": args})

        if check and proc.returncode != 0:
            error_msg = stderr.decode().strip() if stderr else "Unknown error"
            raise NetworkError(
                f"{program} failed: {error_msg}",
                details={"args": args, "returncode": proc.returncode},
            )

        return stdout.decode().strip() if stdout else ""

    async def _run_nmcli(self, *args: str, check: bool = True, timeout: float = 30.0) -> str:
        return await self._run_command("nmcli", *args, check=check, timeout=timeout)

    @async_retry(RetryConfig(max_attempts=2, base_delay=1.0, retryable_exceptions=(NetworkError,)))
    async def scan(self) -> list[ScanResult]:
        """Scan for access points.

        Returns:
            Every visible BSSID with a non-empty SSID
        """
        logger.info("Scanning WiFi networks")

        await self._run_nmcli("device", "wifi", "rescan", "ifname", self._interface, check=False)
        await asyncio.sleep(self.SCAN_SETTLE_SECONDS)

        output = await self._run_nmcli(
            "-t",
            "-f",
            "SSID,BSSID,CHAN,SIGNAL,SECURITY",
            "device",
            "wifi",
            "list",
            "ifname",
            self._interface,
            "--rescan",
            "no",
        )
        results = parse_scan_output(output)
        logger.info("Found %d access points", len(results))
        return results

    async def _scan_and_report(self) -> None:
        try:
            results = await self.scan()
        except NetworkError as e:
            logger.error("Scan failed: %s", e)
            results = []
        self._emit(RadioEvent.scan_done(results))

    async def _join(self, request: ConnectRequest) -> None:
        self._validate_ssid(request.ssid)
        self._validate_password(request.password)

        await self._run_nmcli("connection", "delete", self._connection_name, check=False)

        if request.is_enterprise:
            await self._run_nmcli(
                "connection",
                "add",
                "type",
                "wifi",
                "ifname",
                self._interface,
                "con-name",
                self._connection_name,
                "ssid",
                request.ssid,
                "wifi-sec.key-mgmt",
                "wpa-eap",
                "802-1x.eap",
                "peap",
                "802-1x.phase2-auth",
                "mschapv2",
                "802-1x.identity",
                request.identity or "",
                "802-1x.password",
                request.enterprise_password or "",
            )
            await self._run_nmcli("connection", "up", self._connection_name)
            return

        args = ["device", "wifi", "connect", request.ssid]
        if request.password:
            args += ["password", request.password]
        if request.bssid is not None:
            args += ["bssid", ":".join(f"{b:02X}" for b in request.bssid)]
        args += ["ifname", self._interface, "name", self._connection_name]
        await self._run_nmcli(*args)

    async def _connect_and_report(self, request: ConnectRequest) -> None:
        logger.info("Connecting to WiFi: %s", request.ssid)
        try:
            await self._join(request)
            ip_address = await self.get_ip_address()
        except NetworkError as e:
            logger.warning("Connection to %s failed: %s", request.ssid, e)
            self._emit(RadioEvent.disconnected(request.ssid, e.message))
            return

        if ip_address is None:
            self._emit(RadioEvent.disconnected(request.ssid, "no IP address"))
            return

        self._associated_ssid = request.ssid
        self._emit(RadioEvent.ip_acquired(ip_address, request.ssid))

    async def _disconnect(self) -> None:
        logger.info("Disconnecting WiFi")
        await self._run_nmcli("device", "disconnect", self._interface, check=False)

    async def is_connected(self) -> bool:
        """Check whether the interface is connected."""
        try:
            output = await self._run_nmcli("-t", "-f", "DEVICE,STATE", "device", "status")
        except NetworkError:
            return False
        for line in output.split("\n"):
            fields = split_terse(line)
            if len(fields) == 2 and fields[0] == self._interface:
                return fields[1] == "connected"
        return False

    async def get_ip_address(self) -> str | None:
        """Get the interface's IPv4 address."""
        output = await self._run_nmcli("-t", "-f", "IP4.ADDRESS", "device", "show", self._interface)
        for line in output.split("\n"):
            if "IP4.ADDRESS" in line:
                # Format: IP4.ADDRESS[1]:192.168.1.100/24
                match = re.search(r"(\d+\.\d+\.\d+\.\d+)", line)
                if match:
                    return match.group(1)
        return None

    async def _gateway(self) -> str | None:
        output = await self._run_nmcli("-t", "-f", "IP4.GATEWAY", "device", "show", self._interface)
        for line in output.split("\n"):
            if line.startswith("IP4.GATEWAY:"):
                gateway = line.split(":", 1)[1].strip()
                return gateway or None
        return None

    async def _active_ap(self) -> tuple[int, int] | None:
        """Signal percent and channel of the associated AP."""
        output = await self._run_nmcli(
            "-t", "-f", "ACTIVE,SIGNAL,CHAN", "device", "wifi", "list", "--rescan", "no"
        )
        for line in output.split("\n"):
            fields = split_terse(line)
            if len(fields) == 3 and fields[0] == "yes":
                try:
                    return int(fields[1]), int(fields[2])
                except ValueError:
                    return None
        return None

    async def _check_link(self) -> None:
        ssid = self._associated_ssid
        if ssid is None:
            return
        if not await self.is_connected():
            self._associated_ssid = None
            logger.info("Link to %s lost", ssid)
            self._emit(RadioEvent.disconnected(ssid, "link lost"))

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _submit(self, command: Command) -> None:
        if self._thread is None or not self._thread.is_alive():
            raise RadioError("Radio not started", details={"interface": self._interface})
        self._commands.put(command)

    def _query(self, operation: Callable[[], Coroutine[Any, Any, T]]) -> T | None:
        try:
            return asyncio.run(operation())
        except NetworkError as e:
            logger.debug("nmcli query failed: %s", e)
            return None

    def _configure(self, program: str, *args: str) -> None:
        try:
            asyncio.run(self._run_command(program, *args))
        except NetworkError as e:
            raise RadioError(f"{program} rejected configuration", cause=e) from e

    def _command_loop(self, thread: StoppableThread) -> None:
        logger.debug("nmcli command thread started")
        while not thread.should_stop():
            try:
                command: Command | None = self._commands.get(timeout=self._poll_interval)
            except queue.Empty:
                command = None

            if thread.should_stop():
                break

            try:
                asyncio.run(command() if command is not None else self._check_link())
            except NetworkError as e:
                logger.error("nmcli command failed: %s", e)
        logger.debug("nmcli command thread stopped")
