"""Connection state machine for the WiFi station.

The station owns the connect/retry/backoff cycle:

    IDLE -> SCANNING -> CONNECTING -> CONNECTED
              ^             |  ^          |
              |             v  |          v
              +---- (backoff) <-- disconnected (bounded retries)

Radio events are pushed onto a queue by the driver and consumed by a single
worker thread, so every transition runs on one context and in delivery
order. The rescan timer is kept by the same worker. Captive portal logins
run on their own threads and never feed back into the state machine.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Protocol, Sequence

from ..core.config import PortalConfig, StationSettings
from ..core.errors import RadioError
from ..core.retry import ScanBackoff
from ..core.threading import LockedValue, StoppableThread
from ..models import AuthMode, ConnectionCandidate, KnownNetwork, PowerSaveLevel
from .portal import CaptivePortalEngine, PortalLoginTask, PortalSession
from .radio import ConnectRequest, RadioDriver, RadioEvent, RadioEventType
from .ranker import rank_candidates

logger = logging.getLogger(__name__)

# Same-candidate reconnects before moving on
MAX_RECONNECT_COUNT = 5


class StationState(Enum):
    """Station lifecycle states."""

    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ConnectionContext:
    """The in-flight attempt, replaced wholesale whenever it changes."""

    candidate: ConnectionCandidate
    generation: int
    reconnect_count: int = 0


class CredentialStore(Protocol):
    """Known-network storage the station reads from."""

    def list_known_networks(self) -> Sequence[KnownNetwork]: ...

    def add_network(self, ssid: str, password: str, username: str = "") -> None: ...


class StationListener:
    """Receives station lifecycle notifications.

    Callbacks run on the station worker thread and must return quickly.
    Override the ones you need.
    """

    def on_scan_begin(self) -> None:
        pass

    def on_connecting(self, ssid: str) -> None:
        pass

    def on_connected(self, ssid: str) -> None:
        pass

    def on_disconnected(self) -> None:
        pass


PortalLauncher = Callable[[PortalSession], PortalLoginTask | None]


class WifiStation:
    """Scans, ranks, connects and keeps the station connected.

    Usage:
        station = WifiStation(radio, config_manager, listener, settings=config.station)
        station.start()
        if station.wait_for_connected(timeout=60):
            print(station.current_ssid(), station.ip_address())
        station.stop()
    """

    def __init__(
        self,
        radio: RadioDriver,
        credentials: CredentialStore,
        listener: StationListener | None = None,
        settings: StationSettings | None = None,
        portal_config: PortalConfig | None = None,
        portal_launcher: PortalLauncher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the station.

        Args:
            radio: Radio driver adapter (commands and event source)
            credentials: Known-network store
            listener: Lifecycle notification sink
            settings: Radio tuning and scan backoff range
            portal_config: Captive portal detection policy
            portal_launcher: Starts a portal login for a session (default: PortalLoginTask)
            clock: Monotonic clock for the rescan timer
        """
        self._radio = radio
        self._credentials = credentials
        self._listener = listener or StationListener()
        self._settings = settings or StationSettings()
        self._portal_config = portal_config or PortalConfig()
        self._portal_launcher = portal_launcher or self._launch_portal_task
        self._clock = clock

        self._events: queue.Queue[RadioEvent | None] = queue.Queue()
        self._worker: StoppableThread | None = None
        self._running = False
        self._fatal_error: RadioError | None = None

        # Owned by the worker
        self._state = StationState.IDLE
        self._queue: list[ConnectionCandidate] = []
        self._context: ConnectionContext | None = None
        self._generation = 0
        self._was_connected = False
        self._backoff = ScanBackoff(
            self._settings.scan_backoff_min_seconds,
            self._settings.scan_backoff_max_seconds,
        )
        self._rescan_at: float | None = None
        self._rescan_delay: float | None = None
        self._portal_tasks: list[PortalLoginTask] = []

        # Readable from any thread
        self._ssid = LockedValue("")
        self._ip_address = LockedValue("")
        self._status = threading.Condition()
        self._connected = False
        self._stopped = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Apply radio settings, subscribe to radio events and begin scanning.

        Raises:
            RadioError: If the driver rejects the configuration
        """
        if self._running:
            return

        logger.info("Starting WiFi station")
        self._fatal_error = None
        with self._status:
            self._connected = False
            self._stopped = False
        self._state = StationState.IDLE

        self.apply_settings()

        self._radio.subscribe(self._enqueue)
        self._running = True
        self._worker = StoppableThread(target=self._run, name="WifiStation")
        self._worker.start()
        self._events.put(RadioEvent.started())

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the station; safe to call in any state.

        Returns once the station is observably stopped. Portal login tasks
        already running are left to finish on their own.
        """
        logger.info("Stopping WiFi station")
        self._radio.unsubscribe(self._enqueue)

        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.request_stop()
            self._events.put(None)
            worker.stop(timeout=timeout)

        self._rescan_at = None
        self._rescan_delay = None
        self._queue = []
        self._context = None
        self._was_connected = False
        self._state = StationState.STOPPED

        try:
            self._radio.disconnect()
        except RadioError as e:
            logger.warning("Disconnect during stop failed: %s", e)

        self._ip_address.set("")
        with self._status:
            self._connected = False
            self._stopped = True
            self._status.notify_all()
        self._running = False

    def wait_for_connected(self, timeout: float | None = None) -> bool:
        """Block until connected or stopped.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            True if the station is connected

        Raises:
            RadioError: If the worker stopped on a driver command failure
        """
        with self._status:
            self._status.wait_for(lambda: self._connected or self._stopped, timeout=timeout)
            connected = self._connected
        if self._fatal_error is not None:
            raise self._fatal_error
        return connected

    def apply_settings(self) -> None:
        """Push tx power and power save overrides to the radio.

        Values left at their defaults are not sent, so the driver keeps
        its own defaults. Safe to repeat.
        """
        if self._settings.max_tx_power != 0:
            logger.info("Setting max tx power to %d", self._settings.max_tx_power)
            self._radio.set_max_tx_power(self._settings.max_tx_power)
        if self._settings.power_save is not None:
            self.set_power_save_level(self._settings.power_save)

    def set_power_save_level(self, level: PowerSaveLevel) -> None:
        logger.info("Setting power save level to %s", level.value)
        self._radio.set_power_save(level)

    def set_scan_interval_range(self, min_seconds: float, max_seconds: float) -> None:
        """Change the rescan backoff bounds (call before start())."""
        self._backoff.set_range(min_seconds, max_seconds)

    def add_auth(self, ssid: str, password: str) -> None:
        """Store credentials for a network."""
        self._credentials.add_network(ssid, password)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def is_connected(self) -> bool:
        with self._status:
            return self._connected

    def current_ssid(self) -> str:
        return self._ssid.get()

    def ip_address(self) -> str:
        return self._ip_address.get()

    def signal_strength(self) -> int:
        """RSSI of the current AP in dBm, 0 when not connected."""
        if not self.is_connected():
            return 0
        return self._radio.get_signal_strength()

    def channel(self) -> int:
        """Channel of the current AP, 0 when not connected."""
        if not self.is_connected():
            return 0
        return self._radio.get_channel()

    @property
    def state(self) -> StationState:
        return self._state

    @property
    def context(self) -> ConnectionContext | None:
        return self._context

    @property
    def reconnect_count(self) -> int:
        return self._context.reconnect_count if self._context else 0

    @property
    def candidate_queue(self) -> tuple[ConnectionCandidate, ...]:
        return tuple(self._queue)

    @property
    def backoff(self) -> ScanBackoff:
        return self._backoff

    @property
    def rescan_delay(self) -> float | None:
        """Delay the pending rescan was scheduled with, None if none is pending."""
        return self._rescan_delay

    @property
    def portal_tasks(self) -> list[PortalLoginTask]:
        return list(self._portal_tasks)

    # -------------------------------------------------------------------------
    # Event processing
    # -------------------------------------------------------------------------

    def handle_event(self, event: RadioEvent) -> None:
        """Apply one radio event to the state machine.

        Called by the worker thread; tests call it directly.
        """
        if self._state is StationState.STOPPED:
            logger.debug("Station stopped, ignoring %s", event.type.value)
            return

        handlers: dict[RadioEventType, Callable[[RadioEvent], None]] = {
            RadioEventType.STARTED: self._on_started,
            RadioEventType.SCAN_DONE: self._on_scan_done,
            RadioEventType.DISCONNECTED: self._on_disconnected,
            RadioEventType.IP_ACQUIRED: self._on_ip_acquired,
        }
        handlers[event.type](event)

    def run_pending(self) -> None:
        """Fire the rescan timer if it is due."""
        if self._rescan_at is None or self._clock() < self._rescan_at:
            return
        self._rescan_at = None
        self._rescan_delay = None
        if self.is_connected() or self._state is StationState.STOPPED:
            return
        self._begin_scan()

    def _enqueue(self, event: RadioEvent) -> None:
        self._events.put(event)

    def _run(self, thread: StoppableThread) -> None:
        logger.debug("Station worker started")
        while not thread.should_stop():
            timeout = None
            if self._rescan_at is not None:
                timeout = max(0.0, self._rescan_at - self._clock())

            try:
                event = self._events.get(timeout=timeout)
            except queue.Empty:
                event = None

            if thread.should_stop():
                break

            try:
                if event is not None:
                    self.handle_event(event)
                self.run_pending()
            except RadioError as e:
                logger.log(e.log_level, "Radio command failed: %s", e, extra={"error": e.to_dict()})
                self._fail(e)
                break
        logger.debug("Station worker stopped")

    def _fail(self, error: RadioError) -> None:
        self._fatal_error = error
        self._radio.unsubscribe(self._enqueue)
        self._rescan_at = None
        self._rescan_delay = None
        self._state = StationState.STOPPED
        with self._status:
            self._connected = False
            self._stopped = True
            self._status.notify_all()
        self._running = False

    def _on_started(self, event: RadioEvent) -> None:
        if self._state is not StationState.IDLE or self.is_connected():
            logger.debug("Radio started while %s, not scanning", self._state.value)
            return
        self._begin_scan()

    def _on_scan_done(self, event: RadioEvent) -> None:
        if self._state not in (StationState.SCANNING, StationState.IDLE):
            logger.debug("Ignoring scan results while %s", self._state.value)
            return

        logger.info("Scan done, %d APs found", len(event.scan_results))
        self._queue = rank_candidates(event.scan_results, self._credentials.list_known_networks())

        if not self._queue:
            if event.scan_results:
                logger.info("No matching AP found")
            else:
                logger.info("No APs found")
            self._schedule_rescan()
            return

        self._connect_next()

    def _on_disconnected(self, event: RadioEvent) -> None:
        context = self._context
        if context is None:
            logger.debug("Ignoring disconnect with no active attempt")
            return
        if event.ssid is not None and event.ssid != context.candidate.ssid:
            logger.debug("Ignoring stale disconnect for %s", event.ssid)
            return

        self._set_connected(False)
        self._ip_address.set("")

        was_connected = self._was_connected
        self._was_connected = False
        if was_connected:
            self._notify("on_disconnected")

        if context.reconnect_count < MAX_RECONNECT_COUNT:
            self._context = replace(context, reconnect_count=context.reconnect_count + 1)
            logger.info(
                "Disconnected from %s (%s), retrying... (%d/%d)",
                context.candidate.ssid,
                event.reason or "no reason",
                self._context.reconnect_count,
                MAX_RECONNECT_COUNT,
            )
            self._state = StationState.CONNECTING
            self._radio.connect(self._build_request(context.candidate))
            return

        logger.info("Reconnect to %s failed, looking for other APs or scanning...", context.candidate.ssid)
        if self._queue:
            self._connect_next()
        else:
            self._context = None
            self._schedule_rescan()

    def _on_ip_acquired(self, event: RadioEvent) -> None:
        context = self._context
        if context is None:
            logger.debug("Ignoring IP event with no active attempt")
            return
        if event.ssid is not None and event.ssid != context.candidate.ssid:
            logger.debug("Ignoring stale IP event for %s", event.ssid)
            return

        ip_address = event.ip_address or ""
        logger.info("Got IP: %s", ip_address)

        self._context = replace(context, reconnect_count=0)
        self._queue = []
        self._backoff.reset()
        self._rescan_at = None
        self._rescan_delay = None
        self._was_connected = True
        self._state = StationState.CONNECTED
        self._ip_address.set(ip_address)
        self._set_connected(True)

        self._notify("on_connected", context.candidate.ssid)

        if context.candidate.needs_portal_login:
            self._start_portal_login(context.candidate)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _begin_scan(self) -> None:
        self._rescan_at = None
        self._rescan_delay = None
        logger.info("Starting scan")
        self._radio.start_scan(show_hidden=True)
        self._state = StationState.SCANNING
        self._notify("on_scan_begin")

    def _schedule_rescan(self) -> None:
        delay = self._backoff.next_delay()
        self._rescan_delay = delay
        self._rescan_at = self._clock() + delay
        self._state = StationState.IDLE
        logger.info("Next scan in %.0f seconds", delay)

    def _connect_next(self) -> None:
        candidate = self._queue.pop(0)
        self._generation += 1
        self._context = ConnectionContext(candidate=candidate, generation=self._generation)
        self._rescan_at = None
        self._rescan_delay = None
        self._ssid.set(candidate.ssid)
        self._state = StationState.CONNECTING

        self._notify("on_connecting", candidate.ssid)

        logger.info("Connecting to %s", candidate.ssid, extra={"candidate": candidate.to_dict()})
        self._radio.disconnect()
        self._radio.connect(self._build_request(candidate))

    def _build_request(self, candidate: ConnectionCandidate) -> ConnectRequest:
        pin: dict[str, Any] = {}
        if self._settings.remember_bssid:
            pin = {"bssid": candidate.bssid, "channel": candidate.channel}

        if candidate.is_enterprise:
            return ConnectRequest(
                ssid=candidate.ssid,
                identity=candidate.username,
                enterprise_password=candidate.password,
                **pin,
            )

        # Open networks get no passphrase even when a portal password is stored
        password = None if candidate.auth_mode is AuthMode.OPEN else candidate.password
        return ConnectRequest(ssid=candidate.ssid, password=password, **pin)

    def _start_portal_login(self, candidate: ConnectionCandidate) -> None:
        if not self._portal_config.enabled:
            logger.info("Portal login disabled, skipping %s", candidate.ssid)
            return

        session = PortalSession(
            username=candidate.username,
            password=candidate.password,
            ssid=candidate.ssid,
        )
        logger.info("Initiating portal login for %s", candidate.ssid)
        try:
            task = self._portal_launcher(session)
        except RuntimeError as e:
            logger.error("Failed to start portal login for %s: %s", candidate.ssid, e)
            return

        if task is not None:
            self._portal_tasks = [t for t in self._portal_tasks if not t.done]
            self._portal_tasks.append(task)

    def _launch_portal_task(self, session: PortalSession) -> PortalLoginTask:
        engine = CaptivePortalEngine(self._portal_config, gateway_provider=self._radio.get_gateway)
        return PortalLoginTask(engine, session).start()

    def _set_connected(self, connected: bool) -> None:
        with self._status:
            self._connected = connected
            self._status.notify_all()

    def _notify(self, name: str, *args: Any) -> None:
        callback = getattr(self._listener, name)
        try:
            callback(*args)
        except Exception as e:
            logger.error("Error in %s callback: %s", name, e)
