"""Captive portal detection and automated login.

After joining a network whose stored credential carries a portal username,
the station hands a ``PortalSession`` to a background ``PortalLoginTask``.
The engine probes well-known connectivity endpoints, works out the portal's
login URL and submits the credentials once. Nothing here touches the
station's connection state; every failure just ends the attempt.

Detection order (first hit wins):
1. Probes from ``PortalConfig.probes``: a 301/302 ``Location`` is the login
   URL; a 200 where none belongs means interception, and a private address
   for the probe host means the portal answers DNS itself.
2. Fallbacks when interception was seen or the SSID looks institutional:
   a hardcoded URL for the SSID, else the default gateway.
"""

import asyncio
import ipaddress
import logging
import re
import socket
from dataclasses import dataclass, replace
from typing import Awaitable, Callable
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx

from ..core.config import PortalConfig, ProbeConfig, ProbeKind
from ..core.errors import PortalError
from ..core.threading import StoppableThread

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[str | None]]
GatewayProvider = Callable[[], str | None]

PRIVATE_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)


@dataclass(frozen=True)
class PortalSession:
    """Credentials for one portal login attempt."""

    username: str
    password: str
    ssid: str
    login_url: str | None = None


@dataclass(frozen=True)
class ProbeOutcome:
    """What a single detection probe revealed."""

    login_url: str | None = None
    hijacked: bool = False


@dataclass(frozen=True)
class PortalLoginResult:
    """Outcome of one engine run."""

    session: PortalSession
    hijacked: bool = False
    status_code: int | None = None
    cancelled: bool = False

    @property
    def attempted(self) -> bool:
        return self.session.login_url is not None


def is_private_ipv4(address: str) -> bool:
    """Check whether an address lies in an RFC 1918 range."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return ip.version == 4 and any(ip in network for network in PRIVATE_NETWORKS)


def normalize_login_url(url: str) -> str:
    """Make the URL's last path segment a login segment.

    A URL already ending in a segment that mentions ``login`` is kept as is,
    otherwise ``login`` is appended to the path (query preserved).
    """
    parts = urlsplit(url)
    last_segment = parts.path.rstrip("/").rsplit("/", 1)[-1]
    if "login" in last_segment.lower():
        return url
    path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return urlunsplit(parts._replace(path=path + "login"))


async def resolve_ipv4(host: str) -> str | None:
    """Resolve a host name to its first IPv4 address."""
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
    except OSError as e:
        logger.warning("DNS lookup for %s failed: %s", host, e)
        return None
    if not infos:
        return None
    return infos[0][4][0]


class CaptivePortalEngine:
    """Detects captive portals and submits the login form.

    Usage:
        engine = CaptivePortalEngine(config.portal, gateway_provider=radio.get_gateway)
        result = await engine.run(PortalSession("alice", "secret", "CampusWifi"))
    """

    def __init__(
        self,
        config: PortalConfig | None = None,
        gateway_provider: GatewayProvider | None = None,
        resolver: Resolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Detection policy (endpoints, SSID patterns, timeouts)
            gateway_provider: Returns the station's default gateway
            resolver: Async host -> IPv4 lookup (default: system resolver)
            transport: httpx transport override
        """
        self._config = config or PortalConfig()
        self._gateway_provider = gateway_provider
        self._resolver = resolver or resolve_ipv4
        self._transport = transport
        self._ssid_patterns = [re.compile(p) for p in self._config.institutional_ssid_patterns]

    async def run(
        self,
        session: PortalSession,
        should_stop: Callable[[], bool] | None = None,
    ) -> PortalLoginResult:
        """Detect the portal and log in once.

        Args:
            session: Credentials and SSID for this attempt
            should_stop: Polled between steps; True abandons the attempt

        Returns:
            Result carrying the session with the login URL that was used
        """
        stopped = should_stop or (lambda: False)
        logger.info("Portal login started for %s on SSID: %s", session.username, session.ssid)

        async with httpx.AsyncClient(transport=self._transport, follow_redirects=False) as client:
            login_url, hijacked = await self.detect_login_url(client, session.ssid, stopped)

            if stopped():
                logger.info("Portal login for %s cancelled", session.ssid)
                return PortalLoginResult(session=session, hijacked=hijacked, cancelled=True)

            if login_url is None:
                logger.warning("No login URL determined, skipping portal login")
                return PortalLoginResult(session=session, hijacked=hijacked)

            session = replace(session, login_url=normalize_login_url(login_url))
            status_code = await self.login(client, session)

        return PortalLoginResult(session=session, hijacked=hijacked, status_code=status_code)

    async def detect_login_url(
        self,
        client: httpx.AsyncClient,
        ssid: str,
        should_stop: Callable[[], bool] | None = None,
    ) -> tuple[str | None, bool]:
        """Work out where the portal's login form lives.

        Returns:
            (login URL or None, whether interception was observed)
        """
        stopped = should_stop or (lambda: False)
        hijacked = False

        for probe in self._config.probes:
            if stopped():
                return None, hijacked
            outcome = await self._probe(client, probe)
            hijacked = hijacked or outcome.hijacked
            if outcome.login_url:
                return outcome.login_url, hijacked

        if hijacked or self._is_institutional(ssid):
            logger.warning("Hijacking detected or SSID %s matched, using fallback strategies", ssid)
            return await self._fallback_login_url(ssid), hijacked

        return None, hijacked

    async def login(self, client: httpx.AsyncClient, session: PortalSession) -> int | None:
        """POST the credentials to the session's login URL.

        Returns:
            HTTP status code, or None if the request failed

        Raises:
            PortalError: If the login URL cannot be used
        """
        if session.login_url is None:
            return None

        logger.info("Attempting login POST to: %s", session.login_url)
        try:
            response = await client.post(
                session.login_url,
                data={"user": session.username, "pass": session.password},
                headers={
                    "User-Agent": self._config.user_agent,
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                timeout=self._config.login_timeout,
            )
        except httpx.InvalidURL as e:
            raise PortalError("Invalid login URL", details={"url": session.login_url}, cause=e) from e
        except httpx.HTTPError as e:
            logger.error("Login request to %s failed: %s", session.login_url, e)
            return None

        logger.info("Login result code: %d", response.status_code)
        return response.status_code

    async def _probe(self, client: httpx.AsyncClient, probe: ProbeConfig) -> ProbeOutcome:
        try:
            response = await client.get(probe.url, timeout=self._config.probe_timeout)
        except httpx.HTTPError as e:
            logger.warning("Probe %s failed: %s", probe.url, e)
            return ProbeOutcome()

        status = response.status_code
        logger.info("Probe %s status: %d", probe.url, status)

        if status in (301, 302):
            location = response.headers.get("Location")
            if location:
                login_url = urljoin(probe.url, location)
                logger.info("Redirect found: %s", login_url)
                return ProbeOutcome(login_url=login_url)
            return ProbeOutcome()

        if status != 200:
            return ProbeOutcome()

        if probe.kind is ProbeKind.SMALL_BODY:
            size = len(response.content)
            if 0 < size < self._config.success_body_max_bytes:
                logger.info("Probe %s returned the success page, no portal", probe.url)
                return ProbeOutcome()
            logger.info("Probe %s returned large body (%d), likely portal", probe.url, size)
        else:
            logger.info("Probe %s returned 200 instead of 204, hijacked", probe.url)

        host = probe.dns_host or urlsplit(probe.url).hostname
        address = await self._resolve(host) if host else None
        if address and is_private_ipv4(address):
            logger.info("%s resolved to private address %s", host, address)
            return ProbeOutcome(login_url=f"http://{address}/login", hijacked=True)
        return ProbeOutcome(hijacked=True)

    async def _resolve(self, host: str) -> str | None:
        try:
            return await asyncio.wait_for(self._resolver(host), timeout=self._config.probe_timeout)
        except asyncio.TimeoutError:
            logger.warning("DNS lookup for %s timed out", host)
            return None

    def _is_institutional(self, ssid: str) -> bool:
        return any(pattern.search(ssid) for pattern in self._ssid_patterns)

    async def _fallback_login_url(self, ssid: str) -> str | None:
        url = self._config.login_urls.get(ssid)
        if url:
            logger.info("Using hardcoded login URL for %s", ssid)
            return url

        gateway = None
        if self._gateway_provider is not None:
            # Radio queries block and may run their own event loop
            gateway = await asyncio.to_thread(self._gateway_provider)
        if gateway:
            logger.info("Trying gateway %s for portal", gateway)
            return f"http://{gateway}/login"
        return None


class PortalLoginTask:
    """Handle for one engine run on its own thread.

    The task owns its session; ``cancel()`` is honoured between detection
    steps and an in-flight request finishes under its own timeout.

    Usage:
        task = PortalLoginTask(engine, session).start()
        task.join(timeout=30)
    """

    def __init__(self, engine: CaptivePortalEngine, session: PortalSession) -> None:
        self._engine = engine
        self._session = session
        self._result: PortalLoginResult | None = None
        self._thread = StoppableThread(target=self._run, name=f"PortalLogin-{session.ssid}")

    @property
    def session(self) -> PortalSession:
        return self._session

    @property
    def result(self) -> PortalLoginResult | None:
        """Engine result once the task has finished."""
        return self._result

    @property
    def done(self) -> bool:
        return self._thread.ident is not None and not self._thread.is_alive()

    def start(self) -> "PortalLoginTask":
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._thread.request_stop()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the task.

        Returns:
            True if the task has finished
        """
        if self._thread.ident is None:
            return False
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self, thread: StoppableThread) -> None:
        try:
            self._result = asyncio.run(self._engine.run(self._session, should_stop=thread.should_stop))
        except PortalError as e:
            logger.log(
                e.log_level,
                "Portal login for %s abandoned: %s",
                self._session.ssid,
                e,
                extra={"error": e.to_dict()},
            )
        except Exception as e:
            logger.exception("Portal login task for %s failed: %s", self._session.ssid, e)
