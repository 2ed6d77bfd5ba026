"""Access point ranking.

Joins a scan with the known-network list and orders the result into the
queue the station connects from.
"""

import logging
from typing import Iterable, Sequence

from ..models import ConnectionCandidate, KnownNetwork, ScanResult

logger = logging.getLogger(__name__)


def rank_candidates(
    scan_results: Iterable[ScanResult],
    known_networks: Sequence[KnownNetwork],
) -> list[ConnectionCandidate]:
    """Build the connection candidate queue.

    Only access points whose SSID exactly matches a known network are kept.
    The queue is ordered by descending RSSI; equal RSSI keeps scan order.
    Every BSSID of a known SSID becomes its own candidate.

    Args:
        scan_results: Access points from one scan cycle
        known_networks: Stored credentials

    Returns:
        Candidate queue, empty when nothing matched
    """
    known = {network.ssid: network for network in known_networks if network.ssid}
    ordered = sorted(scan_results, key=lambda ap: ap.rssi, reverse=True)

    queue: list[ConnectionCandidate] = []
    for ap in ordered:
        network = known.get(ap.ssid)
        if network is None:
            continue
        candidate = ConnectionCandidate(
            ssid=network.ssid,
            password=network.password,
            username=network.username,
            bssid=ap.bssid,
            channel=ap.channel,
            auth_mode=ap.auth_mode,
            rssi=ap.rssi,
        )
        logger.info(
            "Found known AP: %s (RSSI: %d, Auth: %s%s)",
            ap.ssid,
            ap.rssi,
            ap.auth_mode.value,
            ", portal" if candidate.needs_portal_login else "",
        )
        queue.append(candidate)

    return queue
