"""Network module.

Provides:
- WifiStation connection state machine
- AP ranking against known networks
- CaptivePortalEngine for portal detection and login
- Radio drivers (NmcliRadio, MockRadio)
- WifiBoard startup glue
"""

from .board import NetworkStartResult, SignalIcon, WifiBoard
from .mock import MockRadio
from .nmcli import NmcliRadio
from .portal import CaptivePortalEngine, PortalLoginTask, PortalSession
from .radio import ConnectRequest, RadioDriver, RadioEvent, RadioEventType
from .ranker import rank_candidates
from .station import StationListener, StationState, WifiStation

__all__ = [
    "NetworkStartResult",
    "SignalIcon",
    "WifiBoard",
    "MockRadio",
    "NmcliRadio",
    "CaptivePortalEngine",
    "PortalLoginTask",
    "PortalSession",
    "ConnectRequest",
    "RadioDriver",
    "RadioEvent",
    "RadioEventType",
    "rank_candidates",
    "StationListener",
    "StationState",
    "WifiStation",
]
