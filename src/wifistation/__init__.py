"""WiFi station connectivity engine.

Keeps a headless device on a known WiFi network:
- Ranks visible access points against stored credentials
- Connect/retry state machine with exponential rescan backoff
- Captive portal detection and automatic login
- Pluggable radio drivers (NetworkManager, mock)
"""

__version__ = "1.0.0"
