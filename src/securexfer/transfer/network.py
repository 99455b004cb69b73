"""Network reachability check.

The coordinator calls a reachability check once per transfer and fails fast
when it returns False. The default check opens a TCP connection to the host
of the transfer URL; callers may inject their own (e.g. a platform
connectivity API).
"""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

NETWORK_CHECK_TIMEOUT = 5.0  # seconds

# Signature of a reachability check: receives the transfer URL
NetworkCheck = Callable[[str], bool]

_DEFAULT_PORTS = {"http": 80, "https": 443}


def is_network_available(url: str, timeout: float = NETWORK_CHECK_TIMEOUT) -> bool:
    """Check whether the host of ``url`` can be reached over TCP.

    Args:
        url: Transfer URL.
        timeout: Connect timeout in seconds.

    Returns:
        True if a TCP connection could be opened.
    """
    parts = urlsplit(url)
    host = parts.hostname
    if not host:
        logger.warning(f"Cannot check reachability of {url!r}: no host")
        return False

    try:
        port = parts.port or _DEFAULT_PORTS.get(parts.scheme, 443)
    except ValueError:
        logger.warning(f"Cannot check reachability of {url!r}: invalid port")
        return False

    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError as e:
        logger.info(f"Network unavailable for {host}:{port}: {e}")
        return False
