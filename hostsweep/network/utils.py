"""
Core network utility functions.
"""
import logging
import socket
from functools import lru_cache
from typing import Optional

logger = logging.getLogger(__name__)


def check_tcp_port(host: str, port: int, timeout: float) -> bool:
    """Returns True if a TCP connection to host:port completes within timeout seconds."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            return sock.connect_ex((host, port)) == 0
    except (socket.timeout, OSError):
        return False


@lru_cache(maxsize=1024)
def resolve_hostname(address: str) -> Optional[str]:
    """Reverse-resolves an address to a host name, caching the result."""
    try:
        hostname, _, _ = socket.gethostbyaddr(address)
    except (socket.herror, socket.gaierror, OSError) as e:
        logger.debug(f"Reverse lookup for {address} failed: {e}")
        return None
    return hostname or None
