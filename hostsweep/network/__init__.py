"""
Network-related utilities for hostsweep.
"""

from .discovery import get_local_network
from .ping import ICMPPinger, Pinger, SystemPinger, get_pinger
from .trace import trace_route
from .utils import check_tcp_port, resolve_hostname

__all__ = [
    "get_local_network",
    "ICMPPinger",
    "Pinger",
    "SystemPinger",
    "get_pinger",
    "trace_route",
    "check_tcp_port",
    "resolve_hostname",
]
