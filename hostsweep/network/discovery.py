"""
Handles discovery of the local IPv4 subnet, used to build a default sweep range.
"""
import ipaddress
import logging
import socket
from typing import Dict, List, Optional, Tuple

import psutil

from ..routing import get_default_gateway, score_interface

logger = logging.getLogger(__name__)


def _ipv4_networks(addrs: Dict[str, List]) -> Dict[str, ipaddress.IPv4Interface]:
    """Maps each interface name to its first IPv4 address/netmask."""
    networks: Dict[str, ipaddress.IPv4Interface] = {}
    for iface, iface_addrs in addrs.items():
        for addr in iface_addrs:
            if addr.family == socket.AF_INET and addr.netmask:
                try:
                    networks[iface] = ipaddress.IPv4Interface(f"{addr.address}/{addr.netmask}")
                except ValueError:
                    continue
                break
    return networks


def select_interface(
    networks: Dict[str, ipaddress.IPv4Interface],
    up: Dict[str, bool],
    gateway: Optional[str] = None,
    gateway_iface: Optional[str] = None,
) -> Optional[Tuple[str, ipaddress.IPv4Interface]]:
    """
    Picks the interface whose subnet should be swept.

    Preference order: the interface carrying the default route, then the
    interface whose subnet contains the gateway, then the best-scored one.
    """
    candidates = {
        name: iface for name, iface in networks.items()
        if up.get(name, False) and not iface.ip.is_loopback and not iface.ip.is_link_local
    }
    if not candidates:
        return None

    if gateway_iface and gateway_iface in candidates:
        return gateway_iface, candidates[gateway_iface]

    if gateway:
        try:
            gateway_ip = ipaddress.IPv4Address(gateway)
        except ValueError:
            gateway_ip = None
        if gateway_ip is not None:
            for name, iface in candidates.items():
                if gateway_ip in iface.network:
                    return name, iface

    logger.warning("Could not find a gateway-associated interface. Scoring all interfaces.")
    best_name = max(candidates, key=score_interface)
    return best_name, candidates[best_name]


def get_local_network() -> Optional[ipaddress.IPv4Network]:
    """Returns the IPv4 subnet of the primary interface, or None if it cannot be found."""
    try:
        addrs = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except (OSError, psutil.Error) as e:
        logger.error(f"Could not enumerate network interfaces: {e}")
        return None

    gateway, gateway_iface = get_default_gateway()
    chosen = select_interface(
        _ipv4_networks(addrs),
        {name: s.isup for name, s in stats.items()},
        gateway,
        gateway_iface,
    )
    if chosen is None:
        logger.error("Failed to find an active IPv4 interface.")
        return None

    name, iface = chosen
    logger.info(f"Using interface '{name}' with subnet {iface.network}.")
    return iface.network
