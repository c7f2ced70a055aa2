"""
Handles OS-specific routing table lookups for the default gateway.
"""
import logging
import platform
import re
import subprocess
from collections import namedtuple
from typing import List, Optional, Tuple

import psutil

logger = logging.getLogger(__name__)

_IPV4 = r"\d{1,3}(?:\.\d{1,3}){3}"


def score_interface(iface_name: str) -> int:
    """Scores an interface based on its likelihood of being the 'real' physical one."""
    name = iface_name.lower()
    score = 100
    for keyword in ('virtual', 'vmware', 'vbox', 'tailscale', 'vpn', 'loopback', 'teredo', 'docker', 'veth'):
        if keyword in name:
            score -= 50
    for keyword in ('ethernet', 'wi-fi', 'wlan', 'eth0', 'en0'):
        if keyword in name:
            score += 20
    try:
        stats = psutil.net_if_stats()
    except (OSError, psutil.Error):
        return -1
    IfStats = namedtuple('IfStats', ['isup'])
    if stats.get(iface_name, IfStats(isup=False)).isup:
        score += 10
    else:
        score -= 100
    return score


def parse_default_routes(output: str, system: str) -> List[Tuple[str, Optional[str]]]:
    """Extracts (gateway, interface) pairs for default routes from route table output."""
    routes: List[Tuple[str, Optional[str]]] = []
    for line in output.splitlines():
        line = line.strip()
        if system == "Windows":
            # 0.0.0.0    0.0.0.0    192.168.1.1    192.168.1.10    25
            m = re.match(rf"0\.0\.0\.0\s+0\.0\.0\.0\s+({_IPV4})\s+({_IPV4})", line)
            if m:
                routes.append((m.group(1), None))
        elif system == "Darwin":
            # gateway: 192.168.1.1 / interface: en0 (from `route -n get default`)
            m = re.match(rf"gateway:\s*({_IPV4})", line)
            if m:
                routes.append((m.group(1), None))
            m = re.match(r"interface:\s*(\S+)", line)
            if m and routes:
                routes[-1] = (routes[-1][0], m.group(1))
        else:
            # default via 192.168.1.1 dev eth0 proto dhcp metric 100
            m = re.match(rf"default\s+via\s+({_IPV4})(?:.*?\bdev\s+(\S+))?", line)
            if m:
                routes.append((m.group(1), m.group(2)))
    return routes


def get_default_gateway() -> Tuple[Optional[str], Optional[str]]:
    """
    Returns (gateway_ip, interface_name) for the best IPv4 default route.

    Routes on interfaces that look physical are preferred over VPN and
    virtual adapters. Either element may be None when it cannot be determined.
    """
    system = platform.system()
    if system == "Windows":
        command = ["route", "print", "-4"]
    elif system == "Darwin":
        command = ["route", "-n", "get", "default"]
    else:
        command = ["ip", "-4", "route"]

    try:
        result = subprocess.run(command, capture_output=True, text=True, check=True)
    except (FileNotFoundError, subprocess.CalledProcessError) as e:
        logger.error(f"Failed to read routing table with '{' '.join(command)}': {e}")
        return None, None

    routes = parse_default_routes(result.stdout, system)
    logger.debug(f"Found default routes: {routes}")
    if not routes:
        logger.warning("Routing table has no IPv4 default route.")
        return None, None

    best = max(routes, key=lambda r: score_interface(r[1]) if r[1] else 0)
    logger.info(f"Selected default gateway {best[0]} on interface {best[1] or 'unknown'}")
    return best
