"""
Path tracing to a host using the operating system's traceroute facility.
"""
import logging
import platform
import re
import subprocess
from typing import List, Optional

logger = logging.getLogger(__name__)

_HOP_LINE = re.compile(r"^\s*(\d+)\s+(.*)$")
_IPV4 = re.compile(r"\b(\d{1,3}(?:\.\d{1,3}){3})\b")


def build_trace_command(address: str, max_hops: int, system: Optional[str] = None) -> List[str]:
    system = system or platform.system()
    if system == "Windows":
        # -d: no name resolution, -h: max hops, -w: per-hop wait (ms)
        return ["tracert", "-d", "-h", str(max_hops), "-w", "1000", address]
    # -n: numeric, -m: max hops, -q 1: one probe per hop, -w: per-hop wait (s)
    return ["traceroute", "-n", "-m", str(max_hops), "-q", "1", "-w", "1", address]


def parse_trace_output(output: str) -> List[str]:
    """
    Turns traceroute/tracert output into an ordered list of hop addresses.

    Hops that did not answer are reported as '*'.
    """
    hops: List[str] = []
    for line in output.splitlines():
        m = _HOP_LINE.match(line)
        if not m:
            continue
        ips = _IPV4.findall(m.group(2))
        hops.append(ips[-1] if ips else "*")
    return hops


def trace_route(address: str, max_hops: int = 30, timeout: Optional[float] = None) -> List[str]:
    """Returns the hops to address, or an empty list if the trace could not run."""
    command = build_trace_command(address, max_hops)
    if timeout is None:
        timeout = max_hops * 3.0
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        logger.warning(f"'{command[0]}' command not found; skipping route trace for {address}.")
        return []
    except subprocess.TimeoutExpired:
        logger.warning(f"Route trace to {address} did not finish within {timeout:.0f} seconds.")
        return []

    hops = parse_trace_output(result.stdout)
    logger.debug(f"Trace to {address}: {hops}")
    return hops
