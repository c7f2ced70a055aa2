"""
Merges echo sweep results and port probe results into one record per live host.
"""
from __future__ import annotations
import ipaddress
import logging
from typing import Dict, Iterable, List, Optional

from .models import EchoProbeOutcome, HostResult

logger = logging.getLogger(__name__)


class ResultAggregator:
    """Owns the HostResult records of a scan, keyed by address."""

    def __init__(self):
        self._hosts: Dict[ipaddress.IPv4Address, HostResult] = {}
        self._finalized = False

    def add_outcomes(self, outcomes: Iterable[EchoProbeOutcome]) -> List[HostResult]:
        """Creates a host record for every successful outcome; other outcomes are skipped."""
        if self._finalized:
            raise RuntimeError("Cannot add outcomes after the results were finalized.")
        created = []
        for outcome in outcomes:
            if not outcome.is_success:
                continue
            if outcome.address in self._hosts:
                logger.debug(f"Ignoring duplicate echo reply for {outcome.address}")
                continue
            host = HostResult.from_outcome(outcome)
            self._hosts[outcome.address] = host
            created.append(host)
        return created

    @property
    def hosts(self) -> List[HostResult]:
        """Host records in ascending address order."""
        return [self._hosts[a] for a in sorted(self._hosts)]

    @property
    def finalized(self) -> bool:
        return self._finalized

    def get(self, address: ipaddress.IPv4Address) -> Optional[HostResult]:
        return self._hosts.get(address)

    def attach(
        self,
        address: ipaddress.IPv4Address,
        hostname: Optional[str] = None,
        route: Optional[List[str]] = None,
    ) -> None:
        """Attaches collaborator data (host name, traced route) to a host record."""
        host = self._hosts.get(address)
        if host is None:
            raise ValueError(f"No live host record for {address}.")
        if hostname is not None:
            host.hostname = hostname
        if route is not None:
            host.route = list(route)

    def finalize(self) -> List[HostResult]:
        """Seals every record's open ports and returns the final host list."""
        for host in self._hosts.values():
            host.seal()
        self._finalized = True
        return self.hosts
