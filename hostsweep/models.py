from __future__ import annotations
import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

ECHO_TIMEOUT_MS = 2000
PORT_CONNECT_TIMEOUT_MS = 100


class ProbeStatus(Enum):
    """Terminal state of a single echo probe."""
    SUCCESS = "Success"
    TIMEOUT = "Timeout"
    UNREACHABLE = "Unreachable"
    ERROR = "Error"


@dataclass(frozen=True)
class EchoProbeOutcome:
    """
    Represents the result of one echo request sent to one address.

    `bytes` is the size of the echo reply payload, excluding IP and ICMP headers.
    """
    address: ipaddress.IPv4Address
    status: ProbeStatus
    bytes: int = 0
    ttl: Optional[int] = None
    round_trip_ms: Optional[float] = None

    @property
    def is_success(self) -> bool:
        return self.status is ProbeStatus.SUCCESS


@dataclass(frozen=True)
class PortProbeOutcome:
    """Represents a single TCP connection attempt."""
    address: ipaddress.IPv4Address
    port: int
    service_name: str
    is_open: bool


@dataclass(frozen=True)
class OpenPort:
    port: int
    service_name: str


@dataclass(frozen=True)
class SweepProgress:
    """A consistent snapshot of the sweep counters."""
    total: int
    dispatched: int
    completed: int

    @property
    def pending(self) -> int:
        return self.dispatched - self.completed

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return self.completed / self.total


@dataclass
class HostResult:
    """Represents the complete, canonical record of a single live host."""
    address: ipaddress.IPv4Address
    bytes: int
    ttl: Optional[int]
    round_trip_ms: Optional[float]
    open_ports: List[OpenPort] = field(default_factory=list)
    # Attached after the scan by name resolution and path tracing
    hostname: Optional[str] = None
    route: Optional[List[str]] = None
    _sealed: bool = field(default=False, repr=False, compare=False)

    @classmethod
    def from_outcome(cls, outcome: EchoProbeOutcome) -> "HostResult":
        if not outcome.is_success:
            raise ValueError(f"Cannot create a host record from a {outcome.status.value} outcome for {outcome.address}")
        return cls(
            address=outcome.address,
            bytes=outcome.bytes,
            ttl=outcome.ttl,
            round_trip_ms=outcome.round_trip_ms,
        )

    def add_open_port(self, port: int, service_name: str) -> None:
        if self._sealed:
            raise RuntimeError(f"Host record for {self.address} is finalized")
        self.open_ports.append(OpenPort(port, service_name))

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def to_dict(self, raw: bool = False) -> Dict[str, Any]:
        """
        Converts the record into plain data for presentation and export.

        The summary form carries the address, name, latency and open ports.
        The raw form adds the echo metadata (bytes, ttl, status).
        """
        data: Dict[str, Any] = {
            "address": str(self.address),
            "hostname": self.hostname,
            "round_trip_ms": self.round_trip_ms,
            "open_ports": [{"port": p.port, "service": p.service_name} for p in self.open_ports],
        }
        if raw:
            data["status"] = ProbeStatus.SUCCESS.value
            data["bytes"] = self.bytes
            data["ttl"] = self.ttl
        if self.route is not None:
            data["route"] = list(self.route)
        return data


@dataclass
class ScanReport:
    """Everything a scan run hands back to the caller."""
    start: ipaddress.IPv4Address
    end: ipaddress.IPv4Address
    hosts: List[HostResult]
    progress: SweepProgress
    elapsed_seconds: float = 0.0
    # Every echo outcome, kept for raw presentation
    outcomes: List[EchoProbeOutcome] = field(default_factory=list)

    @property
    def no_hosts_responded(self) -> bool:
        return not self.hosts

    def to_dict(self, raw: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "start": str(self.start),
            "end": str(self.end),
            "addresses_probed": self.progress.completed,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "no_hosts_responded": self.no_hosts_responded,
            "hosts": [host.to_dict(raw=raw) for host in self.hosts],
        }
        if raw:
            data["outcomes"] = [
                {
                    "address": str(o.address),
                    "status": o.status.value,
                    "bytes": o.bytes,
                    "ttl": o.ttl,
                    "round_trip_ms": o.round_trip_ms,
                }
                for o in self.outcomes
            ]
        return data
