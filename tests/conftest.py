import ipaddress
import threading
import time
from typing import Dict, List, Optional, Tuple

from hostsweep.models import EchoProbeOutcome, ProbeStatus


class FakePinger:
    """Answers only for the configured addresses; everything else times out."""

    def __init__(
        self,
        replies: Optional[Dict[str, Tuple[int, int, float]]] = None,
        delay: float = 0.0,
        default_status: ProbeStatus = ProbeStatus.TIMEOUT,
    ):
        self.replies = {ipaddress.IPv4Address(k): v for k, v in (replies or {}).items()}
        self.delay = delay
        self.default_status = default_status
        self.calls: List[ipaddress.IPv4Address] = []
        self._lock = threading.Lock()

    def probe(self, address):
        with self._lock:
            self.calls.append(address)
        if self.delay:
            time.sleep(self.delay)
        reply = self.replies.get(address)
        if reply is None:
            return EchoProbeOutcome(address, self.default_status)
        size, ttl, rtt = reply
        return EchoProbeOutcome(address, ProbeStatus.SUCCESS, bytes=size, ttl=ttl, round_trip_ms=rtt)


class FakeConnector:
    """Accepts connections for the configured (address, port) pairs."""

    def __init__(self, open_pairs=(), delay: float = 0.0):
        self.open_pairs = {(str(a), int(p)) for a, p in open_pairs}
        self.delay = delay
        self.calls: List[Tuple[str, int, float]] = []
        self._lock = threading.Lock()

    def __call__(self, address: str, port: int, timeout: float) -> bool:
        with self._lock:
            self.calls.append((address, port, timeout))
        if self.delay:
            time.sleep(self.delay)
        return (address, port) in self.open_pairs


def no_sleep(_seconds: float) -> None:
    pass

