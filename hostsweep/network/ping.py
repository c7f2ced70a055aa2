"""
Handles ICMP echo probes, either over raw sockets or through the system ping command.
"""
import ipaddress
import itertools
import logging
import math
import platform
import random
import re
import select
import socket
import struct
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

from ..models import ECHO_TIMEOUT_MS, EchoProbeOutcome, ProbeStatus
from ..privileges import raw_icmp_available

logger = logging.getLogger(__name__)

ICMP_ECHO_REPLY = 0
ICMP_DEST_UNREACHABLE = 3
ICMP_ECHO_REQUEST = 8
PAYLOAD_SIZE = 32
ICMP_HEADER_SIZE = 8


class Pinger(Protocol):
    """Sends one echo request to one address and reports the terminal outcome."""

    def probe(self, address: ipaddress.IPv4Address) -> EchoProbeOutcome:
        ...


@dataclass
class ICMPPacket:
    type: int
    code: int
    checksum: int
    identifier: int
    sequence: int
    payload: bytes

    def pack(self) -> bytes:
        header = struct.pack('!BBHHH', self.type, self.code, 0, self.identifier, self.sequence)
        checksum = self._calculate_checksum(header + self.payload)
        header = struct.pack('!BBHHH', self.type, self.code, checksum, self.identifier, self.sequence)
        return header + self.payload

    @staticmethod
    def _calculate_checksum(data: bytes) -> int:
        if len(data) % 2:
            data += b'\x00'
        res = sum(struct.unpack('!%dH' % (len(data) // 2), data))
        res = (res >> 16) + (res & 0xffff)
        res += res >> 16
        return ~res & 0xffff


def parse_icmp_reply(
    data: bytes, identifier: int, sequence: int
) -> Optional[Tuple[ProbeStatus, int, int]]:
    """
    Interprets a datagram read from a raw ICMP socket.

    Returns (status, ttl, payload_bytes) when the datagram answers the request
    identified by identifier/sequence, otherwise None.
    """
    if len(data) < 28:
        return None
    ihl = (data[0] & 0x0f) * 4
    ttl = data[8]
    icmp_type, _code, _checksum, ident, seq = struct.unpack('!BBHHH', data[ihl:ihl + 8])

    if icmp_type == ICMP_ECHO_REPLY:
        if ident == identifier and seq == sequence:
            return ProbeStatus.SUCCESS, ttl, len(data) - ihl - 8
        return None

    if icmp_type == ICMP_DEST_UNREACHABLE:
        # The error carries the original IP header and the first 8 bytes of our request
        inner = data[ihl + 8:]
        if len(inner) < 28:
            return None
        inner_ihl = (inner[0] & 0x0f) * 4
        inner_type, _, _, inner_ident, inner_seq = struct.unpack('!BBHHH', inner[inner_ihl:inner_ihl + 8])
        if inner_type == ICMP_ECHO_REQUEST and inner_ident == identifier and inner_seq == sequence:
            return ProbeStatus.UNREACHABLE, ttl, 0
    return None


class ICMPPinger:
    """Handles ICMP echo requests using raw sockets. Requires elevated privileges."""

    def __init__(self, timeout_ms: int = ECHO_TIMEOUT_MS):
        self.timeout = timeout_ms / 1000.0
        self.identifier = random.randint(0, 0xffff)
        self._sequence = itertools.count(random.randint(0, 0xffff))
        self._lock = threading.Lock()

    def _next_sequence(self) -> int:
        with self._lock:
            return next(self._sequence) & 0xffff

    def probe(self, address: ipaddress.IPv4Address) -> EchoProbeOutcome:
        """Send ICMP echo request and measure round-trip time."""
        dest = str(address)
        sequence = self._next_sequence()
        packet = ICMPPacket(
            type=ICMP_ECHO_REQUEST,
            code=0,
            checksum=0,
            identifier=self.identifier,
            sequence=sequence,
            payload=struct.pack('!d', time.time()).ljust(PAYLOAD_SIZE, b'\x00'),
        )
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP) as sock:
                start_time = time.monotonic()
                deadline = start_time + self.timeout
                sock.sendto(packet.pack(), (dest, 0))

                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return EchoProbeOutcome(address, ProbeStatus.TIMEOUT)
                    ready, _, _ = select.select([sock], [], [], remaining)
                    if not ready:
                        return EchoProbeOutcome(address, ProbeStatus.TIMEOUT)
                    data, _ = sock.recvfrom(1024)
                    parsed = parse_icmp_reply(data, self.identifier, sequence)
                    if parsed is None:
                        continue
                    status, ttl, size = parsed
                    if status is ProbeStatus.SUCCESS:
                        elapsed = (time.monotonic() - start_time) * 1000
                        return EchoProbeOutcome(address, status, bytes=size, ttl=ttl, round_trip_ms=round(elapsed, 1))
                    return EchoProbeOutcome(address, status)
        except OSError as e:
            logger.debug(f"Raw ICMP probe to {dest} failed: {e}")
            return EchoProbeOutcome(address, ProbeStatus.ERROR)


_UNIX_REPLY = re.compile(r"(\d+) bytes from [^:]+:.*?ttl=(\d+).*?time[=<]\s*([\d.]+)\s*ms", re.IGNORECASE)
_WINDOWS_REPLY = re.compile(r"bytes=(\d+)\s+time[=<]\s*([\d.]+)\s*ms\s+TTL=(\d+)", re.IGNORECASE)
_UNREACHABLE = re.compile(r"unreachable", re.IGNORECASE)


def parse_ping_output(output: str, is_windows: bool) -> Optional[Tuple[int, int, float]]:
    """
    Extracts (bytes, ttl, round_trip_ms) from a successful ping reply line.

    bytes is the echo payload size. Windows reports that directly; the Unix
    "N bytes from" figure includes the ICMP header, which is subtracted.
    """
    if is_windows:
        m = _WINDOWS_REPLY.search(output)
        if m:
            return int(m.group(1)), int(m.group(3)), float(m.group(2))
    else:
        m = _UNIX_REPLY.search(output)
        if m:
            return int(m.group(1)) - ICMP_HEADER_SIZE, int(m.group(2)), float(m.group(3))
    return None


class SystemPinger:
    """Runs the platform ping command once per probe. Works without privileges."""

    def __init__(self, timeout_ms: int = ECHO_TIMEOUT_MS, system: Optional[str] = None):
        self.timeout_ms = timeout_ms
        self.system = system or platform.system()

    @property
    def is_windows(self) -> bool:
        return self.system.lower() == 'windows'

    def build_command(self, dest: str) -> list:
        if self.is_windows:
            # -n 1 (count), -w (timeout ms)
            return ['ping', '-n', '1', '-w', str(self.timeout_ms), dest]
        if self.system == 'Darwin':
            # -W is in milliseconds on macOS
            return ['ping', '-n', '-c', '1', '-W', str(self.timeout_ms), dest]
        # -n: no DNS lookups, -c 1: count, -W: timeout (s)
        return ['ping', '-n', '-c', '1', '-W', str(max(1, math.ceil(self.timeout_ms / 1000))), dest]

    def probe(self, address: ipaddress.IPv4Address) -> EchoProbeOutcome:
        dest = str(address)
        try:
            result = subprocess.run(
                self.build_command(dest),
                capture_output=True,
                text=True,
                timeout=self.timeout_ms / 1000.0,
                creationflags=getattr(subprocess, 'CREATE_NO_WINDOW', 0) if self.is_windows else 0,
            )
        except subprocess.TimeoutExpired:
            return EchoProbeOutcome(address, ProbeStatus.TIMEOUT)
        except OSError as e:
            logger.debug(f"Could not run ping for {dest}: {e}")
            return EchoProbeOutcome(address, ProbeStatus.ERROR)

        output = result.stdout + result.stderr
        # Windows exits 0 for "Destination host unreachable" replies
        if _UNREACHABLE.search(output):
            return EchoProbeOutcome(address, ProbeStatus.UNREACHABLE)
        parsed = parse_ping_output(output, self.is_windows)
        if result.returncode == 0 and parsed:
            size, ttl, rtt = parsed
            return EchoProbeOutcome(address, ProbeStatus.SUCCESS, bytes=size, ttl=ttl, round_trip_ms=rtt)
        if result.returncode not in (0, 1):
            logger.debug(f"ping for {dest} exited with {result.returncode}: {output.strip()}")
            return EchoProbeOutcome(address, ProbeStatus.ERROR)
        return EchoProbeOutcome(address, ProbeStatus.TIMEOUT)


def get_pinger(timeout_ms: int = ECHO_TIMEOUT_MS) -> Pinger:
    """Uses raw ICMP sockets when privileged, the system ping command otherwise."""
    if raw_icmp_available():
        logger.info("Using raw ICMP sockets for echo probes.")
        return ICMPPinger(timeout_ms=timeout_ms)
    logger.info("No administrator privileges; using the system ping command for echo probes.")
    return SystemPinger(timeout_ms=timeout_ms)
