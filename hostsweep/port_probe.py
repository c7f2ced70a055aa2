"""
Bounded-time TCP connection probes against a catalog of well-known ports.
"""
from __future__ import annotations
import ipaddress
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed, wait
from typing import Callable, Dict, List, Mapping, Sequence

from .models import PORT_CONNECT_TIMEOUT_MS, HostResult, PortProbeOutcome
from .network.utils import check_tcp_port

logger = logging.getLogger(__name__)

# (address, port, timeout_seconds) -> connected
Connector = Callable[[str, int, float], bool]


class PortProbeEngine:
    """
    Checks every catalog port on every live host.

    Each attempt is capped at `timeout_ms` (never more than 100 ms). The cap
    is passed to the connector as its timeout and also enforced here: ports
    are tried in batches of `workers_per_host`, each batch is collected when
    the cap expires, and anything unfinished or answering late counts as
    closed. Up to `hosts_in_parallel` hosts are probed at once. Setting both
    bounds to 1 gives a strictly sequential scan.
    """

    def __init__(
        self,
        catalog: Mapping[int, str],
        connector: Connector = check_tcp_port,
        timeout_ms: int = PORT_CONNECT_TIMEOUT_MS,
        workers_per_host: int = 16,
        hosts_in_parallel: int = 4,
    ):
        if not 0 < timeout_ms <= PORT_CONNECT_TIMEOUT_MS:
            raise ValueError(
                f"Port connect timeout must be between 1 and {PORT_CONNECT_TIMEOUT_MS} ms, got {timeout_ms}."
            )
        if workers_per_host < 1 or hosts_in_parallel < 1:
            raise ValueError("Port probe concurrency bounds must be at least 1.")
        self.catalog = catalog
        self.connector = connector
        self.timeout_ms = timeout_ms
        self.workers_per_host = workers_per_host
        self.hosts_in_parallel = hosts_in_parallel

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000.0

    def _attempt(self, address: str, port: int) -> bool:
        start = time.monotonic()
        try:
            connected = bool(self.connector(address, port, self.timeout))
        except Exception as e:
            logger.debug(f"Connection attempt to {address}:{port} raised: {e}")
            return False
        elapsed = time.monotonic() - start
        if connected and elapsed > self.timeout:
            logger.debug(f"{address}:{port} answered after {elapsed * 1000:.0f} ms; treating as closed.")
            return False
        return connected

    def _attempt_batch(self, target: str, ports: List[int]) -> Dict[int, bool]:
        """
        Runs one attempt per port at once and collects them at the cap.

        Attempts still running when the cap expires count as closed; their
        threads are abandoned rather than joined.
        """
        results = {port: False for port in ports}
        executor = ThreadPoolExecutor(max_workers=len(ports), thread_name_prefix="port")
        try:
            futures = {executor.submit(self._attempt, target, port): port for port in ports}
            done, not_done = wait(futures, timeout=self.timeout)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        for future in done:
            results[futures[future]] = future.result()
        for future in not_done:
            logger.debug(f"{target}:{futures[future]} did not answer within {self.timeout_ms} ms; treating as closed.")
        return results

    def probe_address(self, address: ipaddress.IPv4Address) -> List[PortProbeOutcome]:
        """Probes all catalog ports on one address; outcomes follow catalog order."""
        ports = list(self.catalog.items())
        if not ports:
            return []

        target = str(address)
        numbers = [port for port, _ in ports]
        results: Dict[int, bool] = {}
        for i in range(0, len(numbers), self.workers_per_host):
            results.update(self._attempt_batch(target, numbers[i:i + self.workers_per_host]))

        return [PortProbeOutcome(address, port, name, results[port]) for port, name in ports]

    def _probe_host(self, host: HostResult) -> List[PortProbeOutcome]:
        open_outcomes = [o for o in self.probe_address(host.address) if o.is_open]
        for outcome in open_outcomes:
            host.add_open_port(outcome.port, outcome.service_name)
        logger.info(f"{host.address}: {len(open_outcomes)} open port(s) of {len(self.catalog)} checked.")
        return open_outcomes

    def probe_hosts(self, hosts: Sequence[HostResult]) -> List[PortProbeOutcome]:
        """
        Probes each host and appends its open ports to the host record.

        Returns the open-port outcomes grouped by host, in the order the hosts
        were given.
        """
        if not hosts:
            return []

        per_host: Dict[int, List[PortProbeOutcome]] = {}
        with ThreadPoolExecutor(max_workers=min(self.hosts_in_parallel, len(hosts)), thread_name_prefix="host") as executor:
            futures = {executor.submit(self._probe_host, host): index for index, host in enumerate(hosts)}
            for future in as_completed(futures):
                per_host[futures[future]] = future.result()

        return [outcome for index in range(len(hosts)) for outcome in per_host[index]]
