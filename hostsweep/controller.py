"""
Core scan controller for hostsweep.

Runs one sweep-and-probe pass over an address range: echo sweep, host record
creation, port probing, then the optional name and route lookups.
"""
from __future__ import annotations
import logging
import time
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Mapping, Optional

from .addressing import AddressLike, AddressRange
from .aggregator import ResultAggregator
from .configuration import DEFAULT_CONFIG, validate_config
from .models import ScanReport, SweepProgress
from .network.ping import Pinger, get_pinger
from .network.trace import trace_route
from .network.utils import check_tcp_port, resolve_hostname
from .port_catalog import default_catalog, load_port_catalog
from .port_probe import Connector, PortProbeEngine
from .sweep import EchoSweepEngine


class ScanState(Enum):
    """Represents the phase a scan is in."""
    IDLE = auto()
    SWEEPING = auto()
    PROBING_PORTS = auto()
    RESOLVING = auto()
    DONE = auto()


class ScanController:
    """Owns configuration and collaborators, and runs scans."""

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        pinger: Optional[Pinger] = None,
        connector: Connector = check_tcp_port,
        catalog: Optional[Mapping[int, str]] = None,
        on_progress: Optional[Callable[[SweepProgress], None]] = None,
        on_state_change: Optional[Callable[[ScanState], None]] = None,
        resolver: Callable[[str], Optional[str]] = resolve_hostname,
        tracer: Callable[..., List[str]] = trace_route,
        sleep: Callable[[float], None] = time.sleep,
    ):
        merged = dict(DEFAULT_CONFIG)
        if config:
            merged.update(config)
        self.config = validate_config(merged)
        self._pinger = pinger
        self.connector = connector
        if catalog is None:
            catalog_file = self.config.get('port_catalog_file')
            catalog = load_port_catalog(catalog_file) if catalog_file else default_catalog()
        self.catalog = catalog
        self.on_progress = on_progress
        self.on_state_change = on_state_change
        self.resolver = resolver
        self.tracer = tracer
        self._sleep = sleep
        self.state = ScanState.IDLE
        self.sweep_engine: Optional[EchoSweepEngine] = None

    @property
    def pinger(self) -> Pinger:
        if self._pinger is None:
            self._pinger = get_pinger()
        return self._pinger

    def _set_state(self, new_state: ScanState):
        self.state = new_state
        logging.debug(f"Scan state -> {new_state.name}")
        if self.on_state_change:
            self.on_state_change(new_state)

    def progress(self) -> SweepProgress:
        """Returns sweep progress without blocking."""
        if self.sweep_engine is None:
            return SweepProgress(0, 0, 0)
        return self.sweep_engine.progress

    def run(self, start: AddressLike, end: AddressLike) -> ScanReport:
        """Validates the range and scans it. Raises RangeError before any probe if start > end."""
        return self.run_range(AddressRange(start, end))

    def run_range(self, address_range: AddressRange) -> ScanReport:
        started = time.monotonic()

        self._set_state(ScanState.SWEEPING)
        self.sweep_engine = EchoSweepEngine(
            self.pinger,
            interval_ms=self.config['interval_ms'],
            max_inflight=self.config['max_inflight_probes'],
            progress_sink=self.on_progress,
            sleep=self._sleep,
        )
        successes = self.sweep_engine.run(address_range)

        aggregator = ResultAggregator()
        live_hosts = aggregator.add_outcomes(successes)

        if not live_hosts:
            logging.info(f"No hosts responded between {address_range.start} and {address_range.end}.")
        else:
            # The live-host list is complete before any port is probed
            self._set_state(ScanState.PROBING_PORTS)
            port_engine = PortProbeEngine(
                self.catalog,
                connector=self.connector,
                timeout_ms=self.config['port_connect_timeout_ms'],
                workers_per_host=self.config['port_workers_per_host'],
                hosts_in_parallel=self.config['port_hosts_in_parallel'],
            )
            port_engine.probe_hosts(aggregator.hosts)

        hosts = aggregator.finalize()

        if hosts and (self.config['resolve_names'] or self.config['trace_route']):
            self._set_state(ScanState.RESOLVING)
            for host in hosts:
                address = str(host.address)
                hostname = self.resolver(address) if self.config['resolve_names'] else None
                route = self.tracer(address, self.config['trace_max_hops']) if self.config['trace_route'] else None
                aggregator.attach(host.address, hostname=hostname, route=route)

        self._set_state(ScanState.DONE)
        return ScanReport(
            start=address_range.start,
            end=address_range.end,
            hosts=hosts,
            progress=self.sweep_engine.progress,
            elapsed_seconds=time.monotonic() - started,
            outcomes=self.sweep_engine.outcomes,
        )
