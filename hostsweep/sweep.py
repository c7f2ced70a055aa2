"""
Dispatches paced echo probes across an address range and collects the replies.
"""
from __future__ import annotations
import ipaddress
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional

from .models import ECHO_TIMEOUT_MS, EchoProbeOutcome, ProbeStatus, SweepProgress
from .network.ping import Pinger

logger = logging.getLogger(__name__)

ProgressSink = Callable[[SweepProgress], None]

DEFAULT_INTERVAL_MS = 30


class SweepRegistry:
    """
    Shared record of in-flight and finished probes, keyed by address.

    The dispatcher registers each address before its probe starts and worker
    threads report completions; both paths go through one lock.
    """

    def __init__(self, total: int):
        self.total = total
        self._lock = threading.Lock()
        self._pending: Dict[ipaddress.IPv4Address, float] = {}
        self._outcomes: Dict[ipaddress.IPv4Address, EchoProbeOutcome] = {}
        self._dispatched = 0
        self._completed = 0
        self._all_done = threading.Event()
        if total == 0:
            self._all_done.set()

    def register(self, address: ipaddress.IPv4Address) -> float:
        """Marks address as in flight and returns its dispatch time."""
        with self._lock:
            if address in self._pending or address in self._outcomes:
                raise ValueError(f"Address {address} was already dispatched.")
            if self._dispatched >= self.total:
                raise RuntimeError(f"Cannot dispatch more than {self.total} probes.")
            dispatched_at = time.monotonic()
            self._pending[address] = dispatched_at
            self._dispatched += 1
        return dispatched_at

    def complete(self, address: ipaddress.IPv4Address, outcome: EchoProbeOutcome) -> bool:
        """Records a terminal outcome. Returns False if the address was not pending."""
        with self._lock:
            dispatched_at = self._pending.pop(address, None)
            if dispatched_at is None:
                return False
            self._outcomes[address] = outcome
            self._completed += 1
            if self._completed == self.total:
                self._all_done.set()
        return True

    def expire_pending(self) -> List[ipaddress.IPv4Address]:
        """Completes every probe still in flight as a timeout. Late results are then ignored."""
        with self._lock:
            expired = sorted(self._pending)
            for address in expired:
                del self._pending[address]
                self._outcomes[address] = EchoProbeOutcome(address, ProbeStatus.TIMEOUT)
                self._completed += 1
            if expired and self._completed == self.total:
                self._all_done.set()
        return expired

    def snapshot(self) -> SweepProgress:
        with self._lock:
            return SweepProgress(self.total, self._dispatched, self._completed)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._all_done.wait(timeout)

    def outcomes(self) -> List[EchoProbeOutcome]:
        """All recorded outcomes in ascending address order."""
        with self._lock:
            return [self._outcomes[a] for a in sorted(self._outcomes)]


class EchoSweepEngine:
    """
    Sends one echo probe per address and returns the addresses that replied.

    Probes run on a thread pool. The dispatcher waits `interval_ms` between
    submissions so a subnet never sees a burst of ICMP traffic. Every probe
    must reach a terminal outcome within `timeout_ms` of its dispatch: a
    result arriving later counts as a timeout, and once the last probe's
    window has passed anything still in flight is completed as a timeout
    without waiting for its thread.
    """

    def __init__(
        self,
        pinger: Pinger,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        timeout_ms: int = ECHO_TIMEOUT_MS,
        max_inflight: int = 128,
        progress_sink: Optional[ProgressSink] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if isinstance(interval_ms, bool) or not isinstance(interval_ms, int) or interval_ms <= 0:
            raise ValueError(f"Interval must be a positive number of milliseconds, got {interval_ms!r}.")
        if timeout_ms <= 0:
            raise ValueError(f"Echo timeout must be positive, got {timeout_ms}.")
        if max_inflight < 1:
            raise ValueError(f"max_inflight must be at least 1, got {max_inflight}.")
        self.pinger = pinger
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self.max_inflight = max_inflight
        self.progress_sink = progress_sink
        self._sleep = sleep
        self._registry: Optional[SweepRegistry] = None

    @property
    def progress(self) -> SweepProgress:
        """Current counters; safe to call from any thread while a sweep runs."""
        if self._registry is None:
            return SweepProgress(0, 0, 0)
        return self._registry.snapshot()

    @property
    def outcomes(self) -> List[EchoProbeOutcome]:
        """Every outcome of the last sweep, including non-replies."""
        if self._registry is None:
            return []
        return self._registry.outcomes()

    def run(self, addresses: Iterable[ipaddress.IPv4Address]) -> List[EchoProbeOutcome]:
        """Sweeps the addresses and returns the successful outcomes in address order."""
        if not hasattr(addresses, '__len__'):
            addresses = list(addresses)
        total = len(addresses)  # type: ignore[arg-type]
        registry = SweepRegistry(total)
        self._registry = registry
        interval = self.interval_ms / 1000.0
        timeout = self.timeout_ms / 1000.0

        logger.info(f"Sweeping {total} addresses with a {self.interval_ms} ms pacing interval.")
        workers = max(1, min(self.max_inflight, total))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="echo")
        try:
            last_dispatch = time.monotonic()
            for index, address in enumerate(addresses):
                last_dispatch = registry.register(address)
                future = executor.submit(self._probe, address, last_dispatch)
                future.add_done_callback(partial(self._on_probe_done, registry, address))
                self._report(registry.snapshot())
                if index < total - 1:
                    self._sleep(interval)

            if not registry.wait(max(0.0, last_dispatch + timeout - time.monotonic())):
                expired = registry.expire_pending()
                if expired:
                    logger.debug(f"{len(expired)} echo probe(s) exceeded {self.timeout_ms} ms; recorded as timeouts.")
                    self._report(registry.snapshot())
        finally:
            # Probes past their window are abandoned, not joined
            executor.shutdown(wait=False, cancel_futures=True)

        progress = registry.snapshot()
        if progress.completed != progress.dispatched or progress.completed != total:
            raise RuntimeError(f"Sweep finished in an inconsistent state: {progress}")

        outcomes = registry.outcomes()
        successes = [o for o in outcomes if o.is_success]
        logger.info(f"Sweep complete: {len(successes)} of {total} addresses replied.")
        return successes

    def _probe(self, address: ipaddress.IPv4Address, dispatched_at: float) -> EchoProbeOutcome:
        try:
            outcome = self.pinger.probe(address)
        except Exception as e:
            logger.debug(f"Echo probe to {address} raised: {e}")
            return EchoProbeOutcome(address, ProbeStatus.ERROR)

        if not isinstance(outcome, EchoProbeOutcome):
            logger.debug(f"Echo probe to {address} returned {outcome!r} instead of an outcome.")
            return EchoProbeOutcome(address, ProbeStatus.ERROR)
        if (time.monotonic() - dispatched_at) * 1000 > self.timeout_ms:
            return EchoProbeOutcome(address, ProbeStatus.TIMEOUT)
        if outcome.is_success and outcome.round_trip_ms is not None and outcome.round_trip_ms > self.timeout_ms:
            return EchoProbeOutcome(address, ProbeStatus.TIMEOUT)
        return outcome

    def _on_probe_done(self, registry: SweepRegistry, address: ipaddress.IPv4Address, future: Future) -> None:
        if future.cancelled():
            return
        outcome = future.result()
        if outcome.address != address:
            outcome = EchoProbeOutcome(address, outcome.status, outcome.bytes, outcome.ttl, outcome.round_trip_ms)
        if registry.complete(address, outcome):
            self._report(registry.snapshot())

    def _report(self, progress: SweepProgress) -> None:
        if self.progress_sink is not None:
            self.progress_sink(progress)
