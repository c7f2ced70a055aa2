import ipaddress
import threading
import time

import pytest

from conftest import FakeConnector
from hostsweep.models import EchoProbeOutcome, HostResult, OpenPort, PortProbeOutcome, ProbeStatus
from hostsweep.port_probe import PortProbeEngine


def live_host(address, ttl=64):
    return HostResult.from_outcome(
        EchoProbeOutcome(ipaddress.IPv4Address(address), ProbeStatus.SUCCESS, bytes=32, ttl=ttl, round_trip_ms=1.0)
    )


def test_only_accepting_port_is_reported():
    host = live_host("10.0.0.2")
    connector = FakeConnector(open_pairs=[("10.0.0.2", 80)])
    engine = PortProbeEngine({80: "http", 443: "https"}, connector=connector)

    outcomes = engine.probe_hosts([host])

    assert host.open_ports == [OpenPort(80, "http")]
    assert outcomes == [PortProbeOutcome(ipaddress.IPv4Address("10.0.0.2"), 80, "http", True)]


def test_probe_address_reports_every_port_in_catalog_order():
    connector = FakeConnector(open_pairs=[("10.0.0.9", 22), ("10.0.0.9", 443)])
    engine = PortProbeEngine({443: "https", 22: "ssh", 80: "http"}, connector=connector)

    outcomes = engine.probe_address(ipaddress.IPv4Address("10.0.0.9"))

    assert [(o.port, o.is_open) for o in outcomes] == list({443: True, 22: True, 80: False}.items())


def test_open_ports_follow_catalog_order():
    host = live_host("10.0.0.9")
    connector = FakeConnector(open_pairs=[("10.0.0.9", p) for p in (8080, 22, 443)])
    catalog = {22: "ssh", 443: "https", 8080: "http-proxy"}
    engine = PortProbeEngine(catalog, connector=connector)

    engine.probe_hosts([host])

    assert [p.port for p in host.open_ports] == [22, 443, 8080]


def test_connector_receives_the_100ms_cap():
    connector = FakeConnector()
    engine = PortProbeEngine({80: "http", 443: "https"}, connector=connector)

    engine.probe_hosts([live_host("10.0.0.2")])

    assert connector.calls
    assert all(timeout <= 0.1 for _, _, timeout in connector.calls)


def test_slow_connection_is_treated_as_closed():
    host = live_host("10.0.0.2")
    connector = FakeConnector(open_pairs=[("10.0.0.2", 80)], delay=0.25)
    engine = PortProbeEngine({80: "http"}, connector=connector)

    assert engine.probe_hosts([host]) == []
    assert host.open_ports == []


def test_blocked_connector_does_not_hold_the_scan():
    host = live_host("10.0.0.2")
    connector = FakeConnector(open_pairs=[("10.0.0.2", 80), ("10.0.0.2", 443)], delay=1.0)
    engine = PortProbeEngine({80: "http", 443: "https"}, connector=connector)

    started = time.monotonic()
    outcomes = engine.probe_hosts([host])
    elapsed = time.monotonic() - started

    assert elapsed < 0.5
    assert outcomes == []
    assert host.open_ports == []


def test_each_batch_of_ports_gets_its_own_cap():
    connector = FakeConnector(open_pairs=[("10.0.0.2", p) for p in (1, 2, 3, 4)], delay=1.0)
    engine = PortProbeEngine({1: "a", 2: "b", 3: "c", 4: "d"}, connector=connector, timeout_ms=50,
                             workers_per_host=2)

    started = time.monotonic()
    outcomes = engine.probe_address(ipaddress.IPv4Address("10.0.0.2"))
    elapsed = time.monotonic() - started

    assert elapsed < 0.5
    assert [o.is_open for o in outcomes] == [False] * 4
    assert len(connector.calls) == 4


def test_connector_errors_are_treated_as_closed():
    def broken(address, port, timeout):
        raise ConnectionResetError("reset by peer")

    host = live_host("10.0.0.2")
    engine = PortProbeEngine({80: "http", 22: "ssh"}, connector=broken)

    assert engine.probe_hosts([host]) == []
    assert host.open_ports == []


def test_only_given_hosts_are_probed():
    connector = FakeConnector(open_pairs=[("10.0.0.2", 80), ("10.0.0.3", 80)])
    host = live_host("10.0.0.2")
    engine = PortProbeEngine({80: "http"}, connector=connector)

    outcomes = engine.probe_hosts([host])

    assert {address for address, _, _ in connector.calls} == {"10.0.0.2"}
    assert [str(o.address) for o in outcomes] == ["10.0.0.2"]


def test_outcomes_are_grouped_by_host_in_input_order():
    hosts = [live_host("10.0.0.5"), live_host("10.0.0.3")]
    connector = FakeConnector(open_pairs=[("10.0.0.5", 22), ("10.0.0.3", 22), ("10.0.0.3", 80)])
    engine = PortProbeEngine({22: "ssh", 80: "http"}, connector=connector, hosts_in_parallel=2)

    outcomes = engine.probe_hosts(hosts)

    assert [(str(o.address), o.port) for o in outcomes] == [("10.0.0.5", 22), ("10.0.0.3", 22), ("10.0.0.3", 80)]


def test_concurrency_stays_within_configured_bounds():
    active = 0
    peak = 0
    lock = threading.Lock()

    def counting_connector(address, port, timeout):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return False

    catalog = {port: f"svc{port}" for port in range(1000, 1010)}
    hosts = [live_host(f"10.0.0.{i}") for i in range(1, 5)]
    engine = PortProbeEngine(catalog, connector=counting_connector, workers_per_host=3, hosts_in_parallel=2)

    engine.probe_hosts(hosts)

    assert 1 <= peak <= 6


def test_sequential_mode_runs_one_attempt_at_a_time():
    active = 0
    peak = 0
    lock = threading.Lock()

    def counting_connector(address, port, timeout):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.002)
        with lock:
            active -= 1
        return False

    engine = PortProbeEngine({1: "a", 2: "b", 3: "c"}, connector=counting_connector,
                             workers_per_host=1, hosts_in_parallel=1)
    engine.probe_hosts([live_host("10.0.0.1"), live_host("10.0.0.2")])

    assert peak == 1


def test_empty_catalog_or_no_hosts():
    engine = PortProbeEngine({}, connector=FakeConnector())
    host = live_host("10.0.0.1")
    assert engine.probe_hosts([host]) == []
    assert host.open_ports == []
    assert PortProbeEngine({80: "http"}, connector=FakeConnector()).probe_hosts([]) == []


@pytest.mark.parametrize("timeout_ms", [0, 101, 1000])
def test_timeout_cannot_exceed_100ms(timeout_ms):
    with pytest.raises(ValueError):
        PortProbeEngine({80: "http"}, timeout_ms=timeout_ms)


def test_concurrency_bounds_must_be_positive():
    with pytest.raises(ValueError):
        PortProbeEngine({80: "http"}, workers_per_host=0)
    with pytest.raises(ValueError):
        PortProbeEngine({80: "http"}, hosts_in_parallel=0)
