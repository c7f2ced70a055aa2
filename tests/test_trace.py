import subprocess

from hostsweep.network import trace
from hostsweep.network.trace import build_trace_command, parse_trace_output, trace_route

LINUX_TRACE = """traceroute to 10.0.5.9 (10.0.5.9), 30 hops max, 60 byte packets
 1  192.168.1.1  0.412 ms
 2  *
 3  10.0.5.9  4.871 ms
"""

WINDOWS_TRACE = """
Tracing route to 10.0.5.9 over a maximum of 30 hops

  1    <1 ms    <1 ms    <1 ms  192.168.1.1
  2     *        *        *     Request timed out.
  3     4 ms     4 ms     5 ms  10.0.5.9

Trace complete.
"""


def test_parse_linux_trace():
    assert parse_trace_output(LINUX_TRACE) == ["192.168.1.1", "*", "10.0.5.9"]


def test_parse_windows_trace():
    assert parse_trace_output(WINDOWS_TRACE) == ["192.168.1.1", "*", "10.0.5.9"]


def test_trace_commands():
    assert build_trace_command("10.0.5.9", 12, system="Windows")[:5] == ["tracert", "-d", "-h", "12", "-w"]
    assert build_trace_command("10.0.5.9", 12, system="Linux") == [
        "traceroute", "-n", "-m", "12", "-q", "1", "-w", "1", "10.0.5.9"
    ]


def test_trace_route_runs_system_command(monkeypatch):
    def run(command, **kwargs):
        return subprocess.CompletedProcess(command, 0, stdout=LINUX_TRACE, stderr="")
    monkeypatch.setattr(trace.platform, "system", lambda: "Linux")
    monkeypatch.setattr(trace.subprocess, "run", run)
    assert trace_route("10.0.5.9") == ["192.168.1.1", "*", "10.0.5.9"]


def test_trace_route_without_traceroute_binary(monkeypatch):
    def run(command, **kwargs):
        raise FileNotFoundError(command[0])
    monkeypatch.setattr(trace.subprocess, "run", run)
    assert trace_route("10.0.5.9") == []


def test_trace_route_that_hangs(monkeypatch):
    def run(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs["timeout"])
    monkeypatch.setattr(trace.subprocess, "run", run)
    assert trace_route("10.0.5.9", max_hops=2) == []
