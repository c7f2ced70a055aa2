"""
Serializes scan results to CSV and JSON.
"""
from __future__ import annotations
import csv
import io
import json
import logging
from datetime import datetime
from typing import IO, Optional, Sequence

from .models import HostResult, ScanReport

logger = logging.getLogger(__name__)

CSV_FIELDS = ["address", "hostname", "round_trip_ms", "open_ports"]
RAW_CSV_FIELDS = CSV_FIELDS + ["status", "bytes", "ttl", "route"]


def _csv_row(host: HostResult, raw: bool) -> dict:
    data = host.to_dict(raw=raw)
    row = {
        "address": data["address"],
        "hostname": data["hostname"] or "",
        "round_trip_ms": "" if data["round_trip_ms"] is None else data["round_trip_ms"],
        "open_ports": ";".join(f"{p['port']}/{p['service']}" for p in data["open_ports"]),
    }
    if raw:
        row["status"] = data["status"]
        row["bytes"] = data["bytes"]
        row["ttl"] = "" if data["ttl"] is None else data["ttl"]
        row["route"] = " > ".join(data.get("route") or [])
    return row


def write_csv(hosts: Sequence[HostResult], stream: IO[str], raw: bool = False) -> None:
    """Writes one CSV row per host. Open ports are encoded as 'port/service' joined by ';'."""
    writer = csv.DictWriter(stream, fieldnames=RAW_CSV_FIELDS if raw else CSV_FIELDS)
    writer.writeheader()
    for host in hosts:
        writer.writerow(_csv_row(host, raw))


def render_csv(hosts: Sequence[HostResult], raw: bool = False) -> str:
    buffer = io.StringIO()
    write_csv(hosts, buffer, raw=raw)
    return buffer.getvalue()


def render_json(report: ScanReport, raw: bool = False, indent: Optional[int] = 2) -> str:
    data = {
        "export_type": "host_sweep",
        "exported_at": datetime.now().isoformat(),
        **report.to_dict(raw=raw),
    }
    return json.dumps(data, indent=indent)


def export_report(report: ScanReport, path: str, fmt: str, raw: bool = False) -> str:
    """
    Writes the report to a file in the given format ('csv' or 'json').

    Returns:
        The path written.
    """
    if fmt == "csv":
        with open(path, "w", newline="") as f:
            write_csv(report.hosts, f, raw=raw)
    elif fmt == "json":
        with open(path, "w") as f:
            f.write(render_json(report, raw=raw))
            f.write("\n")
    else:
        raise ValueError(f"Unsupported export format '{fmt}'.")
    logger.info(f"Exported {len(report.hosts)} host(s) to {path}")
    return path
