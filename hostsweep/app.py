"""
Command-line application for hostsweep.

Parses arguments, loads configuration, runs the scan with a live progress bar
and prints or exports the results.
"""
import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from . import __version__, configuration
from .addressing import AddressRange, RangeError
from .controller import ScanController, ScanState
from .export import export_report, render_csv, render_json
from .models import ProbeStatus, ScanReport, SweepProgress
from .network.discovery import get_local_network

_STATE_MESSAGES = {
    ScanState.PROBING_PORTS: "Probing ports on live hosts...",
    ScanState.RESOLVING: "Resolving names and routes...",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hostsweep",
        description="Find live hosts in an IPv4 range and report their open TCP services.",
    )
    parser.add_argument("start", nargs="?", help="First address of the range, e.g. 192.168.1.1")
    parser.add_argument("end", nargs="?", help="Last address of the range (defaults to START)")
    parser.add_argument("--local", action="store_true", help="Sweep the subnet of the primary network interface")
    parser.add_argument("--config", default=None, help="Path to the YAML configuration file (default: config.yaml)")
    parser.add_argument("-i", "--interval", type=int, default=None, metavar="MS",
                        help="Pause between echo probes in milliseconds (default: 30)")
    parser.add_argument("--port-workers", type=int, default=None, metavar="N",
                        help="Ports probed concurrently on each host")
    parser.add_argument("--host-workers", type=int, default=None, metavar="N",
                        help="Hosts port-probed concurrently")
    parser.add_argument("--ports-file", default=None, metavar="PATH",
                        help="JSON or YAML file mapping port numbers to service names")
    parser.add_argument("--format", choices=configuration.OUTPUT_FORMATS, default=None, dest="output_format",
                        help="Output format (default: table)")
    parser.add_argument("-o", "--output", default=None, metavar="PATH",
                        help="Write CSV or JSON results to PATH instead of stdout")
    parser.add_argument("--raw", action="store_true", default=None,
                        help="Include echo metadata (bytes, ttl, status) and non-replying addresses")
    parser.add_argument("--no-resolve", action="store_false", dest="resolve_names", default=None,
                        help="Skip reverse name lookups")
    parser.add_argument("--trace", action="store_true", dest="trace_route", default=None,
                        help="Trace the route to every live host")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Returns a copy of config with command-line values layered on top."""
    merged = dict(config)
    overrides = {
        'interval_ms': args.interval,
        'port_workers_per_host': args.port_workers,
        'port_hosts_in_parallel': args.host_workers,
        'port_catalog_file': args.ports_file,
        'output_format': args.output_format,
        'raw_output': args.raw,
        'resolve_names': args.resolve_names,
        'trace_route': args.trace_route,
    }
    merged.update({k: v for k, v in overrides.items() if v is not None})
    if args.output and args.output_format is None and merged['output_format'] == 'table':
        merged['output_format'] = 'json' if args.output.lower().endswith('.json') else 'csv'
    return configuration.validate_config(merged)


def resolve_range(args: argparse.Namespace) -> AddressRange:
    if args.local:
        if args.start:
            raise ValueError("Give either --local or a START address, not both.")
        network = get_local_network()
        if network is None:
            raise ValueError("Could not determine the local subnet; give START and END explicitly.")
        return AddressRange.from_network(network)
    if not args.start:
        raise ValueError("A START address (or --local) is required.")
    return AddressRange(args.start, args.end or args.start)


def build_results_table(report: ScanReport, raw: bool = False) -> Table:
    table = Table(title=f"Live hosts {report.start} - {report.end}", show_header=True, header_style="bold magenta")
    table.add_column("Address", style="cyan", no_wrap=True)
    table.add_column("Host name", style="green")
    table.add_column("RTT (ms)", justify="right")
    if raw:
        table.add_column("TTL", justify="right")
        table.add_column("Bytes", justify="right")
    table.add_column("Open ports")
    if any(h.route is not None for h in report.hosts):
        table.add_column("Route")

    for host in report.hosts:
        row: List[str] = [
            str(host.address),
            host.hostname or "",
            "" if host.round_trip_ms is None else f"{host.round_trip_ms:g}",
        ]
        if raw:
            row += ["" if host.ttl is None else str(host.ttl), str(host.bytes)]
        row.append(", ".join(f"{p.port}/{p.service_name}" for p in host.open_ports) or "-")
        if host.route is not None:
            row.append(" > ".join(host.route) or "-")
        table.add_row(*row)
    return table


def build_outcome_table(report: ScanReport) -> Table:
    table = Table(title="Addresses without a reply", show_header=True, header_style="bold")
    table.add_column("Address", style="cyan", no_wrap=True)
    table.add_column("Status")
    for outcome in report.outcomes:
        if outcome.status is not ProbeStatus.SUCCESS:
            table.add_row(str(outcome.address), outcome.status.value)
    return table


def run_scan(controller: ScanController, address_range: AddressRange, console: Console) -> ScanReport:
    """Runs the scan behind a progress bar fed by the sweep's progress reports."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Sweeping...", total=len(address_range))

        def on_progress(p: SweepProgress) -> None:
            progress.update(task, completed=p.completed, description=f"Sweeping ({p.pending} pending)")

        def on_state_change(state: ScanState) -> None:
            message = _STATE_MESSAGES.get(state)
            if message:
                progress.update(task, description=message)

        controller.on_progress = on_progress
        controller.on_state_change = on_state_change
        return controller.run_range(address_range)


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format='%(asctime)s - %(levelname)s - %(message)s')

    out = Console()
    err = Console(stderr=True)

    try:
        config = apply_overrides(configuration.load_or_create_config(args.config), args)
        address_range = resolve_range(args)
        controller = ScanController(config)
    except RangeError as e:
        err.print(f"[red]Invalid range:[/red] {e}")
        return 2
    except ValueError as e:
        err.print(f"[red]Error:[/red] {e}")
        return 2

    logging.info(f"Scanning {address_range.start} - {address_range.end} ({len(address_range)} addresses).")
    report = run_scan(controller, address_range, err)
    raw = config['raw_output']

    if report.no_hosts_responded:
        err.print(f"[yellow]No hosts responded between {report.start} and {report.end}.[/yellow]")

    fmt = config['output_format']
    if args.output:
        try:
            export_report(report, args.output, 'csv' if fmt == 'table' else fmt, raw=raw)
        except OSError as e:
            err.print(f"[red]Could not write results to {args.output}:[/red] {e}")
            return 1
        err.print(f"Results written to {args.output}")
    elif fmt == 'csv':
        sys.stdout.write(render_csv(report.hosts, raw=raw))
    elif fmt == 'json':
        sys.stdout.write(render_json(report, raw=raw) + "\n")
    else:
        if report.hosts:
            out.print(build_results_table(report, raw=raw))
        if raw:
            out.print(build_outcome_table(report))
        out.print(
            f"[bold green]{len(report.hosts)} live host(s)[/bold green] "
            f"of {report.progress.completed} probed in {report.elapsed_seconds:.1f}s"
        )
    return 0
