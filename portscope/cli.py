import argparse
import logging
import sys
from typing import List

from dotenv import load_dotenv

from .core.enhanced_logging import init_enhanced_logging
from .core.errors import ScanInternalError, ValidationError
from .core.reporter import ReportGenerator
from .core.scan_config import reload_scan_config

logger = logging.getLogger(__name__)


def parse_ports(spec: str) -> List[int]:
    """
    Parses a port specification string into a list of ports, keeping input order.
    Supports:
    - Single ports: "80"
    - Ranges: "1-1024"
    - Comma-separated: "22,80,443"
    - Mixed: "22,8000-8005,443"
    """
    spec = spec.strip()
    if not spec:
        raise ValueError("Empty port spec")

    ports: List[int] = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_s, end_s = part.split("-", 1)
            start = int(start_s)
            end = int(end_s)
            if start > end:
                raise ValueError(f"Invalid port range: {part}")
            ports.extend(range(start, end + 1))
        else:
            ports.append(int(part))
    return ports


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="portscope", description="Concurrent TCP port scanner")
    p.add_argument("--log-level", help="Override PORTSCOPE_LOG_LEVEL")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("scan", help="Scan one host")
    s.add_argument("host", help="IPv4 address or DNS name")
    s.add_argument("--ports", required=True, help="Port spec: 1-1024 or 22,80,443 or mixed")
    s.add_argument("--timeout", type=int, help="Per-probe timeout in milliseconds")
    s.add_argument("--concurrency", type=int, help="Maximum probes in flight")
    s.add_argument("--strategy", choices=["connect", "nmap"], help="Probe strategy")
    s.add_argument("--json", action="store_true", help="Print the JSON response instead of a table")
    s.add_argument("--open-only", action="store_true", help="Only display open ports")

    v = sub.add_parser("serve", help="Run the HTTP API")
    v.add_argument("--host", default="0.0.0.0")
    v.add_argument("--port", type=int, default=5000)
    return p


def run_scan(args, reporter: ReportGenerator) -> int:
    from .core.scan_manager import ScanManager
    from .scanner import build_probe

    try:
        ports = parse_ports(args.ports)
    except ValueError as e:
        reporter.print_error(f"Invalid port spec: {e}")
        return 2

    try:
        manager = ScanManager(probe=build_probe(args.strategy) if args.strategy else None)
    except ImportError as e:
        reporter.print_error(f"Probe strategy unavailable: {e}")
        return 1
    try:
        report = manager.scan(args.host, ports, args.timeout, args.concurrency)
    except ValidationError as e:
        reporter.print_error(f"{e.kind}: {e.message}")
        return 2
    except ScanInternalError as e:
        reporter.print_error(f"{e.kind}: {e.message}")
        return 1

    if args.json:
        reporter.print_json(report)
    else:
        reporter.print_summary(report, open_only=args.open_only)
    return 0


def main(argv=None) -> int:
    load_dotenv()
    config = reload_scan_config()

    parser = build_parser()
    args = parser.parse_args(argv)
    init_enhanced_logging(level=(args.log_level or config.log_level).upper())

    if args.command == "serve":
        from .app import app
        app.run(debug=False, host=args.host, port=args.port, threaded=True)
        return 0

    return run_scan(args, ReportGenerator())


if __name__ == "__main__":
    sys.exit(main())
