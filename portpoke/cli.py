from __future__ import annotations

import argparse
import sys

from . import __version__
from .errors import ConfigError, ScanCancelled
from .logger import create_logger
from .models import OUTPUT_FORMATS, ScanConfig
from .output import render, write_report
from .ports import PortRange, parse_range
from .scanner import run_scan

DEFAULT_START_PORT = 1
DEFAULT_END_PORT = 1024
DEFAULT_THREADS = 1000
DEFAULT_TIMEOUT_MS = 750

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="portpoke", description="Concurrent TCP port scanner")
    p.add_argument("-t", "--target", required=True, help="IP address or hostname")
    p.add_argument("-s", "--start-port", type=int, default=DEFAULT_START_PORT,
                   help=f"First port, inclusive (default: {DEFAULT_START_PORT})")
    p.add_argument("-e", "--end-port", type=int, default=DEFAULT_END_PORT,
                   help=f"Last port, inclusive (default: {DEFAULT_END_PORT})")
    p.add_argument("-p", "--ports", help="Port spec: 80 or 1-1024 (overrides --start-port/--end-port)")
    p.add_argument("-j", "--threads", type=int, default=DEFAULT_THREADS,
                   help=f"Concurrent probes (default: {DEFAULT_THREADS})")
    p.add_argument("-T", "--timeout", type=int, default=DEFAULT_TIMEOUT_MS,
                   help=f"Per-port timeout in milliseconds (default: {DEFAULT_TIMEOUT_MS})")
    p.add_argument("-f", "--format", choices=OUTPUT_FORMATS, default="text", help="Output format")
    p.add_argument("-o", "--output", help="Write the report to this file instead of stdout")
    p.add_argument("--progress-every", type=int, default=0,
                   help="Log progress every N ports (default: off)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every probe")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def build_config(args: argparse.Namespace) -> ScanConfig:
    if args.ports:
        port_range = parse_range(args.ports)
    else:
        port_range = PortRange(args.start_port, args.end_port)

    return ScanConfig(
        target=args.target,
        port_range=port_range,
        concurrency=args.threads,
        timeout_s=args.timeout / 1000.0,
        output_format=args.format,
        output_path=args.output,
        progress_every=args.progress_every,
    )


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = create_logger(verbose=args.verbose)

    try:
        config = build_config(args)
        report = run_scan(config)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except (ScanCancelled, KeyboardInterrupt):
        print("interrupted", file=sys.stderr)
        return EXIT_INTERRUPTED

    rendered = render(report, config.output_format)
    if config.output_path:
        path = write_report(rendered, config.output_path)
        logger.info("Saved results to %s", path)
    else:
        sys.stdout.write(rendered)
    return EXIT_OK


def run() -> None:
    sys.exit(main())
