#!/usr/bin/env python3
"""
Command-line interface for netguard
"""

import argparse
import signal
import sys
from typing import List, Optional

from loguru import logger
from tabulate import tabulate

from netguard import __version__
from netguard.config import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader, LoggingSettings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
FILE_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}"


def setup_logging(
    verbose: bool = False, settings: Optional[LoggingSettings] = None
) -> None:
    """Configure logging for the application"""
    settings = settings or LoggingSettings()
    logger.remove()
    log_level = "DEBUG" if verbose else settings.level
    logger.add(sys.stderr, format=LOG_FORMAT, level=log_level)

    if settings.file:
        logger.add(
            settings.file,
            rotation=settings.rotation,
            retention=settings.retention,
            level=log_level,
            format=FILE_LOG_FORMAT,
        )


def load_config(path: str):
    """Load the config, logging the failure the way the daemon reports it"""
    try:
        return ConfigLoader(path).load()
    except FileNotFoundError as e:
        logger.error(f"read config error: {e}")
    except ConfigError as e:
        logger.error(f"parse config error: {e}")
    return None


def handle_run(args) -> int:
    """Run every configured checker until interrupted"""
    from netguard.checkers.supervisor import Supervisor

    config = load_config(args.config)
    if config is None:
        return 1

    setup_logging(verbose=args.verbose, settings=config.logging)
    logger.info(f"Network Guard {__version__}")

    supervisor = Supervisor(config.checkers)

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        supervisor.stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    supervisor.start()
    supervisor.wait()
    supervisor.stop()

    for name, state in supervisor.states().items():
        logger.info(f"{name} final state: {state.status.value} (fail count {state.fail_count})")
    return 0


def handle_validate(args) -> int:
    """Load the config and print the checkers it defines"""
    config = load_config(args.config)
    if config is None:
        return 1

    table = [
        [
            c.name,
            ", ".join(str(e) for e in c.endpoints),
            c.method.value,
            c.threshold,
            f"{c.timeout_up:g}s / {c.timeout_down:g}s",
            c.on_down or "-",
            c.on_up or "-",
        ]
        for c in config.checkers
    ]
    print(
        tabulate(
            table,
            headers=["Name", "Targets", "Method", "Threshold", "Timeout up/down", "Down", "Up"],
            tablefmt="simple",
        )
    )
    return 0


def handle_probe(args) -> int:
    """Race the given addresses once and report the result"""
    from netguard.checkers.models import Endpoint, ProbeMethod
    from netguard.checkers.probe import build_probe
    from netguard.checkers.racer import Racer

    endpoints = [Endpoint(address=a, virtual_host=args.host or "") for a in args.address]
    racer = Racer(probe=build_probe(ProbeMethod(args.method), args.proxy or ""), name="cli")

    result = racer.race(endpoints, args.timeout)
    racer.drain(args.timeout * 2)

    print(f"\n{'✓' if result.success else '✗'} {result}")
    return 0 if result.success else 1


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser"""
    parser = argparse.ArgumentParser(
        prog="netguard",
        description="Run commands when network targets go down or come back",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  netguard run -c config.yaml
  netguard validate -c config.yaml
  netguard probe --address 1.1.1.1 --host one.one.one.one --timeout 3
        """,
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose (DEBUG) logging"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(
        dest="command", help="Available commands", required=True
    )

    run_parser = subparsers.add_parser("run", help="Monitor all configured checkers")
    run_parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_FILE, help="config location"
    )

    validate_parser = subparsers.add_parser(
        "validate", help="Validate the config and list its checkers"
    )
    validate_parser.add_argument(
        "-c", "--config", default=DEFAULT_CONFIG_FILE, help="config location"
    )

    probe_parser = subparsers.add_parser("probe", help="Probe addresses once")
    probe_parser.add_argument(
        "--address",
        action="append",
        required=True,
        help="Address to dial (repeat to race several)",
    )
    probe_parser.add_argument("--host", help="Host header to send")
    probe_parser.add_argument(
        "--timeout", type=float, default=5.0, help="Probe timeout in seconds (default: 5)"
    )
    probe_parser.add_argument(
        "--method", choices=["http", "tcp"], default="http", help="Probe method"
    )
    probe_parser.add_argument("--proxy", help="Proxy URL for HTTP probes")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose)

    if args.command == "run":
        return handle_run(args)
    elif args.command == "validate":
        return handle_validate(args)
    elif args.command == "probe":
        return handle_probe(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
