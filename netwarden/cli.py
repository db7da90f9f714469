#!/usr/bin/env python3
"""
NetWarden CLI - Command Line Interface

Usage:
    netwarden scan 8.8.8.8
    netwarden monitor 10.0.0.5 -i 2
    netwarden serve
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from netwarden.config import settings
from netwarden.errors import ConfigurationError
from netwarden.logging_config import configure_logging
from netwarden.output.console import NetWardenConsole, get_console


# =============================================================================
# Command Runners
# =============================================================================


async def run_scan(ip: str, console: NetWardenConsole) -> dict:
    """
    Run one scan cycle with console output.

    Args:
        ip: Target address
        console: Console instance for output

    Returns:
        ScanResult dictionary
    """
    from netwarden.ai.openrouter import close_openrouter_client
    from netwarden.monitoring.service import get_monitoring_service

    service = get_monitoring_service()

    try:
        target = service.get_target(ip)
        needs_baseline = target is None or target.baseline is None
        console.print_scan_start(
            ip,
            settings.scan_duration_seconds,
            settings.baseline_duration_seconds if needs_baseline else None,
        )

        result = await service.run_once_scan(ip)
    finally:
        await service.shutdown()
        await close_openrouter_client()

    data = result.to_dict()
    console.print_scan_result(data)
    return data


async def run_monitor(ip: str, interval_minutes: float, console: NetWardenConsole) -> None:
    """Monitor a target until interrupted, then tear everything down."""
    from netwarden.ai.openrouter import close_openrouter_client
    from netwarden.monitoring.service import get_monitoring_service

    service = get_monitoring_service()

    ip = await service.start_monitoring(ip, interval_minutes)
    console.print_monitoring_started(ip, interval_minutes)

    try:
        await asyncio.Event().wait()
    finally:
        await service.shutdown()
        await close_openrouter_client()
        console.print_monitoring_stopped(ip)


# =============================================================================
# Main Entry Point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netwarden",
        description="NetWarden - Network Traffic Monitoring and Anomaly Detection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    netwarden scan 8.8.8.8              # One scan (baseline first if needed)
    netwarden scan 8.8.8.8 -o out.json  # Save the scan result to JSON
    netwarden monitor 10.0.0.5 -i 2     # Scan every 2 minutes until Ctrl-C
    netwarden serve                     # Run the REST API
""",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Run a single scan cycle")
    scan.add_argument("ip", help="IPv4 or IPv6 address")
    scan.add_argument(
        "-o", "--output",
        type=str,
        help="Save the scan result to JSON file",
    )

    monitor = subparsers.add_parser("monitor", help="Monitor a target until interrupted")
    monitor.add_argument("ip", help="IPv4 or IPv6 address")
    monitor.add_argument(
        "-i", "--interval",
        type=float,
        default=settings.default_interval_minutes,
        help=f"Minutes between scans (default: {settings.default_interval_minutes:g})",
    )

    subparsers.add_parser("serve", help="Run the REST API server")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        from netwarden.main import run

        run()
        return 0

    if args.verbose:
        configure_logging(level="DEBUG", log_format="console")
    elif args.command == "monitor":
        configure_logging(level="INFO", log_format="console")
    else:
        configure_logging(level="WARNING", log_format="console")

    console = get_console()
    console.print_banner()

    try:
        if args.command == "scan":
            result = asyncio.run(run_scan(args.ip, console))

            if args.output:
                output_path = Path(args.output)
                with open(output_path, "w") as f:
                    json.dump(result, f, indent=2, default=str)
                console.print_success(f"Result saved to {output_path}")

            return 0

        asyncio.run(run_monitor(args.ip, args.interval, console))
        return 0

    except KeyboardInterrupt:
        console.console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except (ConfigurationError, ValueError) as e:
        console.print_scan_error(str(e))
        return 2
    except Exception as e:
        console.print_scan_error(str(e))
        if args.verbose:
            import traceback
            console.console.print(f"\n[dim]{traceback.format_exc()}[/dim]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
