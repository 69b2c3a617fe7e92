"""
Deployment Monitor - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the deployment monitor.

- Loads configuration from a JSON file or the environment
- Runs the poll loop until interrupted
- Optionally serves the read-only HTTP API

============================================================
USAGE
============================================================
python -m deployment_monitor --config monitor.json
python -m deployment_monitor --config monitor.json --serve --port 8090
python -m deployment_monitor --config monitor.json --check-config

============================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from aiohttp import web
from sqlalchemy.exc import SQLAlchemyError

from .api import create_api_app
from .archive import SqlArchivalSink
from .config import MonitoringConfig
from .errors import DeploymentMonitorError
from .monitor import DeploymentMonitor


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="deployment-monitor",
        description="Post-deployment health monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --config monitor.json                 # Poll and alert
  %(prog)s --config monitor.json --serve         # Also serve the API
  %(prog)s --env-file .env --interval 10         # Config from environment
  %(prog)s --config monitor.json --check-config  # Validate and exit
        """
    )

    # --------------------------------------------------------
    # Configuration
    # --------------------------------------------------------
    config_group = parser.add_argument_group("Configuration")

    config_group.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="JSON configuration file (default: DEPLOYMENT_MONITOR_CONFIG)",
    )

    config_group.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help=".env file loaded before reading the environment",
    )

    config_group.add_argument(
        "--interval",
        type=float,
        metavar="SECONDS",
        help="Override the poll interval",
    )

    config_group.add_argument(
        "--archive-url",
        type=str,
        metavar="URL",
        help="SQLAlchemy URL for archived deployments (default: in memory)",
    )

    config_group.add_argument(
        "--check-config",
        action="store_true",
        help="Validate the configuration and exit",
    )

    # --------------------------------------------------------
    # API Options
    # --------------------------------------------------------
    api_group = parser.add_argument_group("API Options")

    api_group.add_argument(
        "--serve",
        action="store_true",
        help="Serve the read-only HTTP API",
    )

    api_group.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="API bind host (default: 127.0.0.1)",
    )

    api_group.add_argument(
        "--port",
        type=int,
        default=8090,
        help="API port (default: 8090)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> MonitoringConfig:
    """
    Build monitoring configuration from CLI arguments.

    An explicit --config file wins over the environment.
    """
    if args.config:
        config = MonitoringConfig.from_file(args.config)
    else:
        config = MonitoringConfig.from_env(args.env_file)

    if args.interval is not None:
        config.poll_interval_seconds = args.interval

    config.validate()
    return config


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace, config: MonitoringConfig) -> int:
    """
    Run the monitor until SIGINT/SIGTERM.

    Returns:
        Exit code
    """
    archive = None
    if args.archive_url:
        archive = SqlArchivalSink(args.archive_url)
        try:
            await archive.create_schema()
        except SQLAlchemyError as e:
            logger.error(f"Cannot prepare archive database: {e}")
            await archive.close()
            return 1

    try:
        monitor = DeploymentMonitor(config, archive=archive)
    except DeploymentMonitorError as e:
        logger.error(f"Cannot start monitor: {e.message}")
        if archive is not None:
            await archive.close()
        return 1

    stop_event = asyncio.Event()

    if sys.platform != "win32":
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)

    runner: Optional[web.AppRunner] = None
    try:
        await monitor.initialize()

        if args.serve:
            runner = web.AppRunner(create_api_app(monitor))
            await runner.setup()
            site = web.TCPSite(runner, args.host, args.port)
            await site.start()
            logger.info(f"Monitor API started at http://{args.host}:{args.port}")

        logger.info("Press Ctrl+C to stop")
        await stop_event.wait()
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        if runner is not None:
            await runner.cleanup()
        await monitor.destroy()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = build_config(args)
    except DeploymentMonitorError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.check_config:
        print(
            f"Configuration OK: {len(config.providers)} provider(s), "
            f"{len(config.alerts)} alert(s), "
            f"{len(config.dashboards)} dashboard(s), "
            f"interval {config.poll_interval_seconds}s"
        )
        return 0

    if not config.enabled:
        print("Deployment monitoring is disabled in configuration")
        return 0

    return asyncio.run(async_main(args, config))


if __name__ == "__main__":
    sys.exit(main())
