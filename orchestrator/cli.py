"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the whale monitor.

- argparse flags override environment configuration
- --init-db creates the tables and exits
- Otherwise runs until SIGINT / SIGTERM

============================================================
USAGE
============================================================
whale-watch --watchlist tokens.json
whale-watch --init-db --database-url sqlite:///whales.db
python -m orchestrator.cli --log-format text --min-percent-supply 0.5

============================================================
"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from storage.database import Database

from .config import MonitorConfig
from .core import WhaleMonitor, correlation_id, setup_logging


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="whale-watch",
        description="Real-time whale transaction monitor for EVM tokens",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Unset options fall back to WHALE_* environment variables (a .env file
is read), then to built-in defaults.

Examples:
  %(prog)s --watchlist tokens.json
  %(prog)s --init-db --database-url sqlite:///whales.db
  %(prog)s --swap-usd-floor 25000 --log-format text
        """
    )

    # --------------------------------------------------------
    # Sources
    # --------------------------------------------------------
    source_group = parser.add_argument_group("Sources")

    source_group.add_argument(
        "--watchlist",
        type=str,
        metavar="PATH",
        help="JSON watchlist file (env: WHALE_WATCHLIST_PATH)",
    )

    source_group.add_argument(
        "--rpc-ws-url",
        type=str,
        metavar="URL",
        help="WebSocket RPC endpoint for log subscriptions (env: WHALE_RPC_WS_URL)",
    )

    source_group.add_argument(
        "--rpc-http-url",
        type=str,
        metavar="URL",
        help="HTTP RPC endpoint for token metadata (env: WHALE_RPC_HTTP_URL)",
    )

    source_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="SQLAlchemy database URL (env: WHALE_DATABASE_URL)",
    )

    # --------------------------------------------------------
    # Thresholds
    # --------------------------------------------------------
    threshold_group = parser.add_argument_group("Thresholds")

    threshold_group.add_argument(
        "--swap-usd-floor",
        type=_decimal,
        metavar="USD",
        help="Minimum USD value for swaps (default: 10000)",
    )

    threshold_group.add_argument(
        "--transfer-usd-floor",
        type=_decimal,
        metavar="USD",
        help="Minimum USD value for transfers (default: 100000)",
    )

    threshold_group.add_argument(
        "--min-percent-supply",
        type=_decimal,
        metavar="PCT",
        help="Minimum share of total supply, in percent (default: 0.2)",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: json)",
    )

    # --------------------------------------------------------
    # Actions
    # --------------------------------------------------------
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create database tables and exit",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace, base: Optional[MonitorConfig] = None) -> MonitorConfig:
    """
    Apply CLI arguments on top of environment configuration.

    Args:
        args: Parsed arguments
        base: Starting configuration (default: MonitorConfig.from_env())

    Returns:
        MonitorConfig instance
    """
    config = base or MonitorConfig.from_env()

    if args.watchlist:
        config.watchlist_path = args.watchlist
    if args.rpc_ws_url:
        config.subscription.rpc_ws_url = args.rpc_ws_url
    if args.rpc_http_url:
        config.resolver.rpc_http_url = args.rpc_http_url
    if args.database_url:
        config.database_url = args.database_url

    if args.swap_usd_floor is not None:
        config.thresholds.swap_usd_floor = args.swap_usd_floor
    if args.transfer_usd_floor is not None:
        config.thresholds.transfer_usd_floor = args.transfer_usd_floor
    if args.min_percent_supply is not None:
        config.thresholds.min_percent_supply = args.min_percent_supply

    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    return config


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def init_database(config: MonitorConfig) -> int:
    database = Database(config.database_url)
    try:
        database.verify_connection()
        database.create_all()
    finally:
        database.dispose()
    logging.info("Database initialised")
    return 0


async def async_main(config: MonitorConfig) -> int:
    """
    Async main entry point.

    Args:
        config: Monitor configuration

    Returns:
        Exit code
    """
    monitor = WhaleMonitor(config=config)

    try:
        await monitor.run_forever()
        return 0
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await monitor.stop()


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

    config = build_config(args)

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, config.log_format, correlation_id())

    if args.init_db:
        return init_database(config)

    print_banner(config)

    return asyncio.run(async_main(config))


def print_banner(config: MonitorConfig) -> None:
    """Print startup banner."""
    thresholds = config.thresholds
    print()
    print("=" * 60)
    print("  WHALE WATCH")
    print("=" * 60)
    print(f"  Watchlist:     {config.watchlist_path}")
    print(f"  RPC (ws):      {config.subscription.rpc_ws_url.split('?')[0]}")
    print(f"  Swap:          ${thresholds.swap_usd_floor:,}")
    print(f"  Transfer:      ${thresholds.transfer_usd_floor:,}")
    print(f"  Supply share:  {thresholds.min_percent_supply}%")
    print(f"  Log Level:     {config.log_level}")
    print("=" * 60)
    print()


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
