#!/usr/bin/env python3
"""Main entry point for Dexcom Share Bridge.

This module provides the command line interface that:
1. Loads configuration from YAML, .env and environment variables
2. Runs one sync cycle, the continuous daemon, a connection test,
   or a read-back of the destination account

Usage:
    # One-time sync
    python -m share_bridge.main sync

    # Continuous sync every N minutes
    python -m share_bridge.main daemon --interval 5

    # Test both accounts
    python -m share_bridge.main test

    # Show readings that arrived on the destination account
    python -m share_bridge.main verify
"""

from __future__ import annotations

import argparse
import asyncio
import copy
import json
import logging
import os
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

from share_bridge import __version__
from share_bridge.syncer import ShareSyncer

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_CONFIG = {
    "source": {
        "username": None,
        "password": None,
        "region": "us",
    },
    "destination": {
        "username": None,
        "password": None,
        "region": "ous",
    },
    "sync": {
        "interval_minutes": 5,
        "max_readings": 12,
        "serial_number": "DEX2COM0001",
        "request_timeout": 30.0,
    },
    "logging": {
        "level": "INFO",
        "file": None,
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}

# Environment variable -> (section, key, type)
ENV_OVERRIDES = {
    "SOURCE_USERNAME": ("source", "username", str),
    "SOURCE_PASSWORD": ("source", "password", str),
    "SOURCE_REGION": ("source", "region", str),
    "DEST_USERNAME": ("destination", "username", str),
    "DEST_PASSWORD": ("destination", "password", str),
    "DEST_REGION": ("destination", "region", str),
    "SYNC_INTERVAL_MINUTES": ("sync", "interval_minutes", int),
    "MAX_READINGS_PER_SYNC": ("sync", "max_readings", int),
    "SERIAL_NUMBER": ("sync", "serial_number", str),
}

# Sync settings that must be positive integers; anything else falls back to the default
POSITIVE_SYNC_SETTINGS = ("interval_minutes", "max_readings")

REQUIRED_SETTINGS = [
    ("SOURCE_USERNAME", "source", "username"),
    ("SOURCE_PASSWORD", "source", "password"),
    ("DEST_USERNAME", "destination", "username"),
    ("DEST_PASSWORD", "destination", "password"),
]


def load_config(config_path: str | None = None, environ: dict[str, str] | None = None) -> dict:
    """Load configuration from file and environment, over the defaults.

    Args:
        config_path: Path to YAML config file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            user_config = yaml.safe_load(f)
            if user_config and isinstance(user_config, dict):
                # Deep merge user config into defaults
                for section, values in user_config.items():
                    section_config = config.get(section)
                    if (
                        section_config is not None
                        and isinstance(section_config, dict)
                        and isinstance(values, dict)
                    ):
                        section_config.update(values)
                    else:
                        config[section] = values

    apply_env_overrides(config, os.environ if environ is None else environ)
    apply_sync_defaults(config)
    return config


def apply_env_overrides(config: dict, environ: dict[str, str]) -> None:
    """Overlay environment variables onto the configuration in place."""
    for name, (section, key, cast) in ENV_OVERRIDES.items():
        raw = environ.get(name)
        if not raw:
            continue
        try:
            value = cast(raw)
        except ValueError:
            logger.warning(f"Ignoring {name}={raw!r}: expected {cast.__name__}")
            continue
        config.setdefault(section, {})[key] = value


def apply_sync_defaults(config: dict) -> None:
    """Replace sync settings that are not positive integers with their defaults."""
    sync_config = config.get("sync")
    if not isinstance(sync_config, dict):
        sync_config = config["sync"] = {}
    for key in POSITIVE_SYNC_SETTINGS:
        value = sync_config.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            continue
        default = DEFAULT_CONFIG["sync"][key]
        logger.warning(f"Ignoring sync.{key}={value!r}: expected a positive integer, using {default}")
        sync_config[key] = default


def validate_config(config: dict) -> list[str]:
    """Check that both accounts have credentials.

    Returns:
        Names of the missing environment variables (empty if valid)
    """
    return [
        name
        for name, section, key in REQUIRED_SETTINGS
        if not (config.get(section) or {}).get(key)
    ]


def setup_logging(config: dict) -> None:
    """Setup logging based on configuration.

    Args:
        config: Configuration dictionary
    """
    log_config = config.get("logging", {})
    level = getattr(logging, log_config.get("level", "INFO").upper())
    format_str = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=format_str, handlers=handlers)

    # Request lines from httpx would repeat the session ID in every log entry
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def cmd_sync(args: argparse.Namespace, config: dict) -> int:
    """Handle sync command.

    Returns:
        Exit code
    """
    syncer = ShareSyncer.from_config(config)

    try:
        result = await syncer.sync()

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
            return 0 if result.success else 1

        print(f"\n{'=' * 60}")
        print("Sync Summary")
        print(f"{'=' * 60}")
        print(f"Route:    {syncer.route}")
        print(f"Read:     {result.read_count}")
        print(f"Skipped:  {result.skipped_count}")
        print(f"Written:  {result.write_count}")
        if result.latest:
            print(f"Latest:   {result.latest}")
        if result.errors:
            print(f"Errors:   {', '.join(result.errors)}")
        print(f"{'=' * 60}\n")

        return 0 if result.success else 1

    finally:
        await syncer.aclose()


async def cmd_daemon(args: argparse.Namespace, config: dict) -> int:
    """Handle daemon command.

    Returns:
        Exit code
    """
    syncer = ShareSyncer.from_config(config)

    try:
        interval = args.interval or config.get("sync", {}).get("interval_minutes", 5)
        await syncer.run_daemon(interval_minutes=interval)
        return 0

    finally:
        await syncer.aclose()


async def cmd_test(args: argparse.Namespace, config: dict) -> int:
    """Handle test command.

    Returns:
        Exit code
    """
    syncer = ShareSyncer.from_config(config)

    try:
        print("Testing connections...\n")
        report = await syncer.test_connections()

        print("\nResults:")
        print(
            f"  Source ({syncer.source.region.upper()}): "
            f"{'OK' if report.source.success else 'FAILED'}"
        )
        if report.source.latest_value is not None:
            print(f"    Latest reading: {report.source.latest_value} mg/dL")
        if report.source.error:
            print(f"    Error: {report.source.error}")
        print(
            f"  Destination ({syncer.destination.region.upper()}): "
            f"{'OK' if report.destination.success else 'FAILED'}"
        )
        if report.destination.error:
            print(f"    Error: {report.destination.error}")

        return 0 if report.ok else 1

    finally:
        await syncer.aclose()


async def cmd_verify(args: argparse.Namespace, config: dict) -> int:
    """Handle verify command.

    Returns:
        Exit code
    """
    syncer = ShareSyncer.from_config(config)
    region = syncer.destination.region.upper()

    try:
        if not args.json:
            print(f"Verifying {region} account data...\n")

        try:
            readings = await syncer.verify(minutes=args.minutes, max_count=args.count)
        except Exception as e:
            logger.error(f"Failed to read from {region}: {e}")
            return 1

        if args.json:
            print(json.dumps([reading.to_dict() for reading in readings], indent=2))
            return 0

        if not readings:
            print(f"No readings found in {region} account.")
            print("\nPossible reasons:")
            print("  - Data not yet uploaded")
            print("  - Share feature not enabled on the destination account")
            return 0

        print(f"Found {len(readings)} readings in {region} account:\n")
        for i, reading in enumerate(readings[:5], 1):
            print(f"  {i}. {reading}")
        if len(readings) > 5:
            print(f"  ... and {len(readings) - 5} more")

        return 0

    finally:
        await syncer.aclose()


COMMANDS = {
    "sync": cmd_sync,
    "daemon": cmd_daemon,
    "test": cmd_test,
    "verify": cmd_verify,
}


def positive_int(value: str) -> int:
    """argparse type for options that must be a positive integer."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=f"Dexcom Share account sync (v{__version__})",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Environment variables:\n"
            "  SOURCE_USERNAME, SOURCE_PASSWORD, SOURCE_REGION\n"
            "  DEST_USERNAME, DEST_PASSWORD, DEST_REGION\n"
            "  SYNC_INTERVAL_MINUTES, MAX_READINGS_PER_SYNC, SERIAL_NUMBER"
        ),
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config/config.yaml",
        help="Path to config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    sync_parser = subparsers.add_parser("sync", help="Run a single sync and exit")
    sync_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the sync result as JSON",
    )

    daemon_parser = subparsers.add_parser("daemon", help="Run continuous sync")
    daemon_parser.add_argument(
        "--interval",
        "-i",
        type=positive_int,
        help="Sync interval in minutes (overrides config)",
    )

    subparsers.add_parser("test", help="Test connections to both accounts")

    verify_parser = subparsers.add_parser("verify", help="Read recent readings from the destination")
    verify_parser.add_argument(
        "--minutes",
        type=positive_int,
        default=60,
        help="Look-back window in minutes (default: 60)",
    )
    verify_parser.add_argument(
        "--count",
        type=positive_int,
        default=10,
        help="Maximum readings to fetch (default: 10)",
    )
    verify_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the readings as JSON",
    )

    return parser


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    load_dotenv()
    config = load_config(args.config)

    if args.debug:
        config["logging"]["level"] = "DEBUG"
    setup_logging(config)

    missing = validate_config(config)
    if missing:
        print("Missing required settings:", file=sys.stderr)
        for name in missing:
            print(f"  - {name}", file=sys.stderr)
        print("\nSet them in the environment, a .env file, or the config file.", file=sys.stderr)
        sys.exit(1)

    try:
        exit_code = asyncio.run(COMMANDS[args.command](args, config))
        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nCancelled.")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        if args.debug:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
