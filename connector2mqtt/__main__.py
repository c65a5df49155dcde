"""Entry point for running Connector2MQTT as a module.

Usage:
    python -m connector2mqtt                          # Use env vars or defaults
    python -m connector2mqtt -c /path/to/config.yaml
    python -m connector2mqtt --host 192.168.1.10 --port 1883
    python -m connector2mqtt --help
"""

import argparse
import asyncio
import sys
from typing import Optional

from . import __version__
from .app import run_app
from .config import create_default_config, print_env_help, get_config
from .devices import default_registry


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="connector2mqtt",
        description="Device fleet to MQTT bridge",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Docker/Environment variables (no config file needed):
  MQTT_HOST=192.168.1.100 MQTT_USERNAME=user MQTT_PASSWORD=pass connector2mqtt

  # Config file:
  connector2mqtt -c /etc/connector2mqtt/config.yaml
  connector2mqtt --generate-config > config.yaml

The device fleet is read from the retained '<base>/config' topic. If a
local config.json exists it is published there on connect.
        """,
    )

    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (optional if using env vars)",
    )
    parser.add_argument("--host", default=None, help="MQTT broker host")
    parser.add_argument("--port", type=int, default=None, help="MQTT broker port")
    parser.add_argument("--username", default=None, help="MQTT username")
    parser.add_argument("--password", default=None, help="MQTT password")
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Print default configuration and exit",
    )
    parser.add_argument(
        "--env-help",
        action="store_true",
        help="Print environment variable help and exit",
    )
    parser.add_argument(
        "--list-devices",
        action="store_true",
        help="Print the available device classes and exit",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = build_parser().parse_args(argv)

    if args.generate_config:
        print(create_default_config())
        return 0

    if args.env_help:
        print(print_env_help())
        return 0

    try:
        config = get_config(
            args.config,
            overrides={
                "host": args.host,
                "port": args.port,
                "username": args.username,
                "password": args.password,
            },
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    registry = default_registry(config.fleet.disabled_classes)

    if args.list_devices:
        for class_id in registry.classes:
            print(class_id)
        return 0

    if args.config:
        print(f"Using configuration file: {args.config}")
    print(f"Using MQTT broker {config.mqtt.host}:{config.mqtt.port}")

    try:
        asyncio.run(run_app(config, registry=registry))
        return 0
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
